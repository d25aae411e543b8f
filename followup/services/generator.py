"""Follow-up generation via the Anthropic Messages API.

Only the transport lives here; the workflow treats any exception as a
GeneratorFailure and never retries.
"""
from __future__ import annotations

import logging
from typing import Protocol

import httpx

from followup.core.config import settings
from followup.core.exceptions import GeneratorFailure
from followup.models.schemas import SubmitRequest

logger = logging.getLogger(__name__)

LANGUAGE_NAMES = {
    "sk": "Slovak",
    "en": "English",
    "cs": "Czech",
    "de": "German",
    "pl": "Polish",
    "hu": "Hungarian",
    "es": "Spanish",
}

TEMPLATE_INSTRUCTIONS = {
    "generic": "Create a general follow-up email.",
    "meeting": "Create a follow-up after a meeting or call. Summarize key discussion points and propose next steps.",
    "quote": "Create a follow-up on a submitted quote. Gently remind about the offer, emphasize value, and offer help with the decision.",
    "cold": "Create a first contact email (cold outreach). Introduce the value proposition and clearly state why you are reaching out.",
    "reminder": "Create a gentle reminder. Be polite, not pushy. Offer help instead of pressure.",
    "thankyou": "Create a thank you email after a successful collaboration and suggest continuing the partnership.",
}


class Generator(Protocol):
    def generate(self, request: SubmitRequest) -> str: ...


def build_prompt(request: SubmitRequest) -> str:
    language = LANGUAGE_NAMES.get(request.language, "English")
    template = TEMPLATE_INSTRUCTIONS.get(request.template_type, TEMPLATE_INSTRUCTIONS["generic"])
    client = request.client_name or "the client"
    return (
        "You are a professional assistant writing follow-up emails.\n"
        f"{template}\n\n"
        f"Sender: {request.name}\n"
        f"Business type: {request.business_type}\n"
        f"Client: {client}\n"
        f"Situation: {request.client_info}\n\n"
        f"Requirements: write in {language}, professional but friendly, at most 150 words, "
        "with a clear call to action and no cliches.\n"
        f"Return ONLY the email body, without subject line and without signature "
        f"({request.name} will sign it)."
    )


class AnthropicGenerator:
    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        timeout: float | None = None,
        api_url: str | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self.api_key = api_key or settings.ANTHROPIC_API_KEY
        if not self.api_key:
            logger.warning("ANTHROPIC_API_KEY not set - generation will fail")
        self.model = model or settings.ANTHROPIC_MODEL
        self.max_tokens = max_tokens or settings.ANTHROPIC_MAX_TOKENS
        self.api_url = api_url or settings.ANTHROPIC_API_URL
        self._client = client or httpx.Client(timeout=timeout or settings.GENERATOR_TIMEOUT)

    def generate(self, request: SubmitRequest) -> str:
        if not self.api_key:
            raise GeneratorFailure("generator is not configured")
        payload = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": [{"role": "user", "content": build_prompt(request)}],
        }
        try:
            response = self._client.post(
                self.api_url,
                headers={
                    "x-api-key": self.api_key,
                    "anthropic-version": "2023-06-01",
                    "content-type": "application/json",
                },
                json=payload,
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("Anthropic request failed: %s", exc)
            raise GeneratorFailure(str(exc)) from exc

        data = response.json()
        text = "".join(
            block.get("text", "") for block in data.get("content", []) if block.get("type") == "text"
        ).strip()
        if not text:
            raise GeneratorFailure("empty completion")
        return text
