"""Payment provider events as a tagged union.

Parsing happens after signature verification; the reconciler dispatches on
``PaymentEvent.kind`` and never on raw type strings.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

import stripe

from followup.core.exceptions import InvalidSignatureError


class PaymentEventKind(str, enum.Enum):
    CHECKOUT_COMPLETED = "checkout.session.completed"
    PAYMENT_SUCCEEDED = "payment_intent.succeeded"
    PAYMENT_FAILED = "payment_intent.payment_failed"
    IGNORED = "ignored"

    @classmethod
    def from_type(cls, event_type: str | None) -> PaymentEventKind:
        try:
            kind = cls(event_type or "")
        except ValueError:
            return cls.IGNORED
        return kind


@dataclass(frozen=True)
class PaymentEvent:
    kind: PaymentEventKind
    event_type: str
    event_id: str | None = None
    session_ref: str | None = None
    payment_intent_ref: str | None = None
    customer_ref: str | None = None
    customer_email: str | None = None
    customer_name: str | None = None
    amount_paid: Decimal | None = None

    @classmethod
    def checkout_completed(
        cls,
        session_ref: str,
        customer_email: str | None,
        amount_paid: Decimal | int | str,
        payment_intent_ref: str | None = None,
        customer_name: str | None = None,
        customer_ref: str | None = None,
    ) -> PaymentEvent:
        return cls(
            kind=PaymentEventKind.CHECKOUT_COMPLETED,
            event_type=PaymentEventKind.CHECKOUT_COMPLETED.value,
            session_ref=session_ref,
            payment_intent_ref=payment_intent_ref,
            customer_ref=customer_ref,
            customer_email=customer_email,
            customer_name=customer_name,
            amount_paid=Decimal(str(amount_paid)),
        )

    @classmethod
    def from_stripe(cls, payload: dict[str, Any]) -> PaymentEvent:
        event_type = payload.get("type") or ""
        kind = PaymentEventKind.from_type(event_type)
        obj = (payload.get("data") or {}).get("object") or {}
        if kind is not PaymentEventKind.CHECKOUT_COMPLETED:
            return cls(kind=kind, event_type=event_type, event_id=payload.get("id"), payment_intent_ref=obj.get("id"))

        details = obj.get("customer_details") or {}
        amount_total = obj.get("amount_total")
        amount_paid = (Decimal(amount_total) / 100) if amount_total is not None else None
        return cls(
            kind=kind,
            event_type=event_type,
            event_id=payload.get("id"),
            session_ref=obj.get("id"),
            payment_intent_ref=obj.get("payment_intent"),
            customer_ref=obj.get("customer"),
            customer_email=obj.get("customer_email") or details.get("email"),
            customer_name=details.get("name"),
            amount_paid=amount_paid,
        )


def verify_stripe_signature(
    payload: bytes,
    header: str | None,
    secret: str,
    tolerance: int = stripe.Webhook.DEFAULT_TOLERANCE,
) -> None:
    """Check a ``Stripe-Signature`` header with the Stripe SDK.

    Raises InvalidSignatureError on any mismatch or a stale timestamp.
    """
    if not header:
        raise InvalidSignatureError("Missing signature")
    try:
        stripe.WebhookSignature.verify_header(payload.decode("utf-8"), header, secret, tolerance)
    except UnicodeDecodeError as exc:
        raise InvalidSignatureError("Invalid payload encoding") from exc
    except stripe.SignatureVerificationError as exc:
        raise InvalidSignatureError(str(exc.user_message or exc)) from exc
