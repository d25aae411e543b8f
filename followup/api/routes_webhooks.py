import json
import logging

from fastapi import APIRouter, Request
from starlette.concurrency import run_in_threadpool

from followup.api.dependencies import ReconcilerDep
from followup.api.rate_limit import RATE_LIMITS, limiter
from followup.core.config import settings
from followup.core.exceptions import InvalidSignatureError
from followup.models.schemas import WebhookAck
from followup.services.payment_events import PaymentEvent, verify_stripe_signature

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/stripe", response_model=WebhookAck)
@limiter.limit(RATE_LIMITS["webhook_stripe"])
async def stripe_webhook(request: Request, reconciler: ReconcilerDep):
    raw_body = await request.body()
    signature = request.headers.get("stripe-signature")
    try:
        verify_stripe_signature(
            raw_body,
            signature,
            settings.STRIPE_WEBHOOK_SECRET,
            tolerance=settings.STRIPE_SIGNATURE_TOLERANCE,
        )
    except InvalidSignatureError as exc:
        logger.warning("Stripe webhook signature verification failed: %s", exc.message)
        raise

    try:
        payload = json.loads(raw_body.decode("utf-8") or "{}")
    except json.JSONDecodeError as exc:
        logger.error("Invalid Stripe webhook payload: %s", exc)
        raise InvalidSignatureError("Invalid payload") from exc

    event = PaymentEvent.from_stripe(payload)
    logger.info("Webhook received: %s (%s)", event.event_type, event.event_id)
    result = await run_in_threadpool(reconciler.handle, event)
    return WebhookAck(
        status=result.status,
        balance=result.balance,
        credits_granted=result.credits_granted or None,
    )
