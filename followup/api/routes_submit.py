import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from followup.api.dependencies import WorkflowDep
from followup.api.rate_limit import RATE_LIMITS, limiter
from followup.core.exceptions import EntitlementDenied
from followup.models.models import SubmissionStatus
from followup.models.schemas import SubmitRequest, SubmitResponse

logger = logging.getLogger(__name__)
router = APIRouter()

SUCCESS_MESSAGES = {
    "sk": "Follow-up email bol úspešne vygenerovaný a odoslaný na váš email!",
    "en": "Follow-up email has been generated and sent to your email!",
    "cs": "Follow-up email byl úspěšně vygenerován a odeslán na váš email!",
    "de": "Follow-up-E-Mail wurde erfolgreich generiert und an Ihre E-Mail gesendet!",
    "pl": "Follow-up email został pomyślnie wygenerowany i wysłany na twój email!",
    "hu": "A follow-up email sikeresen létrejött és elküldésre került az emailjére!",
    "es": "¡El correo de seguimiento se ha generado y enviado a tu correo electrónico!",
}

DELIVERY_FAILED_MESSAGES = {
    "sk": "Follow-up email bol vygenerovaný, ale nepodarilo sa ho doručiť na váš email.",
    "en": "Follow-up email has been generated, but we could not deliver it to your email.",
    "cs": "Follow-up email byl vygenerován, ale nepodařilo se ho doručit na váš email.",
    "de": "Follow-up-E-Mail wurde generiert, konnte aber nicht an Ihre E-Mail zugestellt werden.",
    "pl": "Follow-up email został wygenerowany, ale nie udało się go dostarczyć na twój email.",
    "hu": "A follow-up email létrejött, de nem sikerült kézbesíteni az emailjére.",
    "es": "El correo de seguimiento se ha generado, pero no pudimos entregarlo a tu correo electrónico.",
}


@router.post("/submit", response_model=SubmitResponse)
@limiter.limit(RATE_LIMITS["submit"])
def submit_followup(request: Request, payload: SubmitRequest, workflow: WorkflowDep):
    """Generate and deliver one follow-up, spending the caller's entitlement."""
    result = workflow.submit(payload)

    if not result.allowed:
        denied = EntitlementDenied(payload.email, remaining_credits=result.remaining_credits)
        body = SubmitResponse(
            status="payment_required",
            is_free_trial_used=result.is_free_trial_used,
            remaining_credits=result.remaining_credits,
            message=denied.message,
        ).model_dump(by_alias=True)
        body.update(denied.to_dict())
        logger.info("Payment required for %s", payload.email)
        return JSONResponse(status_code=denied.status_code, content=body)

    messages = SUCCESS_MESSAGES
    if result.submission_status is SubmissionStatus.EMAIL_FAILED:
        messages = DELIVERY_FAILED_MESSAGES
    return SubmitResponse(
        status="allowed",
        is_free_trial_used=result.is_free_trial_used,
        remaining_credits=result.remaining_credits,
        submission_id=result.submission_id,
        submission_status=result.submission_status.value if result.submission_status else None,
        message=messages.get(payload.language, messages["en"]),
    )
