"""End-to-end handling of one follow-up request.

Three short transactions bracket two slow external calls:

1. read account, decide, create the Submission and consume the entitlement
   (one unit, retried on conflict);
2. call the Generator with no transaction open;
3. store the artifact, then call the Notifier and record the outcome.

The entitlement is spent before generation is attempted. A failed delivery
does not refund it: the artifact is stored on the Submission.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from sqlalchemy.orm import Session

from followup import metrics
from followup.core.config import settings
from followup.core.exceptions import (
    FatalInvariantError,
    GeneratorFailure,
    InvalidSubmissionTransitionError,
    NotifierFailure,
)
from followup.db.transaction import run_in_transaction
from followup.models.models import Submission, SubmissionStatus, utcnow
from followup.models.schemas import SubmitRequest
from followup.services.account_store import AccountStore
from followup.services.entitlement import Decision, resolve
from followup.services.generator import Generator
from followup.services.ledger import Ledger
from followup.services.notifier import Notifier, followup_subject

logger = logging.getLogger(__name__)

DEBIT_BEFORE_ATTEMPT = "debit_before_attempt"
REFUND_ON_FAILURE = "refund_on_failure"


@dataclass
class SubmissionResult:
    status: str  # allowed | payment_required
    is_free_trial_used: bool
    remaining_credits: int
    decision: Decision
    submission_id: int | None = None
    submission_status: SubmissionStatus | None = None

    @property
    def allowed(self) -> bool:
        return self.status == "allowed"


@dataclass
class Reservation:
    """Outcome of the entitlement transaction.

    ``submission_id`` ties the ledger entry to this specific attempt.
    """
    decision: Decision
    account_id: int
    free_trial_used: bool
    remaining_credits: int
    submission_id: int | None = None


class SubmissionWorkflow:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        accounts: AccountStore,
        ledger: Ledger,
        generator: Generator,
        notifier: Notifier,
        failure_policy: str | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.accounts = accounts
        self.ledger = ledger
        self.generator = generator
        self.notifier = notifier
        self.failure_policy = failure_policy or settings.GENERATION_FAILURE_POLICY

    def submit(self, request: SubmitRequest) -> SubmissionResult:
        reservation = self.reserve(request)
        if reservation.decision is Decision.DENY:
            return SubmissionResult(
                status="payment_required",
                is_free_trial_used=True,
                remaining_credits=0,
                decision=reservation.decision,
            )

        submission_id = reservation.submission_id
        try:
            artifact = self.generator.generate(request)
        except Exception as exc:
            self._record_generation_failure(reservation, exc)
            if isinstance(exc, GeneratorFailure):
                exc.submission_id = submission_id
                exc.details["submission_id"] = submission_id
                raise
            raise GeneratorFailure(str(exc) or exc.__class__.__name__, submission_id) from exc

        self._transition(submission_id, SubmissionStatus.GENERATED, generated_artifact=artifact)

        failure = self._deliver(request, artifact)
        if failure is None:
            status = SubmissionStatus.COMPLETED
            self._transition(submission_id, status)
        else:
            status = SubmissionStatus.EMAIL_FAILED
            self._transition(submission_id, status, error_message=failure.message)
        metrics.submission_outcome(status.value)

        return SubmissionResult(
            status="allowed",
            is_free_trial_used=True,
            remaining_credits=reservation.remaining_credits,
            decision=reservation.decision,
            submission_id=submission_id,
            submission_status=status,
        )

    def reserve(self, request: SubmitRequest) -> Reservation:
        """Decide and consume atomically. DENY writes nothing but the account."""

        def work(session: Session) -> Reservation:
            account = self.accounts.get_or_create(session, request.email, request.name)
            decision = resolve(account)
            if decision is Decision.DENY:
                return Reservation(decision, account.id, account.free_trial_used, account.credits)

            submission = Submission(
                account_id=account.id,
                status=SubmissionStatus.PROCESSING,
                is_free_trial=decision is Decision.ALLOW_FREE,
                credits_used=0 if decision is Decision.ALLOW_FREE else 1,
                business_type=request.business_type,
                language=request.language,
                client_name=request.client_name,
                client_info=request.client_info,
                template_type=request.template_type,
            )
            session.add(submission)
            session.flush()
            entry = self.ledger.consume(session, account.id, decision, submission.id)
            return Reservation(decision, account.id, True, entry.balance_after, submission.id)

        reservation = run_in_transaction(self._session_factory, work, label="entitlement")
        metrics.submission_decision(reservation.decision.value)
        logger.info(
            "Entitlement %s for account %s (submission=%s, remaining=%d)",
            reservation.decision.value,
            reservation.account_id,
            reservation.submission_id,
            reservation.remaining_credits,
        )
        return reservation

    def _deliver(self, request: SubmitRequest, artifact: str) -> NotifierFailure | None:
        """Send the artifact; a failure is returned, never raised."""
        subject = followup_subject(request.language, request.client_name)
        try:
            delivered = self.notifier.deliver(request.email, subject, artifact)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Follow-up delivery to %s raised: %s", request.email, exc)
            failure = NotifierFailure(str(exc) or exc.__class__.__name__, request.email)
        else:
            if delivered:
                return None
            failure = NotifierFailure("notifier reported failure", request.email)
        metrics.notifier_failure("followup")
        logger.warning("%s; credit is not refunded", failure.message)
        return failure

    def _record_generation_failure(self, reservation: Reservation, exc: Exception) -> None:
        metrics.generator_failure()
        logger.error("Generation failed for submission %s: %s", reservation.submission_id, exc)
        refund = self.failure_policy == REFUND_ON_FAILURE

        def work(session: Session) -> None:
            self._apply_transition(
                session,
                reservation.submission_id,
                SubmissionStatus.GENERATION_FAILED,
                error_message=str(exc)[:1000] or exc.__class__.__name__,
            )
            if refund:
                self.ledger.refund(
                    session,
                    reservation.account_id,
                    reservation.submission_id,
                    credits=1,
                    description="Compensation for failed generation",
                )

        run_in_transaction(self._session_factory, work, label="generation_failure")
        metrics.submission_outcome(SubmissionStatus.GENERATION_FAILED.value)

    def _transition(self, submission_id: int, new_status: SubmissionStatus, **fields) -> None:
        run_in_transaction(
            self._session_factory,
            lambda session: self._apply_transition(session, submission_id, new_status, **fields),
            label="submission",
        )

    @staticmethod
    def _apply_transition(session: Session, submission_id: int, new_status: SubmissionStatus, **fields) -> Submission:
        submission = session.get(Submission, submission_id, with_for_update=True)
        if submission is None:
            raise FatalInvariantError("submission disappeared", {"submission_id": submission_id})
        if not submission.status.can_transition_to(new_status):
            raise InvalidSubmissionTransitionError(submission.status.value, new_status.value)
        submission.status = new_status
        for key, value in fields.items():
            setattr(submission, key, value)
        if new_status.is_terminal:
            submission.completed_at = utcnow()
        return submission
