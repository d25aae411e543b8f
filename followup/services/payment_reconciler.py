"""Turns verified payment events into ledger state.

Payment providers deliver at least once. The Purchase table's unique
``payment_session_ref`` is the idempotency gate: the grant and the gate live
in the same transaction, so a replayed or concurrently redelivered event
inserts no Purchase and grants nothing.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable

from sqlalchemy import select
from sqlalchemy.orm import Session

from followup import metrics
from followup.core.exceptions import DuplicateEvent, MissingCustomerEmailError, ValidationError
from followup.db.transaction import run_in_transaction
from followup.models.models import Purchase, PurchaseStatus, utcnow
from followup.services.account_store import AccountStore, insert_ignoring_conflict
from followup.services.ledger import Ledger
from followup.services.notifier import Notifier, purchase_confirmation_body
from followup.services.package_catalog import PackageCatalog, PackageGrant
from followup.services.payment_events import PaymentEvent, PaymentEventKind

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    status: str  # credited | duplicate | acknowledged | ignored
    event_type: str
    account_id: int | None = None
    email: str | None = None
    name: str | None = None
    purchase_id: int | None = None
    package_type: str | None = None
    credits_granted: int = 0
    amount_paid: Decimal | None = None
    balance: int | None = None


class PaymentReconciler:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        accounts: AccountStore,
        ledger: Ledger,
        catalog: PackageCatalog,
        notifier: Notifier | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.accounts = accounts
        self.ledger = ledger
        self.catalog = catalog
        self.notifier = notifier

    def handle(self, event: PaymentEvent) -> ReconcileResult:
        if event.kind is PaymentEventKind.CHECKOUT_COMPLETED:
            return self.reconcile(event)
        if event.kind is PaymentEventKind.PAYMENT_SUCCEEDED:
            logger.info("Payment succeeded: %s", event.payment_intent_ref)
            return ReconcileResult(status="acknowledged", event_type=event.event_type)
        if event.kind is PaymentEventKind.PAYMENT_FAILED:
            logger.warning("Payment failed: %s", event.payment_intent_ref)
            return ReconcileResult(status="acknowledged", event_type=event.event_type)

        logger.info("Ignoring unhandled payment event type: %s", event.event_type)
        metrics.ignored_payment_event(event.event_type)
        return ReconcileResult(status="ignored", event_type=event.event_type)

    def reconcile(self, event: PaymentEvent) -> ReconcileResult:
        if not event.customer_email:
            raise MissingCustomerEmailError(event.session_ref)
        if not event.session_ref:
            raise ValidationError("Payment event has no session reference", fields=["session_ref"])
        if event.amount_paid is None:
            raise ValidationError("Payment event has no amount", fields=["amount_paid"])

        grant = self.catalog.lookup(event.amount_paid)
        logger.info(
            "Processing checkout %s: package=%s credits=%d email=%s",
            event.session_ref,
            grant.package_type,
            grant.credits,
            event.customer_email,
        )

        try:
            result = run_in_transaction(
                self._session_factory,
                lambda session: self._apply(session, event, grant),
                label="reconcile",
            )
        except DuplicateEvent as dup:
            logger.info("Payment session %s already reconciled; balance %s", dup.session_ref, dup.balance)
            metrics.duplicate_payment_event()
            return ReconcileResult(status="duplicate", event_type=event.event_type, balance=dup.balance)

        self.catalog.record_drift(event.amount_paid, grant)
        metrics.purchase_reconciled(grant.package_type)
        logger.info(
            "Added %d credits to %s. New balance: %d",
            result.credits_granted,
            result.email,
            result.balance,
        )
        self._notify(result)
        return result

    def _apply(self, session: Session, event: PaymentEvent, grant: PackageGrant) -> ReconcileResult:
        account = self.accounts.get_or_create(session, event.customer_email, event.customer_name)

        inserted = insert_ignoring_conflict(
            session,
            Purchase,
            {
                "account_id": account.id,
                "payment_intent_ref": event.payment_intent_ref,
                "payment_session_ref": event.session_ref,
                "package_type": grant.package_type,
                "amount_paid": event.amount_paid,
                "credits_granted": grant.credits,
                "status": PurchaseStatus.COMPLETED,
                "completed_at": utcnow(),
            },
            ["payment_session_ref"],
        )
        if not inserted:
            raise DuplicateEvent(event.session_ref, balance=account.credits)

        purchase = session.scalar(select(Purchase).where(Purchase.payment_session_ref == event.session_ref))
        entry = self.ledger.grant_purchase(session, account.id, purchase, customer_ref=event.customer_ref)
        return ReconcileResult(
            status="credited",
            event_type=event.event_type,
            account_id=account.id,
            email=account.email,
            name=account.name,
            purchase_id=purchase.id,
            package_type=grant.package_type,
            credits_granted=grant.credits,
            amount_paid=event.amount_paid,
            balance=entry.balance_after,
        )

    def _notify(self, result: ReconcileResult) -> None:
        """Best effort: a failed confirmation never undoes the grant."""
        if self.notifier is None or not result.email:
            return
        body = purchase_confirmation_body(
            result.name,
            result.credits_granted,
            result.package_type or "",
            result.amount_paid or Decimal("0"),
            result.balance or 0,
        )
        try:
            delivered = self.notifier.deliver(result.email, "Payment confirmed - your new credits are ready", body)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Purchase confirmation to %s raised: %s", result.email, exc)
            delivered = False
        if not delivered:
            metrics.notifier_failure("purchase_confirmation")
            logger.warning("Purchase confirmation email to %s was not delivered", result.email)
