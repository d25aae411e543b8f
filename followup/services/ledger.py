"""Credit ledger.

Every balance change is one conditional ``UPDATE account ... WHERE`` plus one
appended ``LedgerEntry`` carrying the balance read back in the same
transaction. There is no read-modify-write of ``credits`` anywhere: when the
guard of the conditional update no longer holds (another request consumed
the entitlement first) the unit of work is retried from the read.
"""
from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from followup import metrics
from followup.core.exceptions import ConflictRetryable, FatalInvariantError
from followup.models.models import Account, LedgerEntry, LedgerKind, Purchase, utcnow
from followup.services.entitlement import Decision

logger = logging.getLogger(__name__)


class Ledger:
    def consume(
        self,
        session: Session,
        account_id: int,
        decision: Decision,
        reference_id: str | int,
    ) -> LedgerEntry:
        """Spend the entitlement granted by ``decision``.

        ALLOW_FREE flips ``free_trial_used`` (delta 0); ALLOW_PAID debits one
        credit. Raises ConflictRetryable if the entitlement is already gone.
        """
        if decision is Decision.ALLOW_FREE:
            guard = [Account.free_trial_used.is_(False)]
            values = {
                "free_trial_used": True,
                "total_followups_created": Account.total_followups_created + 1,
            }
            delta, kind = 0, LedgerKind.FREE_TRIAL
            description = "Free trial follow-up"
        elif decision is Decision.ALLOW_PAID:
            guard = [Account.free_trial_used.is_(True), Account.credits > 0]
            values = {
                "credits": Account.credits - 1,
                "total_followups_created": Account.total_followups_created + 1,
            }
            delta, kind = -1, LedgerKind.USAGE
            description = "Follow-up generation"
        else:
            raise FatalInvariantError("consume called without an entitlement", {"decision": decision.value})

        return self._apply(session, account_id, guard, values, delta, kind, reference_id, description)

    def grant_purchase(
        self,
        session: Session,
        account_id: int,
        purchase: Purchase,
        customer_ref: str | None = None,
    ) -> LedgerEntry:
        """Credit a completed purchase.

        The first Stripe customer ref sticks. Without one the account ref stays NULL.
        """
        values = {
            "credits": Account.credits + purchase.credits_granted,
            "total_spent": Account.total_spent + Decimal(purchase.amount_paid),
            "last_purchase_at": utcnow(),
        }
        if customer_ref:
            values["payment_customer_ref"] = func.coalesce(Account.payment_customer_ref, customer_ref)
        description = f"Purchased {purchase.package_type} package ({purchase.credits_granted} credits)"
        return self._apply(
            session,
            account_id,
            [],
            values,
            purchase.credits_granted,
            LedgerKind.PURCHASE,
            purchase.id,
            description,
        )

    def refund(
        self,
        session: Session,
        account_id: int,
        reference_id: str | int,
        credits: int = 1,
        description: str = "Refund",
    ) -> LedgerEntry:
        if credits <= 0:
            raise FatalInvariantError("refund must be positive", {"credits": credits})
        return self._apply(
            session,
            account_id,
            [],
            {"credits": Account.credits + credits},
            credits,
            LedgerKind.REFUND,
            reference_id,
            description,
        )

    def history(self, session: Session, account_id: int) -> list[LedgerEntry]:
        stmt = select(LedgerEntry).where(LedgerEntry.account_id == account_id).order_by(LedgerEntry.id)
        return list(session.scalars(stmt))

    def verify(self, session: Session, account_id: int) -> int:
        """Replay the account's entries and compare with the stored balance."""
        account = session.get(Account, account_id, populate_existing=True)
        if account is None:
            raise FatalInvariantError("ledger verification for unknown account", {"account_id": account_id})
        total = session.scalar(
            select(func.coalesce(func.sum(LedgerEntry.delta), 0)).where(LedgerEntry.account_id == account_id)
        )
        latest = session.scalar(
            select(LedgerEntry.balance_after)
            .where(LedgerEntry.account_id == account_id)
            .order_by(LedgerEntry.id.desc())
            .limit(1)
        )
        if int(total) != account.credits or (latest is not None and latest != account.credits):
            raise FatalInvariantError(
                "ledger replay does not match balance",
                {"account_id": account_id, "credits": account.credits, "replayed": int(total), "latest": latest},
            )
        return account.credits

    def _apply(
        self,
        session: Session,
        account_id: int,
        guard: list,
        values: dict,
        delta: int,
        kind: LedgerKind,
        reference_id: str | int | None,
        description: str,
    ) -> LedgerEntry:
        stmt = (
            update(Account)
            .where(Account.id == account_id, *guard)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            result = session.execute(stmt)
        except IntegrityError as exc:
            raise FatalInvariantError(
                "credits must stay non-negative",
                {"account_id": account_id, "delta": delta, "kind": kind.value},
            ) from exc
        if result.rowcount != 1:
            raise ConflictRetryable(f"{kind.value} guard failed for account {account_id}")

        balance = session.scalar(select(Account.credits).where(Account.id == account_id))
        entry = LedgerEntry(
            account_id=account_id,
            delta=delta,
            balance_after=balance,
            kind=kind,
            reference_id=str(reference_id) if reference_id is not None else None,
            description=description,
        )
        session.add(entry)
        session.flush()
        metrics.ledger_entry_appended(kind.value)
        logger.info(
            "Ledger %s account=%s delta=%+d balance_after=%d ref=%s",
            kind.value,
            account_id,
            delta,
            balance,
            entry.reference_id,
        )
        return entry
