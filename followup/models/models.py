from __future__ import annotations

import datetime as dt
import enum
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from followup.db.base_class import Base


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class LedgerKind(str, enum.Enum):
    """Balance-affecting event types."""
    PURCHASE = "purchase"
    USAGE = "usage"
    FREE_TRIAL = "free_trial"
    REFUND = "refund"


class PurchaseStatus(str, enum.Enum):
    COMPLETED = "completed"


class SubmissionStatus(str, enum.Enum):
    """Submission lifecycle.

    processing -> generated -> completed | email_failed
    processing -> generation_failed
    """
    PROCESSING = "processing"
    GENERATED = "generated"
    COMPLETED = "completed"
    EMAIL_FAILED = "email_failed"
    GENERATION_FAILED = "generation_failed"

    @property
    def is_terminal(self) -> bool:
        return self in (
            SubmissionStatus.COMPLETED,
            SubmissionStatus.EMAIL_FAILED,
            SubmissionStatus.GENERATION_FAILED,
        )

    def can_transition_to(self, new_status: SubmissionStatus) -> bool:
        allowed = {
            SubmissionStatus.PROCESSING: {SubmissionStatus.GENERATED, SubmissionStatus.GENERATION_FAILED},
            SubmissionStatus.GENERATED: {SubmissionStatus.COMPLETED, SubmissionStatus.EMAIL_FAILED},
        }
        return new_status in allowed.get(self, set())


class Account(Base):
    """One row per unique (normalised) email."""

    __table_args__ = (
        CheckConstraint("credits >= 0", name="ck_account_credits_non_negative"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(120), default="Customer")
    credits: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)
    # Monotonic: only ever flipped false -> true by the ledger
    free_trial_used: Mapped[bool] = mapped_column(default=False, server_default="0", nullable=False)
    total_spent: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), default=Decimal("0"), server_default="0", nullable=False
    )
    total_followups_created: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)
    payment_customer_ref: Mapped[str | None] = mapped_column(String(120), nullable=True)
    last_purchase_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
    )

    ledger_entries: Mapped[list[LedgerEntry]] = relationship(
        "LedgerEntry", back_populates="account", order_by="LedgerEntry.id"
    )
    purchases: Mapped[list[Purchase]] = relationship("Purchase", back_populates="account")
    submissions: Mapped[list[Submission]] = relationship("Submission", back_populates="account")

    def __repr__(self) -> str:
        return f"<Account(id={self.id}, email={self.email}, credits={self.credits}, free_trial_used={self.free_trial_used})>"


class LedgerEntry(Base):
    """Append-only record of one balance-affecting event."""

    __tablename__ = "ledger_entry"
    __table_args__ = (
        CheckConstraint("balance_after >= 0", name="ck_ledger_entry_balance_after_non_negative"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    account_id: Mapped[int] = mapped_column(ForeignKey("account.id"), nullable=False, index=True)
    delta: Mapped[int] = mapped_column(Integer, nullable=False)
    balance_after: Mapped[int] = mapped_column(Integer, nullable=False)
    kind: Mapped[LedgerKind] = mapped_column(
        Enum(LedgerKind, values_callable=_enum_values, name="ledger_kind"),
        nullable=False,
        index=True,
    )
    # Purchase id or Submission id, as a string
    reference_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
    )

    account: Mapped[Account] = relationship("Account", back_populates="ledger_entries")

    def __repr__(self) -> str:
        return f"<LedgerEntry(id={self.id}, account_id={self.account_id}, kind={self.kind.value}, delta={self.delta}, balance_after={self.balance_after})>"


class Purchase(Base):
    """One row per completed payment session."""

    id: Mapped[int] = mapped_column(primary_key=True)
    account_id: Mapped[int] = mapped_column(ForeignKey("account.id"), nullable=False, index=True)
    payment_intent_ref: Mapped[str | None] = mapped_column(String(120), nullable=True)
    # Idempotency gate: a second event for the same checkout session inserts nothing
    payment_session_ref: Mapped[str] = mapped_column(String(120), unique=True, nullable=False)
    package_type: Mapped[str] = mapped_column(String(20), nullable=False)
    amount_paid: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    credits_granted: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[PurchaseStatus] = mapped_column(
        Enum(PurchaseStatus, values_callable=_enum_values, name="purchase_status"),
        default=PurchaseStatus.COMPLETED,
        nullable=False,
    )
    completed_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
    )

    account: Mapped[Account] = relationship("Account", back_populates="purchases")


class Submission(Base):
    """One generation request. Only the submission workflow mutates it."""

    id: Mapped[int] = mapped_column(primary_key=True)
    account_id: Mapped[int] = mapped_column(ForeignKey("account.id"), nullable=False, index=True)
    status: Mapped[SubmissionStatus] = mapped_column(
        Enum(SubmissionStatus, values_callable=_enum_values, name="submission_status"),
        default=SubmissionStatus.PROCESSING,
        nullable=False,
        index=True,
    )
    is_free_trial: Mapped[bool] = mapped_column(default=False, nullable=False)
    credits_used: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    business_type: Mapped[str] = mapped_column(String(120))
    language: Mapped[str] = mapped_column(String(8))
    client_name: Mapped[str | None] = mapped_column(String(120), nullable=True)
    client_info: Mapped[str] = mapped_column(Text)
    template_type: Mapped[str] = mapped_column(String(20), default="generic")
    generated_artifact: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
    )
    completed_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    account: Mapped[Account] = relationship("Account", back_populates="submissions")
