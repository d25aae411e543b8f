"""Account store: lazy, race-free account creation keyed on email."""
from __future__ import annotations

import logging

from sqlalchemy import insert, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from followup.core.exceptions import ConflictRetryable, ValidationError
from followup.models.models import Account

logger = logging.getLogger(__name__)

DEFAULT_DISPLAY_NAME = "Customer"


def normalize_email(email: str | None) -> str:
    value = (email or "").strip().lower()
    if not value or "@" not in value:
        raise ValidationError("A valid email is required", fields=["email"])
    return value


def insert_ignoring_conflict(session: Session, model, values: dict, conflict_columns: list[str]) -> bool:
    """INSERT that silently does nothing when a unique key already exists.

    Returns True when a row was inserted. Relies on the unique constraint, not
    on a prior read, so two racing writers cannot both insert.
    """
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = postgresql.insert(model).values(**values).on_conflict_do_nothing(index_elements=conflict_columns)
    elif dialect == "sqlite":
        stmt = sqlite.insert(model).values(**values).on_conflict_do_nothing(index_elements=conflict_columns)
    else:
        try:
            with session.begin_nested():
                session.execute(insert(model).values(**values))
        except IntegrityError:
            return False
        return True
    result = session.execute(stmt)
    return result.rowcount == 1


class AccountStore:
    """Durable table of identities and balances."""

    def get_by_email(self, session: Session, email: str) -> Account | None:
        return session.scalar(select(Account).where(Account.email == normalize_email(email)))

    def get_or_create(self, session: Session, email: str, display_name: str | None = None) -> Account:
        """Return the account for ``email``, creating it with zero balance if unseen.

        Concurrent callers for the same unseen email all observe the same id:
        the insert is conflict-tolerant and everyone reads back the one row.
        """
        normalized = normalize_email(email)
        created = insert_ignoring_conflict(
            session,
            Account,
            {
                "email": normalized,
                "name": (display_name or "").strip() or DEFAULT_DISPLAY_NAME,
                "credits": 0,
                "free_trial_used": False,
            },
            ["email"],
        )
        account = session.scalar(
            select(Account).where(Account.email == normalized).execution_options(populate_existing=True)
        )
        if account is None:
            # Lost a race against a transaction that has not committed yet
            raise ConflictRetryable(f"Account for {normalized} not visible yet")
        if created:
            logger.info("Created account %s for %s", account.id, normalized)
        return account
