"""Retrying unit-of-work runner for account and ledger mutations.

Each attempt gets a fresh session. The unit commits as a whole or not at all;
serialization failures and lost conditional updates re-run it from the read.
"""
from __future__ import annotations

import logging
import random
import time
from typing import Callable, TypeVar

from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session

from followup import metrics
from followup.core.config import settings
from followup.core.exceptions import ConflictRetryable, TransientStoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# PostgreSQL serialization_failure / deadlock_detected
_RETRYABLE_SQLSTATES = {"40001", "40P01"}


def is_retryable_db_error(exc: DBAPIError) -> bool:
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if sqlstate in _RETRYABLE_SQLSTATES:
        return True
    text = str(orig or exc).lower()
    return "database is locked" in text or "could not serialize" in text


def backoff_delay(attempt: int, base: float | None = None, cap: float | None = None) -> float:
    """Exponential backoff with full jitter."""
    base = settings.TX_BACKOFF_BASE if base is None else base
    cap = settings.TX_BACKOFF_MAX if cap is None else cap
    return random.uniform(0, min(cap, base * (2 ** (attempt - 1))))


def run_in_transaction(
    session_factory: Callable[[], Session],
    work: Callable[[Session], T],
    *,
    label: str = "ledger",
    attempts: int | None = None,
) -> T:
    """Run ``work(session)`` and commit, retrying on conflicts.

    Raises TransientStoreError once ``attempts`` conflicts in a row were seen.
    Any other exception rolls back and propagates unchanged.
    """
    max_attempts = attempts or settings.TX_MAX_ATTEMPTS
    last_reason = ""
    for attempt in range(1, max_attempts + 1):
        session = session_factory()
        try:
            result = work(session)
            session.commit()
            return result
        except ConflictRetryable as exc:
            session.rollback()
            last_reason = exc.message
        except DBAPIError as exc:
            session.rollback()
            if not is_retryable_db_error(exc):
                raise
            last_reason = str(exc.orig)
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        if attempt < max_attempts:
            metrics.transaction_retry(label)
            delay = backoff_delay(attempt)
            logger.info("%s transaction conflict (attempt %d/%d): %s; retrying in %.3fs",
                        label, attempt, max_attempts, last_reason, delay)
            time.sleep(delay)

    metrics.transaction_exhausted(label)
    logger.error("%s transaction gave up after %d attempts: %s", label, max_attempts, last_reason)
    raise TransientStoreError(max_attempts, last_reason)
