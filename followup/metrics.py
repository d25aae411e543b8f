"""Metrics facade.

Service code should ONLY call the semantic helpers here so the backend can
change freely.
"""

from __future__ import annotations

import logging

from prometheus_client import Counter

logger = logging.getLogger("metrics")

_SUBMISSION_DECISIONS = Counter(
    "submission_decisions_total", "Entitlement decisions for submission attempts", ["decision"]
)
_SUBMISSION_OUTCOMES = Counter(
    "submission_outcomes_total", "Submission terminal statuses", ["status"]
)
_LEDGER_ENTRIES = Counter("ledger_entries_total", "Ledger entries appended", ["kind"])
_PURCHASES_RECONCILED = Counter(
    "purchases_reconciled_total", "Payment sessions turned into credit grants", ["package_type"]
)
_DUPLICATE_PAYMENT_EVENTS = Counter(
    "payment_events_duplicate_total", "Payment events whose session was already reconciled"
)
_IGNORED_PAYMENT_EVENTS = Counter(
    "payment_events_ignored_total", "Payment events with no ledger effect", ["event_type"]
)
_CATALOG_DRIFT = Counter(
    "package_catalog_drift_total", "Paid amounts missing from the package price table"
)
_NOTIFIER_FAILURES = Counter("notifier_failures_total", "Email deliveries that failed", ["kind"])
_GENERATOR_FAILURES = Counter("generator_failures_total", "Follow-up generations that failed")
_TX_RETRIES = Counter("ledger_transaction_retries_total", "Ledger transactions retried after a conflict", ["label"])
_TX_EXHAUSTED = Counter(
    "ledger_transaction_exhausted_total", "Ledger transactions that ran out of retry attempts", ["label"]
)


def submission_decision(decision: str) -> None:
    _SUBMISSION_DECISIONS.labels(decision=decision).inc()


def submission_outcome(status: str) -> None:
    _SUBMISSION_OUTCOMES.labels(status=status).inc()


def ledger_entry_appended(kind: str) -> None:
    _LEDGER_ENTRIES.labels(kind=kind).inc()


def purchase_reconciled(package_type: str) -> None:
    _PURCHASES_RECONCILED.labels(package_type=package_type).inc()


def duplicate_payment_event() -> None:
    _DUPLICATE_PAYMENT_EVENTS.inc()


def ignored_payment_event(event_type: str) -> None:
    _IGNORED_PAYMENT_EVENTS.labels(event_type=event_type or "unknown").inc()


def catalog_drift() -> None:
    _CATALOG_DRIFT.inc()


def notifier_failure(kind: str) -> None:
    _NOTIFIER_FAILURES.labels(kind=kind).inc()


def generator_failure() -> None:
    _GENERATOR_FAILURES.inc()


def transaction_retry(label: str) -> None:
    _TX_RETRIES.labels(label=label).inc()


def transaction_exhausted(label: str) -> None:
    _TX_EXHAUSTED.labels(label=label).inc()
