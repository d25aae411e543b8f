from __future__ import annotations

import hashlib
import hmac
import os
import time

os.environ.setdefault("APP_ENV", "test")

from types import SimpleNamespace  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from followup.core.config import settings  # noqa: E402
from followup.db import session as db_session  # noqa: E402
from followup.db.base_class import Base  # noqa: E402
from followup.db.session import SessionLocal  # noqa: E402
from followup.models import models  # noqa: E402,F401
from followup.models.schemas import SubmitRequest  # noqa: E402
from followup.services.account_store import AccountStore  # noqa: E402
from followup.services.entitlement import Decision  # noqa: E402
from followup.services.ledger import Ledger  # noqa: E402
from followup.services.package_catalog import PackageCatalog  # noqa: E402
from followup.services.payment_reconciler import PaymentReconciler  # noqa: E402
from followup.services.submission_workflow import SubmissionWorkflow  # noqa: E402

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")


test_engine = create_engine(
    TEST_DATABASE_URL,
    future=True,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

# Ensure application code uses the test engine
settings.DATABASE_URL = TEST_DATABASE_URL  # type: ignore[attr-defined]
settings.ENV = "test"  # type: ignore[attr-defined]
db_session.engine = test_engine  # type: ignore[assignment]
SessionLocal.configure(bind=test_engine)


@pytest.fixture(autouse=True)
def _reset_database_state():
    """Ensure each test sees a fresh database schema."""
    Base.metadata.drop_all(bind=test_engine)
    Base.metadata.create_all(bind=test_engine)
    yield


@pytest.fixture
def db_session():
    session = SessionLocal()
    try:
        yield session
        session.commit()
    finally:
        session.close()


class FakeGenerator:
    """Records prompts; optionally raises instead of returning text."""

    def __init__(self, text: str = "Hi Jana,\n\nthanks for the call today.", error: Exception | None = None):
        self.text = text
        self.error = error
        self.calls: list[SubmitRequest] = []

    def generate(self, request: SubmitRequest) -> str:
        self.calls.append(request)
        if self.error is not None:
            raise self.error
        return self.text


class FakeNotifier:
    def __init__(self, succeed: bool = True, error: Exception | None = None):
        self.succeed = succeed
        self.error = error
        self.sent: list[SimpleNamespace] = []

    def deliver(self, address: str, subject: str, body: str) -> bool:
        self.sent.append(SimpleNamespace(address=address, subject=subject, body=body))
        if self.error is not None:
            raise self.error
        return self.succeed


def sign_stripe_payload(payload: bytes, secret: str, timestamp: int | None = None) -> str:
    """Build the ``Stripe-Signature`` header Stripe would send for ``payload``."""
    ts = int(time.time()) if timestamp is None else timestamp
    digest = hmac.new(secret.encode(), f"{ts}.".encode() + payload, hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def accounts() -> AccountStore:
    return AccountStore()


@pytest.fixture
def ledger() -> Ledger:
    return Ledger()


@pytest.fixture
def catalog() -> PackageCatalog:
    return PackageCatalog()


@pytest.fixture
def workflow(accounts, ledger, generator, notifier) -> SubmissionWorkflow:
    return SubmissionWorkflow(SessionLocal, accounts, ledger, generator, notifier)


@pytest.fixture
def reconciler(accounts, ledger, catalog, notifier) -> PaymentReconciler:
    return PaymentReconciler(SessionLocal, accounts, ledger, catalog, notifier)


@pytest.fixture
def make_request():
    def _make(email: str = "ana@acme-studio.com", **overrides) -> SubmitRequest:
        data = {
            "name": "Ana Novak",
            "email": email,
            "business_type": "Web design studio",
            "language": "en",
            "client_info": "Met Jana at the trade fair, she wants a new e-shop by spring.",
            "client_name": "Jana",
            "template_type": "meeting",
        }
        data.update(overrides)
        return SubmitRequest(**data)

    return _make


@pytest.fixture
def file_session_factory(tmp_path):
    """Session factory on a file-backed SQLite database, safe to share across threads."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'ledger.db'}",
        future=True,
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, class_=Session, expire_on_commit=False, autoflush=False)
    yield factory
    engine.dispose()


def seed_account(session_factory, email: str, credits: int = 0, free_trial_used: bool = False) -> int:
    """Create an account whose ledger already agrees with ``credits``."""
    accounts = AccountStore()
    ledger = Ledger()
    session = session_factory()
    try:
        account = accounts.get_or_create(session, email, "Seeded")
        if free_trial_used:
            ledger.consume(session, account.id, Decision.ALLOW_FREE, "seed")
        if credits:
            ledger.refund(session, account.id, "seed", credits=credits, description="Seed balance")
        session.commit()
        return account.id
    finally:
        session.close()


@pytest.fixture
def seed():
    def _seed(email: str = "ana@acme-studio.com", credits: int = 0, free_trial_used: bool = False,
              session_factory=SessionLocal) -> int:
        return seed_account(session_factory, email, credits=credits, free_trial_used=free_trial_used)

    return _seed


@pytest.fixture
def load():
    """Read committed rows through a short-lived session."""

    def _load(email: str = "ana@acme-studio.com"):
        session = SessionLocal()
        try:
            account = AccountStore().get_by_email(session, email)
            if account is None:
                return None
            entries = Ledger().history(session, account.id)
            submissions = list(account.submissions)
            purchases = list(account.purchases)
            return SimpleNamespace(
                account=account,
                entries=entries,
                submissions=submissions,
                purchases=purchases,
            )
        finally:
            session.close()

    return _load
