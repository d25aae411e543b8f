import threading

import pytest
from sqlalchemy import func, select

from followup.core.exceptions import ValidationError
from followup.db.transaction import run_in_transaction
from followup.models.models import Account
from followup.services.account_store import AccountStore, normalize_email


def test_get_or_create_creates_fresh_account(db_session, accounts):
    account = accounts.get_or_create(db_session, "Ana@Acme-Studio.com ", "Ana")
    assert account.id is not None
    assert account.email == "ana@acme-studio.com"
    assert account.name == "Ana"
    assert account.credits == 0
    assert account.free_trial_used is False
    assert account.payment_customer_ref is None


def test_get_or_create_returns_existing_account(db_session, accounts):
    first = accounts.get_or_create(db_session, "ana@acme-studio.com", "Ana")
    second = accounts.get_or_create(db_session, "ANA@acme-studio.com", "Someone Else")
    assert first.id == second.id
    assert second.name == "Ana"
    assert db_session.scalar(select(func.count(Account.id))) == 1


def test_blank_display_name_uses_default(db_session, accounts):
    account = accounts.get_or_create(db_session, "ana@acme-studio.com", "  ")
    assert account.name == "Customer"


@pytest.mark.parametrize("email", [None, "", "   ", "not-an-email"])
def test_invalid_email_rejected(email):
    with pytest.raises(ValidationError):
        normalize_email(email)


def test_get_by_email_missing(db_session, accounts):
    assert accounts.get_by_email(db_session, "nobody@acme-studio.com") is None


def test_concurrent_get_or_create_yields_one_row(file_session_factory):
    store = AccountStore()
    ids: list[int] = []
    errors: list[Exception] = []
    barrier = threading.Barrier(6)

    def worker():
        barrier.wait()
        try:
            account_id = run_in_transaction(
                file_session_factory,
                lambda session: store.get_or_create(session, "race@acme-studio.com", "Race").id,
                attempts=20,
            )
            ids.append(account_id)
        except Exception as exc:  # noqa: BLE001
            errors.append(exc)

    threads = [threading.Thread(target=worker) for _ in range(6)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert not errors
    assert len(set(ids)) == 1
    session = file_session_factory()
    try:
        assert session.scalar(select(func.count(Account.id))) == 1
    finally:
        session.close()
