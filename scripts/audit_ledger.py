#!/usr/bin/env python3
"""
Replay ledger entries and compare them with stored account balances.

Usage:
    python scripts/audit_ledger.py
    python scripts/audit_ledger.py --email ana@acme-studio.com
"""
import argparse
import sys

from sqlalchemy import select

from followup.core.exceptions import FatalInvariantError
from followup.db.session import SessionLocal
from followup.models.models import Account
from followup.services.ledger import Ledger


def audit(email: str | None = None) -> int:
    """Return the number of accounts whose ledger disagrees with their balance."""
    ledger = Ledger()
    db = SessionLocal()
    failures = 0
    try:
        stmt = select(Account).order_by(Account.id)
        if email:
            stmt = stmt.where(Account.email == email.strip().lower())
        accounts = list(db.scalars(stmt))
        if not accounts:
            print("No accounts found.")
            return 0

        for account in accounts:
            try:
                balance = ledger.verify(db, account.id)
            except FatalInvariantError as exc:
                failures += 1
                print(f"MISMATCH {account.email} (ID: {account.id}): {exc.details}")
                continue
            print(f"ok {account.email} (ID: {account.id}) credits={balance} free_trial_used={account.free_trial_used}")

        print(f"\nAccounts checked: {len(accounts)}, mismatches: {failures}")
        return failures
    finally:
        db.close()


def main():
    parser = argparse.ArgumentParser(description="Audit credit ledger against account balances")
    parser.add_argument("--email", help="Only audit this account")
    args = parser.parse_args()
    sys.exit(1 if audit(args.email) else 0)


if __name__ == "__main__":
    main()
