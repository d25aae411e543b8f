#!/usr/bin/env python3
"""
Issue a manual credit refund through the ledger.

Usage:
    python scripts/refund_credits.py --email ana@acme-studio.com --credits 1 --reference 42
"""
import argparse
import sys

from followup.core.exceptions import FollowUpException
from followup.db.session import SessionLocal
from followup.db.transaction import run_in_transaction
from followup.services.account_store import AccountStore
from followup.services.ledger import Ledger


def refund(email: str, credits: int, reference: str | None, note: str) -> bool:
    accounts = AccountStore()
    ledger = Ledger()

    def work(session):
        account = accounts.get_by_email(session, email)
        if account is None:
            return None
        return ledger.refund(session, account.id, reference or "manual", credits=credits, description=note)

    try:
        entry = run_in_transaction(SessionLocal, work, label="manual_refund")
    except FollowUpException as exc:
        print(f"❌ Refund failed: {exc.message}")
        return False
    if entry is None:
        print(f"❌ Account not found: {email}")
        return False
    print(f"✅ Refunded {credits} credit(s) to {email}. New balance: {entry.balance_after}")
    return True


def main():
    parser = argparse.ArgumentParser(description="Refund credits to an account")
    parser.add_argument("--email", required=True)
    parser.add_argument("--credits", type=int, default=1)
    parser.add_argument("--reference", help="Submission or support ticket id")
    parser.add_argument("--note", default="Manual refund")
    args = parser.parse_args()
    sys.exit(0 if refund(args.email, args.credits, args.reference, args.note) else 1)


if __name__ == "__main__":
    main()
