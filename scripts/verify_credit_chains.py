#!/usr/bin/env python3
"""
Credit Chain Verification Script

Replays the transaction history of credit accounts and checks it reproduces
the stored balance. A broken chain means a balance was written without its
transaction (or the other way round) and needs a manual adjustment.

Usage:
    python verify_credit_chains.py --account-id <uuid> [--account-id <uuid> ...]
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from uuid import UUID

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from domain.errors import CreditAccountNotFound
from services.ledger_service import LedgerService


def main() -> int:
    parser = argparse.ArgumentParser(description="Verify credit account transaction chains")
    parser.add_argument(
        "--account-id",
        "-a",
        action="append",
        required=True,
        type=UUID,
        help="Credit account to verify (repeatable)"
    )
    args = parser.parse_args()

    service = LedgerService.from_environment()
    broken = 0

    print("=" * 60)
    print("CREDIT CHAIN VERIFICATION")
    print("=" * 60)

    for account_id in args.account_id:
        try:
            report = service.verify_credit_chain(account_id)
        except CreditAccountNotFound:
            print(f"{account_id}: NOT FOUND")
            broken += 1
            continue

        status = "OK" if report.is_consistent else "BROKEN"
        print(f"{account_id}: {status}")
        print(f"  Transactions:     {report.transaction_count}")
        print(f"  Stored balance:   {report.current_balance}")
        print(f"  Replayed balance: {report.replayed_balance}")
        for transaction_id in report.broken_links:
            print(f"  Broken link at:   {transaction_id}")
        if not report.is_consistent:
            broken += 1

    print("=" * 60)
    print(f"Accounts checked: {len(args.account_id)}, inconsistent: {broken}")
    return 1 if broken else 0


if __name__ == "__main__":
    sys.exit(main())
