#!/usr/bin/env python3
"""
Sales Export Script

Exports a seller's committed sales to CSV, one row per line item.

Usage:
    python export_sales.py --seller-id <uuid> --output sales.csv
    python export_sales.py --seller-id <uuid> --start 2025-01-01T00:00:00Z --output january.csv
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from uuid import UUID

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from domain.time import parse_utc_datetime
from services.ledger_feed import FeedFilters
from services.ledger_service import LedgerService
from services.sales_export import generate_sales_csv


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Export committed sales from the ledger to CSV",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--seller-id", "-s", required=True, type=UUID, help="Seller whose sales are exported")
    parser.add_argument("--output", "-o", required=True, help="Path to output CSV file")
    parser.add_argument("--start", type=parse_utc_datetime, help="Earliest sold_at (ISO 8601, UTC)")
    parser.add_argument("--end", type=parse_utc_datetime, help="Latest sold_at (ISO 8601, UTC)")
    args = parser.parse_args()

    try:
        print("Fetching committed sales...")
        service = LedgerService.from_environment()
        filters = FeedFilters(start=args.start, end=args.end, seller_id=args.seller_id)
        content = generate_sales_csv(service.feed.committed_sales(filters, with_items=True))

        with open(args.output, "w", newline="", encoding="utf-8") as f:
            f.write(content)

        rows = max(len(content.splitlines()) - 1, 0)
        print()
        print("=" * 60)
        print("EXPORT SUMMARY")
        print("=" * 60)
        print(f"Line items exported: {rows}")
        print(f"Output file: {args.output}")
        print("=" * 60)
        return 0

    except KeyboardInterrupt:
        print("\n\nExport interrupted by user")
        return 130

    except Exception as e:
        print(f"\nERROR: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
