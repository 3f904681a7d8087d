"""
Check stock status - which products are at or below their minimum level.
"""

import argparse
import sys
from pathlib import Path
from uuid import UUID

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from services.ledger_service import LedgerService


def check_stock_status(owner_id: UUID) -> int:
    """Print the owner's catalogue and flag low-stock products."""

    service = LedgerService.from_environment()
    products = service.products.list_by_owner(owner_id)
    low_stock = service.low_stock_products(owner_id)

    print("=" * 50)
    print("STOCK STATUS")
    print("=" * 50)
    print(f"Owner:                     {owner_id}")
    print(f"Products:                  {len(products)}")
    print(f"Units on hand:             {sum(p.quantity_on_hand for p in products)}")
    print(f"At or below minimum:       {len(low_stock)}")
    print("=" * 50)

    if low_stock:
        print("\nLow stock:")
        print("-" * 50)
        for product in low_stock:
            print(f"{product.name}: {product.quantity_on_hand} on hand (minimum {product.min_stock_level})")
        print("-" * 50)

    return 1 if low_stock else 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Report products at or below their minimum stock level")
    parser.add_argument("--owner-id", required=True, type=UUID, help="Seller whose catalogue is checked")
    args = parser.parse_args()
    return check_stock_status(args.owner_id)


if __name__ == "__main__":
    sys.exit(main())
