"""
Shared FastAPI dependencies.

The ledger service is built once per process from the environment. Tests
replace it through `app.dependency_overrides[get_ledger_service]`.
"""

from functools import lru_cache

from services.ledger_service import LedgerService


@lru_cache(maxsize=1)
def get_ledger_service() -> LedgerService:
    return LedgerService.from_environment()
