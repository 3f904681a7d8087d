"""
Ledger configuration.

Values come from the environment (optionally a `.env` file in the project
root). Every setting has a default so the ledger runs without configuration;
only the Supabase credentials are mandatory, and those are read by
`repositories.client`.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path

from dotenv import load_dotenv

_ENV_PATH = Path(__file__).parent.parent / ".env"


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise RuntimeError(f"Environment variable {name} must be an integer, got {raw!r}") from None
    if value <= 0:
        raise RuntimeError(f"Environment variable {name} must be > 0, got {value}")
    return value


@dataclass(frozen=True)
class LedgerSettings:
    """
    max_write_attempts: compare-and-set attempts before ConcurrentModification
    retry_backoff_seconds: base of the exponential backoff between attempts
    credit_warning_ratio: balance/limit ratio at which an account is flagged
    feed_page_size: rows fetched per request by the reporting feed
    """

    max_write_attempts: int = 5
    retry_backoff_seconds: float = 0.05
    credit_warning_ratio: Decimal = Decimal("0.8")
    feed_page_size: int = 500
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "LedgerSettings":
        load_dotenv(dotenv_path=_ENV_PATH)

        backoff_raw = os.getenv("LEDGER_RETRY_BACKOFF_SECONDS")
        ratio_raw = os.getenv("LEDGER_CREDIT_WARNING_RATIO")
        try:
            backoff = float(backoff_raw) if backoff_raw else cls.retry_backoff_seconds
            ratio = Decimal(ratio_raw) if ratio_raw else cls.credit_warning_ratio
        except (ValueError, ArithmeticError):
            raise RuntimeError(
                "LEDGER_RETRY_BACKOFF_SECONDS and LEDGER_CREDIT_WARNING_RATIO must be numbers"
            ) from None

        return cls(
            max_write_attempts=_int_env("LEDGER_MAX_WRITE_ATTEMPTS", cls.max_write_attempts),
            retry_backoff_seconds=backoff,
            credit_warning_ratio=ratio,
            feed_page_size=_int_env("LEDGER_FEED_PAGE_SIZE", cls.feed_page_size),
            log_level=os.getenv("LEDGER_LOG_LEVEL", cls.log_level).upper(),
        )


__all__ = ["LedgerSettings"]
