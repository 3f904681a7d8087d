"""
Supabase client initialization.

This module contains *only* the database connection setup. Unlike a module
level singleton, the client is built on demand by `create_supabase_client()`
and handed to the ledger service, which passes it down to the repositories.

Environment variables required:
- SUPABASE_URL: Your Supabase project URL
- SUPABASE_KEY: Your Supabase API key (use a server-side key only on the backend)
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# The dependency is `supabase` (supabase-py). If your editor can't resolve it,
# install it in your environment: `pip install supabase`.
from supabase import Client, create_client  # type: ignore[import-not-found]

# Look for .env in the project root
ENV_PATH = Path(__file__).parent.parent / ".env"


def load_environment() -> None:
    load_dotenv(dotenv_path=ENV_PATH)


def create_supabase_client(url: Optional[str] = None, key: Optional[str] = None) -> Client:
    """
    Build the Supabase client used by every repository.

    Explicit arguments win over the environment; credentials are never
    hard-coded.
    """

    load_environment()
    supabase_url = url or os.getenv("SUPABASE_URL")
    supabase_key = key or os.getenv("SUPABASE_KEY")

    if not supabase_url:
        raise RuntimeError(
            "Missing environment variable: SUPABASE_URL. "
            "Set SUPABASE_URL to your Supabase project URL."
        )

    if not supabase_key:
        raise RuntimeError(
            "Missing environment variable: SUPABASE_KEY. "
            "Set SUPABASE_KEY to your Supabase API key."
        )

    return create_client(supabase_url, supabase_key)


__all__ = ["create_supabase_client", "load_environment", "ENV_PATH"]
