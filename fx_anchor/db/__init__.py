"""Helpers for working with the default SQLite rate table."""

from __future__ import annotations

from pathlib import Path
from typing import Final

__all__ = ["DEFAULT_SQLITE_DB_PATH", "default_sqlite_path"]

# Resolved so SQLite always receives an absolute path, even when the package is
# installed in site-packages and the working directory changes.
DEFAULT_SQLITE_DB_PATH: Final[Path] = Path(__file__).resolve().with_name("exchange_rates.db")


def default_sqlite_path() -> Path:
    """Return the absolute path to the default ``exchange_rates.db`` file."""

    return DEFAULT_SQLITE_DB_PATH
