"""Logging utilities for the fx_anchor package."""

from __future__ import annotations

import logging
from typing import Optional

_LOGGER: Optional[logging.Logger] = None


def get_logger(name: str = "fx_anchor") -> logging.Logger:
    """Return a module-level logger configured with a simple formatter."""
    global _LOGGER
    if _LOGGER is None:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        )
        _LOGGER = logging.getLogger("fx_anchor")
    return logging.getLogger(name)


def set_verbosity(verbose: bool) -> None:
    """Switch the package logger between INFO and DEBUG."""

    get_logger().setLevel(logging.DEBUG if verbose else logging.INFO)
