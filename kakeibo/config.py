"""Configuration management for the kakeibo ledger.

This module centralizes all configuration values including paths,
defaults, and environment variable overrides.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

# Base project root - assumes this file is in kakeibo/
_PROJECT_ROOT = Path(__file__).parent.parent.resolve()

# Data directory
DATA_DIR = Path(os.getenv("KAKEIBO_DATA_DIR", _PROJECT_ROOT / "data"))

# Database
DB_PATH = Path(
    os.getenv("KAKEIBO_DB_PATH", DATA_DIR / "kakeibo.db")
).resolve()

# Display currency; amounts are never converted
CURRENCY_CODE = os.getenv("KAKEIBO_CURRENCY", "IDR")

LOG_LEVEL = os.getenv("KAKEIBO_LOG_LEVEL", "WARNING").upper()

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def ensure_data_directories() -> None:
    """Create the data directory if it doesn't exist."""
    DATA_DIR.mkdir(parents=True, exist_ok=True)


def configure_logging(level: str | int | None = None) -> None:
    """Configure the root logger once for command-line use."""
    resolved = level if level is not None else LOG_LEVEL
    if isinstance(resolved, str):
        resolved = logging.getLevelName(resolved.upper())
        if not isinstance(resolved, int):
            resolved = logging.WARNING
    logging.basicConfig(level=resolved, format=LOG_FORMAT)
