"""Configuration management for the spend dashboard.

This module centralizes all configuration values including paths,
defaults, thresholds and environment variable overrides.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

# Base project root - assumes this file is in spend_dashboard/
_PROJECT_ROOT = Path(__file__).parent.parent.resolve()

# Data directories
DATA_DIR = Path(os.getenv("SPEND_DASHBOARD_DATA_DIR", _PROJECT_ROOT / "data"))

# Database
DB_PATH = Path(
    os.getenv("SPEND_DASHBOARD_DB_PATH", DATA_DIR / "spend_dashboard.db")
).resolve()

# How far ahead of today budget periods are generated
GENERATION_HORIZON_DAYS = int(os.getenv("SPEND_DASHBOARD_HORIZON_DAYS", "365"))

# Transactions list page size
DEFAULT_PAGE_SIZE = int(os.getenv("SPEND_DASHBOARD_PAGE_SIZE", "50"))

LOG_LEVEL = os.getenv("SPEND_DASHBOARD_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Budget status thresholds, in percent of the budgeted amount
NEAR_LIMIT_THRESHOLD = 80.0
OVER_BUDGET_THRESHOLD = 100.0

# Rule confidence defaults (0-100)
DEFAULT_RULE_CONFIDENCE = 50
QUICK_RULE_CONFIDENCE = 80

DEFAULT_CATEGORY_COLOR = "bg-gray-500"


def ensure_data_directories() -> None:
    """Create all required data directories if they don't exist."""
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging for scripts and interactive use."""
    logging.basicConfig(level=(level or LOG_LEVEL).upper(), format=LOG_FORMAT)
