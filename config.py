"""Configuration for tourney-core."""
from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _parse_int(value: str, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


# Database
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"sqlite+aiosqlite:///{Path(__file__).parent / 'tourney.db'}",
)

# Results
POINTS_FOR_WIN = _parse_int(os.getenv("POINTS_FOR_WIN", "3"), 3)
AUTO_ADVANCE_BYES = _parse_bool(os.getenv("AUTO_ADVANCE_BYES", "true"))  # Complete bye matches without an admin

# Max ids per "IN" query when fetching by id set
QUERY_CHUNK_SIZE = max(1, _parse_int(os.getenv("QUERY_CHUNK_SIZE", "10"), 10))

# Logging / API server
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = _parse_int(os.getenv("API_PORT", "8000"), 8000)
