# ruff: noqa: INP001
"""Pytest configuration shared across backend tests."""

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Deterministic defaults for import-time settings initialization, regardless of shell env.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["DB_PERSISTENCE_ENABLED"] = "false"
os.environ["LOG_FORMAT"] = "text"
os.environ["AUTOMATION_TICK_INTERVAL_SECONDS"] = "0"
os.environ["NOTIFICATION_REDIS_URL"] = "redis://localhost:6379/15"
