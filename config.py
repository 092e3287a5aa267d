"""Runtime configuration for the queue controller.

Everything is read from environment variables once at import time.  Defaults
are chosen so that a fresh checkout runs against a local SQLite file with
four service modules.
"""

from __future__ import annotations

import os

PROJECT_DIR = os.path.dirname(os.path.abspath(__file__))
DEFAULT_DB_URL = "sqlite:///" + os.path.join(PROJECT_DIR, "queue.db")

# Number of physical service counters, numbered 1..MODULE_COUNT.
MODULE_COUNT = int(os.getenv("MODULE_COUNT", "4"))

# memory | redis | sql
STATE_BACKEND = os.getenv("STATE_BACKEND", "sql").lower()

DATABASE_URL = os.getenv("DATABASE_URL", DEFAULT_DB_URL)
REDIS_URL = os.getenv("REDIS_URL")

STATE_KEY = os.getenv("STATE_KEY", "queue:state")
UPDATES_CHANNEL = os.getenv("UPDATES_CHANNEL", "queue:updates")

CALL_HISTORY_LIMIT = int(os.getenv("CALL_HISTORY_LIMIT", "10"))
QUEUE_PREVIEW_SIZE = int(os.getenv("QUEUE_PREVIEW_SIZE", "5"))

EVENTS_POLL_SECONDS = float(os.getenv("EVENTS_POLL_SECONDS", "1.0"))
SQL_POLL_SECONDS = float(os.getenv("SQL_POLL_SECONDS", "1.0"))

PORT = int(os.getenv("PORT", "8000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
