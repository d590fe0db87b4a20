"""Runtime configuration loaded from the environment (and an optional .env file)."""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(override=True)

DEFAULT_DB_PATH = Path(__file__).parent / "queue_store" / "clinic_queue.db"

DB_PATH = Path(os.environ.get("CLINIC_QUEUE_DB", DEFAULT_DB_PATH))

# Seconds to wait for the database write lock before giving up
LOCK_TIMEOUT = float(os.environ.get("CLINIC_QUEUE_LOCK_TIMEOUT", "5.0"))

# Internal retries on lock timeout before the error reaches the caller
LOCK_RETRIES = int(os.environ.get("CLINIC_QUEUE_LOCK_RETRIES", "3"))
RETRY_BACKOFF = float(os.environ.get("CLINIC_QUEUE_RETRY_BACKOFF", "0.05"))

LOG_LEVEL = os.environ.get("CLINIC_QUEUE_LOG_LEVEL", "INFO")
