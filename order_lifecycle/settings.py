"""Runtime settings for the order lifecycle core.

Values are read once from environment variables at import time. Code reads
them with ``getattr(settings, NAME, default)`` so tests can override a value
with ``monkeypatch.setattr`` without touching the environment.
"""

import os

# Business rules
MAX_LINE_QUANTITY = int(os.getenv("ORDERS_MAX_LINE_QUANTITY", "100"))
LOW_STOCK_THRESHOLD = int(os.getenv("INVENTORY_LOW_STOCK_THRESHOLD", "10"))
DEFAULT_CURRENCY = os.getenv("ORDERS_DEFAULT_CURRENCY", "EUR")
UNPAID_ORDER_TTL_SECONDS = int(os.getenv("ORDERS_UNPAID_TTL_SECONDS", "3600"))

# Undo history kept per session
UNDO_HISTORY_LIMIT = int(os.getenv("ORDERS_UNDO_HISTORY_LIMIT", "50"))
UNDO_MAX_SESSIONS = int(os.getenv("ORDERS_UNDO_MAX_SESSIONS", "1000"))

# Persistence; unset means in-process stores
DATABASE_URL = os.getenv("DATABASE_URL")

# HTTP collaborators
USE_HTTP_ADAPTERS = os.getenv("USE_HTTP_ADAPTERS", "0") == "1"
PAYMENTS_BASE_URL = os.getenv("PAYMENTS_BASE_URL", "http://payments:9002")
ALERTS_BASE_URL = os.getenv("ALERTS_BASE_URL", "http://alerts:9003")
HTTP_TIMEOUT_SECS = float(os.getenv("HTTP_TIMEOUT_SECS", "2.0"))
HTTP_RETRY_MAX = int(os.getenv("HTTP_RETRY_MAX", "3"))
HTTP_RETRY_BACKOFF_BASE = float(os.getenv("HTTP_RETRY_BACKOFF_BASE", "0.15"))
HTTP_RETRY_MAX_SLEEP = float(os.getenv("HTTP_RETRY_MAX_SLEEP", "0.5"))
HTTP_CIRCUIT_FAIL_THRESHOLD = int(os.getenv("HTTP_CIRCUIT_FAIL_THRESHOLD", "5"))
HTTP_CIRCUIT_RESET_TIMEOUT = float(os.getenv("HTTP_CIRCUIT_RESET_TIMEOUT", "30.0"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
