"""Centralized constants for the cardwise scheduler.

All magic numbers and configuration defaults live here so every layer
imports from a single source of truth.
"""

# ---------- SM-2 ----------
INITIAL_EASE = 2.5
MIN_EASE = 1.3
FIRST_INTERVAL_DAYS = 1
SECOND_INTERVAL_DAYS = 6
RELEARN_INTERVAL_DAYS = 1
PASSING_GRADE = 2

# ---------- Sessions ----------
DEFAULT_PAGE_SIZE = 50
DEFAULT_MAX_CARDS_PER_SESSION = 200
MAX_SESSION_CARDS = 500
MAX_RETAINED_SESSIONS = 256

# ---------- HTTP ----------
REQUEST_TIMEOUT = 30.0
DEFAULT_API_URL = "http://localhost:8080/api"

# ---------- Accuracy bands (percent) ----------
ACCURACY_EXCELLENT = 90
ACCURACY_GOOD = 80
ACCURACY_AVERAGE = 60
ACCURACY_POOR = 40
