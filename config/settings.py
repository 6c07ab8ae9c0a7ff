"""
Configuration for the babylog infant-care tracking service.
"""
import os
from datetime import date

# ── Server ────────────────────────────────────────────────────
PORT = int(os.environ.get("PORT", 8000))
HOST = os.environ.get("HOST", "0.0.0.0")
DEBUG = os.environ.get("DEBUG", "false").lower() == "true"
LOG_LEVEL = os.environ.get("LOG_LEVEL", "DEBUG" if DEBUG else "INFO")

# ── Auth (optional) ───────────────────────────────────────────
AUTH_ENABLED = os.environ.get("AUTH_ENABLED", "false").lower() == "true"
AUTH_USERNAME = os.environ.get("AUTH_USERNAME", "admin")
AUTH_PASSWORD = os.environ.get("AUTH_PASSWORD", "changeme")

# ── Reminders ─────────────────────────────────────────────────
FEEDING_INTERVAL_HOURS = float(os.environ.get("FEEDING_INTERVAL_HOURS", 2))
FEEDING_RENOTIFY_MINUTES = float(os.environ.get("FEEDING_RENOTIFY_MINUTES", 30))
STERILIZATION_CADENCE_DAYS = int(os.environ.get("STERILIZATION_CADENCE_DAYS", 2))
BATHING_CADENCE_DAYS = int(os.environ.get("BATHING_CADENCE_DAYS", 2))
# Tummy time is due while today's minutes are below this share of the target
TUMMY_TIME_DUE_RATIO = float(os.environ.get("TUMMY_TIME_DUE_RATIO", 0.5))

# Days-since value reported when an event was never logged
NEVER_RECORDED_DAYS = 999

# ── Dosing courses ────────────────────────────────────────────
IRON_DOSE_INTERVAL_HOURS = float(os.environ.get("IRON_DOSE_INTERVAL_HOURS", 4))
IRON_DOSES_PER_DAY = int(os.environ.get("IRON_DOSES_PER_DAY", 2))
IRON_COURSE_DAYS = int(os.environ.get("IRON_COURSE_DAYS", 60))
IRON_COURSE_START = date.fromisoformat(
    os.environ.get("IRON_COURSE_START", "2025-11-01")
)

ANTI_GAS_DOSE_INTERVAL_HOURS = float(os.environ.get("ANTI_GAS_DOSE_INTERVAL_HOURS", 4))
ANTI_GAS_DOSES_PER_DAY = int(os.environ.get("ANTI_GAS_DOSES_PER_DAY", 6))
ANTI_GAS_COURSE_DAYS = int(os.environ.get("ANTI_GAS_COURSE_DAYS", 30))
ANTI_GAS_COURSE_START = date.fromisoformat(
    os.environ.get("ANTI_GAS_COURSE_START", "2025-10-20")
)

# ── Storage / scheduling ──────────────────────────────────────
UNDO_WINDOW_SECONDS = float(os.environ.get("UNDO_WINDOW_SECONDS", 5))
REMINDER_TICK_SECONDS = int(os.environ.get("REMINDER_TICK_SECONDS", 60))
REMINDER_TICKER_ENABLED = os.environ.get("REMINDER_TICKER_ENABLED", "true").lower() == "true"
DOSING_RENOTIFY_MINUTES = float(os.environ.get("DOSING_RENOTIFY_MINUTES", 30))

# ── Growth charts ─────────────────────────────────────────────
MAX_AGE_MONTHS = 24
DAYS_PER_MONTH = 30.44
