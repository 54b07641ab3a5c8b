"""Application constants and configuration values."""

from core.config import FRONTEND_URL

# Database field lengths
MAX_STRING_LENGTH = 255
MAX_NOTES_LENGTH = 5000

# Database connection settings
DB_POOL_RECYCLE_SECONDS = 300  # 5 minutes

# CORS origins for development and production
_CORS_ORIGINS_RAW = [
    "http://localhost:5173",      # React dev server (Vite)
    FRONTEND_URL,
]

# Filter out None values and empty strings to avoid CORS errors
CORS_ORIGINS = [origin for origin in _CORS_ORIGINS_RAW if origin and origin.strip()]

# Session payment states
PAYMENT_STATUS_PENDING = "pending"
PAYMENT_STATUS_PAID = "paid"
PAYMENT_STATUS_CANCELLED = "cancelled"
PAYMENT_STATUSES = (PAYMENT_STATUS_PENDING, PAYMENT_STATUS_PAID, PAYMENT_STATUS_CANCELLED)

# Patient session frequencies
FREQUENCY_WEEKLY = "weekly"
FREQUENCY_BIWEEKLY = "biweekly"
FREQUENCY_MONTHLY = "monthly"
FREQUENCY_AS_NEEDED = "as_needed"

# Weeks between generated occurrences. 0 means a single occurrence.
FREQUENCY_INTERVAL_WEEKS = {
    FREQUENCY_WEEKLY: 1,
    FREQUENCY_BIWEEKLY: 2,
    FREQUENCY_MONTHLY: 4,
    FREQUENCY_AS_NEEDED: 0,
}

DEFAULT_SESSION_TYPE = "Individual Session"

# Financial records created for paid sessions
TRANSACTION_TYPE_INCOME = "income"
DEFAULT_PAYMENT_METHOD = "cash"
SESSION_FINANCIAL_CATEGORY = "session"

# Public booking availability grid (practice timezone)
SLOT_INTERVAL_MINUTES = 60
WORKDAY_START_HOUR = 8
WORKDAY_END_HOUR = 20

# Auto-renewal scheduler
AUTO_RENEW_SCHEDULER_MAX_INSTANCES = 1  # Prevent overlapping scheduler runs
