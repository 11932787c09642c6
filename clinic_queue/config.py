import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./clinic_queue.db")

# Connection pool (ignored for SQLite)
DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "20"))
DB_MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "30"))
DB_POOL_TIMEOUT = int(os.getenv("DB_POOL_TIMEOUT", "30"))
DB_POOL_RECYCLE = int(os.getenv("DB_POOL_RECYCLE", "300"))
DB_LOG_SLOW_QUERIES = os.getenv("DB_LOG_SLOW_QUERIES", "true").lower() == "true"
DB_SLOW_QUERY_THRESHOLD = float(os.getenv("DB_SLOW_QUERY_THRESHOLD", "1.0"))

# How long an allocation may wait on a daily capacity row lock before failing closed
DB_LOCK_TIMEOUT_MS = int(os.getenv("DB_LOCK_TIMEOUT_MS", "5000"))
SQLITE_BUSY_TIMEOUT_SECONDS = float(os.getenv("SQLITE_BUSY_TIMEOUT_SECONDS", "30"))

# Bounded retry for transient allocation conflicts (serialization failures, racing inserts)
ALLOCATION_RETRY_ATTEMPTS = max(1, int(os.getenv("ALLOCATION_RETRY_ATTEMPTS", "3")))
ALLOCATION_RETRY_BASE_DELAY = float(os.getenv("ALLOCATION_RETRY_BASE_DELAY", "0.05"))

# Clinic policy defaults, used until an admin saves the clinic settings row
BOOKING_HORIZON_DAYS = int(os.getenv("BOOKING_HORIZON_DAYS", "30"))
STRICT_CHECK_IN = os.getenv("STRICT_CHECK_IN", "false").lower() == "true"
CHECK_IN_EARLY_MINUTES = int(os.getenv("CHECK_IN_EARLY_MINUTES", "120"))
CHECK_IN_LATE_MINUTES = int(os.getenv("CHECK_IN_LATE_MINUTES", "60"))
AUTO_CANCEL_ENABLED = os.getenv("AUTO_CANCEL_ENABLED", "false").lower() == "true"
AUTO_CANCEL_GRACE_MINUTES = int(os.getenv("AUTO_CANCEL_GRACE_MINUTES", "30"))
CLINIC_NAME = os.getenv("CLINIC_NAME", "Klinik")

# Shared secret for the cron-driven no-show sweep
CRON_SECRET = os.getenv("CRON_SECRET")
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")

# Public booking endpoints rate limit (per client IP)
BOOKING_RATE_LIMIT = int(os.getenv("BOOKING_RATE_LIMIT", "30"))
BOOKING_RATE_WINDOW_SECONDS = int(os.getenv("BOOKING_RATE_WINDOW_SECONDS", "60"))

# Clinic policy cache TTL in Redis
SETTINGS_CACHE_TTL = int(os.getenv("SETTINGS_CACHE_TTL", "300"))
