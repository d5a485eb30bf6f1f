import os
from pathlib import Path

# Path to the SQLite database file used by stores. Can be overridden
# using the ROBOT_ORCHESTRA_DB_PATH environment variable.
DB_PATH = os.environ.get("ROBOT_ORCHESTRA_DB_PATH", str(Path(__file__).parent / "db.sqlite3"))

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
CORS_ORIGINS = [o.strip() for o in os.environ.get("CORS_ORIGINS", "http://localhost:3000").split(",") if o.strip()]

# Queue / notification endpoints
CELERY_BROKER_URL = os.environ.get("CELERY_BROKER_URL", "redis://localhost:6379/0")
CELERY_RESULT_BACKEND = os.environ.get("CELERY_RESULT_BACKEND", "redis://localhost:6379/1")
REDIS_URL = os.environ.get("REDIS_URL", "")  # empty disables state-update notifications

# Response-provider (AI service). Empty means "always use fallback content".
AI_SERVICE_URL = os.environ.get("AI_SERVICE_URL", "")
AI_SERVICE_TIMEOUT = float(os.environ.get("AI_SERVICE_TIMEOUT", "20"))

# Match defaults
DEFAULT_TOTAL_ROUNDS = int(os.environ.get("DEFAULT_TOTAL_ROUNDS", "5"))
RESPONSE_TIME_LIMIT = int(os.environ.get("RESPONSE_TIME_LIMIT", "45"))  # seconds
HISTORY_PAGE_SIZE = int(os.environ.get("HISTORY_PAGE_SIZE", "50"))

# Retry policy for the response-provider
AI_RETRY_MAX_ATTEMPTS = int(os.environ.get("AI_RETRY_MAX_ATTEMPTS", "3"))
AI_RETRY_BASE_DELAY = float(os.environ.get("AI_RETRY_BASE_DELAY", "1.0"))
AI_RETRY_MAX_JITTER = float(os.environ.get("AI_RETRY_MAX_JITTER", "0.5"))
AI_STAGGER_SECONDS = float(os.environ.get("AI_STAGGER_SECONDS", "2.0"))

# Optimistic-concurrency retries for read-modify-write on a match
MAX_WRITE_ATTEMPTS = int(os.environ.get("MAX_WRITE_ATTEMPTS", "5"))
WRITE_RETRY_BASE_DELAY = float(os.environ.get("WRITE_RETRY_BASE_DELAY", "0.01"))
WRITE_RETRY_MAX_JITTER = float(os.environ.get("WRITE_RETRY_MAX_JITTER", "0.02"))
WRITE_RETRY_MAX_DELAY = float(os.environ.get("WRITE_RETRY_MAX_DELAY", "0.25"))

# How often the API process looks for rounds that ran out of time
TIMEOUT_SWEEP_SECONDS = int(os.environ.get("TIMEOUT_SWEEP_SECONDS", "15"))
SESSION_MAX_AGE_HOURS = int(os.environ.get("SESSION_MAX_AGE_HOURS", "12"))

# Retention: matches untouched for this many days are deleted by Celery beat
STALE_MATCH_DAYS = int(os.environ.get("STALE_MATCH_DAYS", "30"))
