import os

# Environment
APP_ENV = os.getenv("APP_ENV", "production").lower()
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./taskboard.db")
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379")
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "").split(",")
    if origin.strip()
]

# Ordering / concurrency
CONFLICT_MAX_RETRIES = int(os.getenv("CONFLICT_MAX_RETRIES", "3"))
COMPACT_ON_DELETE = os.getenv("COMPACT_ON_DELETE", "false").lower() in ("1", "true", "yes")

# Notifications
DUE_SOON_WINDOW_HOURS = int(os.getenv("DUE_SOON_WINDOW_HOURS", "24"))
NOTIFICATION_TTL_DAYS = int(os.getenv("NOTIFICATION_TTL_DAYS", "30"))
NOTIFICATION_HISTORY_LIMIT = int(os.getenv("NOTIFICATION_HISTORY_LIMIT", "100"))
