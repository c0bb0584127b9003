import os

db_url = os.environ.get("DB_URL", "sqlite://:memory:")
generate_schemas = os.environ.get("GENERATE_SCHEMAS", "true").lower() in ("1", "true", "yes")
users_ms_url = os.environ.get("USERS_MS_URL", "http://localhost:8000")
REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379/0")
VENUE_TIMEZONE = os.environ.get("VENUE_TIMEZONE", "UTC")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

MIN_BOOKING_HOURS = 1
MAX_BOOKING_HOURS = 24
