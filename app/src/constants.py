"""
Application configuration and constants for the Tour Bus API Server.

This module centralizes environment-based configuration, scheduling windows,
ledger rates, timezones, and other constants.

Configuration values can be overridden via environment variables.
"""

from os import environ
from zoneinfo import ZoneInfo


# ---------------------------------------------------------------------------
# Application metadata
# ---------------------------------------------------------------------------
API_TITLE = "Tour Bus API Server"
API_VERSION = "1.0.0"


# ---------------------------------------------------------------------------
# Database configuration
# ---------------------------------------------------------------------------
PSQL_DB_DRIVER = environ.get("PSQL_DB_DRIVER", "postgresql")
PSQL_DB_USERNAME = environ.get("PSQL_DB_USERNAME", "postgres")
PSQL_DB_PORT = environ.get("PSQL_DB_PORT", "5432")
PSQL_DB_PASSWORD = environ.get("PSQL_DB_PASSWORD", "password")
PSQL_DB_HOST = environ.get("PSQL_DB_HOST", "localhost")
PSQL_DB_NAME = environ.get("PSQL_DB_NAME", "postgres")

# A complete SQLAlchemy URL takes precedence over the PostgreSQL parts
DB_URL = environ.get(
    "DB_URL",
    f"{PSQL_DB_DRIVER}://{PSQL_DB_USERNAME}:{PSQL_DB_PASSWORD}@{PSQL_DB_HOST}:{PSQL_DB_PORT}/{PSQL_DB_NAME}",
)


# ---------------------------------------------------------------------------
# OpenObserve configuration
# ---------------------------------------------------------------------------
OPENOBSERVE_PROTOCOL = environ.get("OPENOBSERVE_PROTOCOL", "http")
OPENOBSERVE_HOST = environ.get("OPENOBSERVE_HOST", "localhost")
OPENOBSERVE_PORT = environ.get("OPENOBSERVE_PORT", "5080")
OPENOBSERVE_USERNAME = environ.get("OPENOBSERVE_USERNAME", "admin@tourbus.lk")
OPENOBSERVE_PASSWORD = environ.get("OPENOBSERVE_PASSWORD", "password")
OPENOBSERVE_ORG = environ.get("OPENOBSERVE_ORG", "tourbus")
OPENOBSERVE_STREAM = environ.get("OPENOBSERVE_STREAM", "tourbus-core-server")


# ---------------------------------------------------------------------------
# Redis configuration
# ---------------------------------------------------------------------------
REDIS_HOST = environ.get("REDIS_HOST", "localhost")
REDIS_PORT = environ.get("REDIS_PORT", "6379")
REDIS_PASSWORD = environ.get("REDIS_PASSWORD", "password")


# ---------------------------------------------------------------------------
# Redis mutex lock constants
# ---------------------------------------------------------------------------
MUTEX_LOCK_TIMEOUT = 10  # Lock timeout (in seconds)
MUTEX_LOCK_MAX_WAIT_TIME = 60  # Max blocking wait time (in seconds)


# ---------------------------------------------------------------------------
# Tour constraints
# ---------------------------------------------------------------------------
# A driver may start a tour from TOUR_START_EARLY_WINDOW minutes before the
# scheduled start until TOUR_START_LATE_WINDOW minutes after it.
TOUR_START_EARLY_WINDOW = int(environ.get("TOUR_START_EARLY_WINDOW", "5"))
TOUR_START_LATE_WINDOW = int(environ.get("TOUR_START_LATE_WINDOW", "30"))
MIN_STOPS_IN_ROUTE = 2  # Minimum number of stops per route
RECENT_TOUR_COUNT = 5  # Tours listed in the analytics summary


# ---------------------------------------------------------------------------
# Notification scheduler constants
# ---------------------------------------------------------------------------
NOTIFICATION_SCHEDULER = environ.get("NOTIFICATION_SCHEDULER", "enabled")
NOTIFICATION_CHECK_INTERVAL = 60  # Polling interval (in seconds)
NOTIFICATION_LEAD_TIME = 5  # Starting soon notice (in minutes)


# ---------------------------------------------------------------------------
# Live tracker constants
# ---------------------------------------------------------------------------
TRACKER_REFRESH_INTERVAL = 30  # Client polling cadence (in seconds)
TRACKER_STARTING_POINT = "Starting point"
TRACKER_FINAL_DESTINATION = "Final destination"
TRACKER_ARRIVED = "Arrived"
TRACKER_CALCULATING = "Calculating..."


# ---------------------------------------------------------------------------
# Ledger constants
# ---------------------------------------------------------------------------
OWNER_EARNING_PERCENTAGE = int(environ.get("OWNER_EARNING_PERCENTAGE", "10"))
CURRENCY = "LKR"


# ---------------------------------------------------------------------------
# Timezone constants
# ---------------------------------------------------------------------------
TMZ_PRIMARY = ZoneInfo("UTC")
TMZ_SECONDARY = ZoneInfo("Asia/Colombo")
