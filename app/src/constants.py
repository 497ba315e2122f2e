"""
Application configuration and constants for FuelTrack API Server.

This module centralizes environment-based configuration, resource limits,
regular expressions, decimal precision and other constants.

Configuration values can be overridden via environment variables.
"""

from os import environ
from decimal import Decimal
from zoneinfo import ZoneInfo


# ---------------------------------------------------------------------------
# Application metadata
# ---------------------------------------------------------------------------
API_TITLE = "FuelTrack API Server"
API_VERSION = "1.0.0"


# ---------------------------------------------------------------------------
# PostgreSQL configuration
# ---------------------------------------------------------------------------
PSQL_DB_DRIVER = environ.get("PSQL_DB_DRIVER", "postgresql")
PSQL_DB_USERNAME = environ.get("PSQL_DB_USERNAME", "postgres")
PSQL_DB_PORT = environ.get("PSQL_DB_PORT", "5432")
PSQL_DB_PASSWORD = environ.get("PSQL_DB_PASSWORD", "password")
PSQL_DB_HOST = environ.get("PSQL_DB_HOST", "localhost")
PSQL_DB_NAME = environ.get("PSQL_DB_NAME", "fueltrack")


# ---------------------------------------------------------------------------
# OpenObserve configuration
# ---------------------------------------------------------------------------
OPENOBSERVE_ENABLED = environ.get("OPENOBSERVE_ENABLED", "true").lower() == "true"
OPENOBSERVE_PROTOCOL = environ.get("OPENOBSERVE_PROTOCOL", "http")
OPENOBSERVE_HOST = environ.get("OPENOBSERVE_HOST", "localhost")
OPENOBSERVE_PORT = environ.get("OPENOBSERVE_PORT", "5080")
OPENOBSERVE_USERNAME = environ.get("OPENOBSERVE_USERNAME", "admin@fueltrack.com")
OPENOBSERVE_PASSWORD = environ.get("OPENOBSERVE_PASSWORD", "password")
OPENOBSERVE_ORG = environ.get("OPENOBSERVE_ORG", "fueltrack")
OPENOBSERVE_STREAM = environ.get("OPENOBSERVE_STREAM", "fueltrack-server")
# Seconds to wait for the log collector before giving up on an event
OPENOBSERVE_TIMEOUT = int(environ.get("OPENOBSERVE_TIMEOUT", "5"))


# ---------------------------------------------------------------------------
# Redis configuration
# ---------------------------------------------------------------------------
REDIS_HOST = environ.get("REDIS_HOST", "localhost")
REDIS_PORT = environ.get("REDIS_PORT", "6379")
REDIS_PASSWORD = environ.get("REDIS_PASSWORD", "password")
REDIS_DB = int(environ.get("REDIS_DB", "0"))
REDIS_SOCKET_TIMEOUT = int(environ.get("REDIS_SOCKET_TIMEOUT", "5"))


# ---------------------------------------------------------------------------
# Card encryption
# ---------------------------------------------------------------------------
# Fernet key (32 url-safe base64-encoded bytes)
CARD_ENCRYPTION_KEY = environ.get(
    "CARD_ENCRYPTION_KEY", "ZnVlbHRyYWNrLWRldmVsb3BtZW50LWNhcmQta2V5MDA="
)


# ---------------------------------------------------------------------------
# Resource upper limits
# ---------------------------------------------------------------------------
MAX_USER_TOKENS = 5  # Maximum access tokens per user
MAX_TOKEN_VALIDITY = 7 * 24 * 60 * 60  # Access token validity (in seconds, 7 days)
MAX_REFRESH_TOKEN_VALIDITY = 30 * 24 * 60 * 60  # Refresh token validity (30 days)


# ---------------------------------------------------------------------------
# Regex constants (input validation)
# ---------------------------------------------------------------------------
REGEX_PASSWORD = r"^[a-zA-Z0-9-+,.@_$%&*#!^=/?]*$"
REGEX_LICENSE_PLATE = r"^[A-Z0-9][A-Z0-9 -]*$"
REGEX_LICENSE_NUMBER = r"^[A-Z0-9][A-Z0-9-]*$"
REGEX_CARD_NUMBER = r"^[0-9]{12,19}$"


# ---------------------------------------------------------------------------
# Decimal constants
# ---------------------------------------------------------------------------
DECIMAL_PRECISION = 18  # Significant digits of money and quantity columns
DECIMAL_SCALE = 2  # Fractional digits of money and quantity columns
DECIMAL_QUANTUM = Decimal(1).scaleb(-DECIMAL_SCALE)  # 0.01


# ---------------------------------------------------------------------------
# Order constants
# ---------------------------------------------------------------------------
ORDER_NUMBER_PREFIX = "FT"
ORDER_NUMBER_RANDOM_BYTES = 4  # Hex bytes appended to the order number


# ---------------------------------------------------------------------------
# Timezone constants
# ---------------------------------------------------------------------------
TMZ_PRIMARY = ZoneInfo("UTC")


# ---------------------------------------------------------------------------
# Redis mutex lock constants
# ---------------------------------------------------------------------------
MUTEX_LOCK_TIMEOUT = 10  # Lock timeout (in seconds)
MUTEX_LOCK_MAX_WAIT_TIME = 60  # Max blocking wait time (in seconds)
