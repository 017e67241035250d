"""
Test settings for the fiscal invoicing platform.
Fast, isolated testing environment.
"""

from .base import *  # noqa: F403

# ===============================================================================
# TEST FLAGS
# ===============================================================================

DEBUG = False
TESTING = True

# ===============================================================================
# TEST DATABASE (In-memory for speed)
# ===============================================================================

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
        "OPTIONS": {
            "timeout": 20,
        },
        "TEST": {
            "NAME": ":memory:",
            "SERIALIZE": False,
        },
    }
}

# ===============================================================================
# TEST CACHE
# ===============================================================================

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "test-cache",
    }
}

PASSWORD_HASHERS = [
    "django.contrib.auth.hashers.MD5PasswordHasher",  # Fast but insecure (test only)
]

SECRET_KEY = "django-test-key-not-secure"
ALLOWED_HOSTS = ["testserver", "localhost", "127.0.0.1"]

# ===============================================================================
# LOGGING (Minimal for tests)
# ===============================================================================

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "handlers": {
        "null": {
            "class": "logging.NullHandler",
        },
    },
    "root": {
        "handlers": ["null"],
        "level": "CRITICAL",
    },
}

# ===============================================================================
# TASK QUEUE (Synchronous for tests)
# ===============================================================================

Q_CLUSTER = {**Q_CLUSTER, "sync": True}  # noqa: F405

# ===============================================================================
# INVOICING (Deterministic test configuration)
# ===============================================================================

INVOICING_ENABLED = True
INVOICING_MAX_ATTEMPTS = 5
INVOICING_RETRY_DELAYS = [300, 900, 1800, 3600, 7200]
INVOICING_METRICS_ENABLED = False
INVOICING_STRICT_CEDULA_CHECK = False
INVOICING_AUTHORITY_IDEMPOTENT = False

FISCAL_AUTHORITY_API_URL = "https://fiscal.test"
FISCAL_AUTHORITY_EMAIL = "billing@example.com"
FISCAL_AUTHORITY_PASSWORD = "test-password"  # noqa: S105
FISCAL_AUTHORITY_TIMEOUT = 10
FISCAL_AUTHORITY_ENVIRONMENT = "1"
FISCAL_AUTHORITY_COMPANY_RUC = "1790012345001"
FISCAL_AUTHORITY_SERIES = "001001"
