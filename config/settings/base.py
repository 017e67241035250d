"""
Django settings for the fiscal invoicing platform - base configuration.
"""

import os
from pathlib import Path
from typing import Any

# ===============================================================================
# CORE DJANGO SETTINGS
# ===============================================================================

BASE_DIR = Path(__file__).resolve().parent.parent.parent

DJANGO_APPS: list[str] = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
]

THIRD_PARTY_APPS: list[str] = [
    "rest_framework",
    "django_filters",
    "django_q",  # Async task processing
]

LOCAL_APPS: list[str] = [
    "apps.common",
    "apps.invoicing",  # 🧾 Fiscal invoice generation & tax-authority submission
]

INSTALLED_APPS: list[str] = DJANGO_APPS + THIRD_PARTY_APPS + LOCAL_APPS

MIDDLEWARE: list[str] = [
    "apps.common.middleware.RequestIDMiddleware",
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "config.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "config.wsgi.application"
ASGI_APPLICATION = "config.asgi.application"

# ===============================================================================
# DATABASE CONFIGURATION
# ===============================================================================

DATABASES: dict[str, dict[str, Any]] = {
    "default": {
        "ENGINE": "django.db.backends.postgresql",
        "NAME": os.environ.get("DB_NAME", "invoicing"),
        "USER": os.environ.get("DB_USER", "invoicing"),
        "PASSWORD": os.environ.get("DB_PASSWORD", "development_password"),
        "HOST": os.environ.get("DB_HOST", "localhost"),
        "PORT": os.environ.get("DB_PORT", "5432"),
        "CONN_MAX_AGE": 60,
        "OPTIONS": {
            "application_name": "fiscal_invoicing",
        },
    }
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# ===============================================================================
# INTERNATIONALIZATION & LOCALIZATION
# ===============================================================================

LANGUAGE_CODE = "es-ec"
TIME_ZONE = "America/Guayaquil"
USE_I18N = True
USE_TZ = True

# ===============================================================================
# STATIC FILES
# ===============================================================================

STATIC_URL = "/static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

# ===============================================================================
# CACHE CONFIGURATION (Database-backed cache - no Redis needed) 💾
# ===============================================================================

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.db.DatabaseCache",
        "LOCATION": "django_cache_table",
        "KEY_PREFIX": "invoicing",
        "TIMEOUT": 300,
    }
}

# ===============================================================================
# DJANGO REST FRAMEWORK
# ===============================================================================

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "rest_framework.authentication.SessionAuthentication",
        "rest_framework.authentication.BasicAuthentication",
    ],
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.IsAdminUser",
    ],
    "DEFAULT_PAGINATION_CLASS": "rest_framework.pagination.PageNumberPagination",
    "PAGE_SIZE": 20,
    "DEFAULT_FILTER_BACKENDS": [
        "django_filters.rest_framework.DjangoFilterBackend",
    ],
}

# ===============================================================================
# DJANGO-Q2 TASK QUEUE (database broker) ⚙️
# ===============================================================================

Q_CLUSTER = {
    "name": "invoicing",
    "workers": int(os.environ.get("Q_WORKERS", "2")),
    "recycle": 500,
    "timeout": 300,
    "retry": 360,  # Must exceed timeout
    "max_attempts": 1,  # Fiscal retries are driven by the invoicing retry loop
    "queue_limit": 50,
    "bulk": 10,
    "orm": "default",
    "catch_up": False,
}

# ===============================================================================
# FISCAL INVOICING PIPELINE 🧾
# ===============================================================================

INVOICING_ENABLED = os.environ.get("INVOICING_ENABLED", "true").lower() == "true"
INVOICING_MAX_ATTEMPTS = int(os.environ.get("INVOICING_MAX_ATTEMPTS", "5"))
INVOICING_RETRY_DELAYS = [
    int(value) for value in os.environ.get("INVOICING_RETRY_DELAYS", "300,900,1800,3600,7200").split(",") if value
]
INVOICING_SUBMITTING_TIMEOUT_SECONDS = int(os.environ.get("INVOICING_SUBMITTING_TIMEOUT_SECONDS", "300"))
INVOICING_DRAFT_GRACE_SECONDS = int(os.environ.get("INVOICING_DRAFT_GRACE_SECONDS", "120"))
INVOICING_BATCH_SIZE = int(os.environ.get("INVOICING_BATCH_SIZE", "100"))
INVOICING_NUMBER_WIDTH = int(os.environ.get("INVOICING_NUMBER_WIDTH", "9"))
INVOICING_DEFAULT_TAX_RATE = os.environ.get("INVOICING_DEFAULT_TAX_RATE", "0.15")
INVOICING_CURRENCY = os.environ.get("INVOICING_CURRENCY", "USD")
INVOICING_DEFAULT_COUNTRY = os.environ.get("INVOICING_DEFAULT_COUNTRY", "Ecuador")
INVOICING_STRICT_CEDULA_CHECK = os.environ.get("INVOICING_STRICT_CEDULA_CHECK", "false").lower() == "true"
INVOICING_AUTHORITY_IDEMPOTENT = os.environ.get("INVOICING_AUTHORITY_IDEMPOTENT", "false").lower() == "true"
INVOICING_METRICS_ENABLED = os.environ.get("INVOICING_METRICS_ENABLED", "true").lower() == "true"

# Tax authority API (credentials come from the environment only)
FISCAL_AUTHORITY_API_URL = os.environ.get("FISCAL_AUTHORITY_API_URL", "http://localhost:3000")
FISCAL_AUTHORITY_EMAIL = os.environ.get("FISCAL_AUTHORITY_EMAIL", "")
FISCAL_AUTHORITY_PASSWORD = os.environ.get("FISCAL_AUTHORITY_PASSWORD", "")
FISCAL_AUTHORITY_TIMEOUT = int(os.environ.get("FISCAL_AUTHORITY_TIMEOUT", "30"))
FISCAL_AUTHORITY_ENVIRONMENT = os.environ.get("FISCAL_AUTHORITY_ENVIRONMENT", "1")  # 1=test, 2=production
FISCAL_AUTHORITY_COMPANY_RUC = os.environ.get("FISCAL_AUTHORITY_COMPANY_RUC", "")
FISCAL_AUTHORITY_SERIES = os.environ.get("FISCAL_AUTHORITY_SERIES", "001001")

# ===============================================================================
# SECURITY SETTINGS (Base - override in prod.py)
# ===============================================================================

SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "🚨 SECURITY WARNING: Using default SECRET_KEY. Set DJANGO_SECRET_KEY environment variable for production!",
        UserWarning,
        stacklevel=2,
    )
    SECRET_KEY = "django-insecure-dev-key-only-change-in-production-or-tests"  # noqa: S105


def validate_production_secret_key() -> None:
    """Validate SECRET_KEY meets production security requirements"""
    if SECRET_KEY and SECRET_KEY.startswith("django-insecure-"):
        raise ValueError(
            "🔥 CRITICAL SECURITY ERROR: Cannot use insecure SECRET_KEY in production! "
            "Generate a secure key: python -c 'from django.core.management.utils import get_random_secret_key; print(get_random_secret_key())'"
        )


SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")
