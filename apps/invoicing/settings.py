"""
Invoicing pipeline settings.

Typed access to every knob of the invoice pipeline and the tax authority
client. Values are read from Django settings (populated from the environment
in config/settings/base.py) and fall back to INVOICING_DEFAULTS.

Usage:
    from apps.invoicing.settings import invoicing_settings

    if invoice.retry_count >= invoicing_settings.max_attempts:
        ...
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any

from django.conf import settings as django_settings

logger = logging.getLogger(__name__)

# Authority client timeout is clamped to this window (seconds)
MIN_AUTHORITY_TIMEOUT = 10
MAX_AUTHORITY_TIMEOUT = 30


class InvoicingSettingKeys:
    """Django setting names used by the invoicing pipeline."""

    ENABLED = "INVOICING_ENABLED"
    MAX_ATTEMPTS = "INVOICING_MAX_ATTEMPTS"
    RETRY_DELAYS = "INVOICING_RETRY_DELAYS"
    SUBMITTING_TIMEOUT_SECONDS = "INVOICING_SUBMITTING_TIMEOUT_SECONDS"
    DRAFT_GRACE_SECONDS = "INVOICING_DRAFT_GRACE_SECONDS"
    BATCH_SIZE = "INVOICING_BATCH_SIZE"
    NUMBER_WIDTH = "INVOICING_NUMBER_WIDTH"
    SEQUENCE_SCOPE = "INVOICING_SEQUENCE_SCOPE"
    DEFAULT_TAX_RATE = "INVOICING_DEFAULT_TAX_RATE"
    CURRENCY = "INVOICING_CURRENCY"
    DEFAULT_COUNTRY = "INVOICING_DEFAULT_COUNTRY"
    TOTAL_TOLERANCE = "INVOICING_TOTAL_TOLERANCE"
    STRICT_CEDULA_CHECK = "INVOICING_STRICT_CEDULA_CHECK"
    AUTHORITY_IDEMPOTENT = "INVOICING_AUTHORITY_IDEMPOTENT"
    METRICS_ENABLED = "INVOICING_METRICS_ENABLED"
    METRICS_PREFIX = "INVOICING_METRICS_PREFIX"

    AUTHORITY_API_URL = "FISCAL_AUTHORITY_API_URL"
    AUTHORITY_EMAIL = "FISCAL_AUTHORITY_EMAIL"
    AUTHORITY_PASSWORD = "FISCAL_AUTHORITY_PASSWORD"  # noqa: S105
    AUTHORITY_TIMEOUT = "FISCAL_AUTHORITY_TIMEOUT"
    AUTHORITY_ENVIRONMENT = "FISCAL_AUTHORITY_ENVIRONMENT"
    AUTHORITY_COMPANY_RUC = "FISCAL_AUTHORITY_COMPANY_RUC"
    AUTHORITY_SERIES = "FISCAL_AUTHORITY_SERIES"


INVOICING_DEFAULTS: dict[str, Any] = {
    InvoicingSettingKeys.ENABLED: True,
    InvoicingSettingKeys.MAX_ATTEMPTS: 5,
    InvoicingSettingKeys.RETRY_DELAYS: [300, 900, 1800, 3600, 7200],  # 5m, 15m, 30m, 1h, 2h
    InvoicingSettingKeys.SUBMITTING_TIMEOUT_SECONDS: 300,
    InvoicingSettingKeys.DRAFT_GRACE_SECONDS: 120,
    InvoicingSettingKeys.BATCH_SIZE: 100,
    InvoicingSettingKeys.NUMBER_WIDTH: 9,
    InvoicingSettingKeys.SEQUENCE_SCOPE: "invoice",
    InvoicingSettingKeys.DEFAULT_TAX_RATE: "0.15",
    InvoicingSettingKeys.CURRENCY: "USD",
    InvoicingSettingKeys.DEFAULT_COUNTRY: "Ecuador",
    InvoicingSettingKeys.TOTAL_TOLERANCE: "0.01",
    InvoicingSettingKeys.STRICT_CEDULA_CHECK: False,
    InvoicingSettingKeys.AUTHORITY_IDEMPOTENT: False,
    InvoicingSettingKeys.METRICS_ENABLED: True,
    InvoicingSettingKeys.METRICS_PREFIX: "invoicing",
    InvoicingSettingKeys.AUTHORITY_API_URL: "",
    InvoicingSettingKeys.AUTHORITY_EMAIL: "",
    InvoicingSettingKeys.AUTHORITY_PASSWORD: "",
    InvoicingSettingKeys.AUTHORITY_TIMEOUT: 30,
    InvoicingSettingKeys.AUTHORITY_ENVIRONMENT: "1",
    InvoicingSettingKeys.AUTHORITY_COMPANY_RUC: "",
    InvoicingSettingKeys.AUTHORITY_SERIES: "001001",
}


# ===============================================================================
# SETTINGS SERVICE
# ===============================================================================


class InvoicingSettings:
    """
    Type-safe access to invoicing configuration.

    Every property is read on access, so `override_settings` in tests and
    runtime environment changes are picked up without restarting workers.
    """

    def _get_setting(self, key: str, default: Any = None) -> Any:
        """Get setting with fallback chain: Django settings -> defaults table -> default."""
        value = getattr(django_settings, key, None)
        if value is not None:
            return value
        return INVOICING_DEFAULTS.get(key, default)

    def _get_string(self, key: str, default: str = "") -> str:
        value = self._get_setting(key, default)
        return str(value) if value is not None else default

    def _get_int(self, key: str, default: int = 0) -> int:
        value = self._get_setting(key, default)
        try:
            return int(value)
        except (ValueError, TypeError):
            logger.warning(f"⚠️ [Invoicing] Invalid integer for {key}: {value!r}, using {default}")
            return default

    def _get_bool(self, key: str, default: bool = False) -> bool:
        value = self._get_setting(key, default)
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            return value.lower() in ("true", "1", "yes", "on")
        return bool(value)

    def _get_decimal(self, key: str, default: str = "0") -> Decimal:
        value = self._get_setting(key, default)
        try:
            return Decimal(str(value))
        except (InvalidOperation, ValueError):
            logger.warning(f"⚠️ [Invoicing] Invalid decimal for {key}: {value!r}, using {default}")
            return Decimal(default)

    def _get_int_list(self, key: str, default: list[int]) -> list[int]:
        value = self._get_setting(key, default)
        if isinstance(value, str):
            value = [part for part in value.split(",") if part.strip()]
        try:
            delays = [int(item) for item in value]
        except (ValueError, TypeError):
            logger.warning(f"⚠️ [Invoicing] Invalid list for {key}: {value!r}, using defaults")
            return list(default)
        return delays or list(default)

    # ===== General =====

    @property
    def enabled(self) -> bool:
        return self._get_bool(InvoicingSettingKeys.ENABLED, True)

    @property
    def metrics_enabled(self) -> bool:
        return self._get_bool(InvoicingSettingKeys.METRICS_ENABLED, True)

    @property
    def metrics_prefix(self) -> str:
        return self._get_string(InvoicingSettingKeys.METRICS_PREFIX, "invoicing")

    # ===== Assembly =====

    @property
    def number_width(self) -> int:
        """Width of the zero-padded invoice number."""
        return self._get_int(InvoicingSettingKeys.NUMBER_WIDTH, 9)

    @property
    def sequence_scope(self) -> str:
        return self._get_string(InvoicingSettingKeys.SEQUENCE_SCOPE, "invoice")

    @property
    def default_tax_rate(self) -> Decimal:
        """Tax rate applied to order lines that do not carry their own rate."""
        return self._get_decimal(InvoicingSettingKeys.DEFAULT_TAX_RATE, "0.15")

    @property
    def currency(self) -> str:
        return self._get_string(InvoicingSettingKeys.CURRENCY, "USD")

    @property
    def default_country(self) -> str:
        return self._get_string(InvoicingSettingKeys.DEFAULT_COUNTRY, "Ecuador")

    @property
    def total_tolerance(self) -> Decimal:
        """Maximum accepted difference between computed totals and the order's own totals."""
        return self._get_decimal(InvoicingSettingKeys.TOTAL_TOLERANCE, "0.01")

    @property
    def strict_cedula_check(self) -> bool:
        return self._get_bool(InvoicingSettingKeys.STRICT_CEDULA_CHECK, False)

    # ===== Submission & Retry =====

    @property
    def max_attempts(self) -> int:
        """Number of transient failures after which an invoice is definitively failed."""
        return max(1, self._get_int(InvoicingSettingKeys.MAX_ATTEMPTS, 5))

    @property
    def retry_delays(self) -> list[int]:
        """Backoff delays in seconds, indexed by attempt number."""
        return self._get_int_list(InvoicingSettingKeys.RETRY_DELAYS, INVOICING_DEFAULTS[InvoicingSettingKeys.RETRY_DELAYS])

    def get_retry_delay(self, attempt: int) -> int:
        """Get delay in seconds before retrying after the given attempt (1-based)."""
        delays = self.retry_delays
        index = min(attempt - 1, len(delays) - 1)
        return delays[index] if index >= 0 else delays[0]

    @property
    def submitting_timeout_seconds(self) -> int:
        """Age after which an invoice still in SUBMITTING is considered stuck."""
        return self._get_int(InvoicingSettingKeys.SUBMITTING_TIMEOUT_SECONDS, 300)

    @property
    def draft_grace_seconds(self) -> int:
        return self._get_int(InvoicingSettingKeys.DRAFT_GRACE_SECONDS, 120)

    @property
    def batch_size(self) -> int:
        return self._get_int(InvoicingSettingKeys.BATCH_SIZE, 100)

    @property
    def authority_idempotent(self) -> bool:
        """Whether resubmitting identical content to the authority is known to be safe."""
        return self._get_bool(InvoicingSettingKeys.AUTHORITY_IDEMPOTENT, False)

    # ===== Tax Authority =====

    @property
    def authority_api_url(self) -> str:
        return self._get_string(InvoicingSettingKeys.AUTHORITY_API_URL).rstrip("/")

    @property
    def authority_email(self) -> str:
        return self._get_string(InvoicingSettingKeys.AUTHORITY_EMAIL)

    @property
    def authority_password(self) -> str:
        return self._get_string(InvoicingSettingKeys.AUTHORITY_PASSWORD)

    @property
    def authority_timeout(self) -> int:
        timeout = self._get_int(InvoicingSettingKeys.AUTHORITY_TIMEOUT, 30)
        return min(max(timeout, MIN_AUTHORITY_TIMEOUT), MAX_AUTHORITY_TIMEOUT)

    @property
    def authority_environment(self) -> str:
        """'1' for the test environment, '2' for production."""
        return self._get_string(InvoicingSettingKeys.AUTHORITY_ENVIRONMENT, "1")

    @property
    def company_ruc(self) -> str:
        return self._get_string(InvoicingSettingKeys.AUTHORITY_COMPANY_RUC)

    @property
    def series(self) -> str:
        """Establishment + emission point, 6 digits (e.g. 001001)."""
        return self._get_string(InvoicingSettingKeys.AUTHORITY_SERIES, "001001")

    # ===== Validation =====

    def validate_configuration(self) -> list[str]:
        """Validate configuration and return list of issues."""
        issues = []

        if not self.authority_api_url:
            issues.append("Tax authority API URL is not configured")
        if not self.authority_email:
            issues.append("Tax authority account email is not configured")
        if not self.authority_password:
            issues.append("Tax authority account password is not configured")
        if not (self.company_ruc.isdigit() and len(self.company_ruc) == 13):
            issues.append("Company RUC must be 13 digits")
        if not (self.series.isdigit() and len(self.series) == 6):
            issues.append("Series (establishment + emission point) must be 6 digits")
        if self.authority_environment not in ("1", "2"):
            issues.append("Tax authority environment must be '1' (test) or '2' (production)")

        return issues


# Global settings instance
invoicing_settings = InvoicingSettings()
