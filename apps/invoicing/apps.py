"""
Django app configuration for the Invoicing app
"""

import logging

from django.apps import AppConfig

logger = logging.getLogger(__name__)


class InvoicingConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.invoicing"
    verbose_name = "Fiscal Invoicing"

    def ready(self) -> None:
        """Connect signal receivers and schedule the retry loop when Django starts."""
        from django.conf import settings  # noqa: PLC0415

        from . import signals  # noqa: F401, PLC0415

        if getattr(settings, "TESTING", False) or not getattr(settings, "INVOICING_ENABLED", False):
            return

        try:
            from .tasks import schedule_invoicing_tasks  # noqa: PLC0415

            schedule_invoicing_tasks()
        except Exception:
            logger.warning("⚠️ [Invoicing] Failed to schedule invoicing tasks during startup")
