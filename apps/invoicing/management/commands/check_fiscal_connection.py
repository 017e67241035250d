"""
Django management command to check the tax authority configuration and connectivity.

Usage:
    python manage.py check_fiscal_connection
    python manage.py check_fiscal_connection --config-only  # Skip the network probe
"""

from __future__ import annotations

from django.core.management.base import BaseCommand, CommandError, CommandParser

from apps.invoicing.fiscal.client import FiscalSubmissionClient
from apps.invoicing.settings import invoicing_settings


class Command(BaseCommand):
    """Validate configuration and probe the tax authority API."""

    help = "Check tax authority configuration and connectivity"

    def add_arguments(self, parser: CommandParser) -> None:
        parser.add_argument(
            "--config-only",
            action="store_true",
            help="Only validate configuration, do not contact the authority",
        )

    def handle(self, *args: object, **options: object) -> None:
        issues = invoicing_settings.validate_configuration()
        if issues:
            for issue in issues:
                self.stderr.write(self.style.ERROR(f"❌ {issue}"))
        else:
            self.stdout.write(self.style.SUCCESS("✅ Configuration looks complete"))

        if options.get("config_only"):
            if issues:
                raise CommandError(f"{len(issues)} configuration issues found")
            return

        self.stdout.write(f"Contacting {invoicing_settings.authority_api_url} ...")
        with FiscalSubmissionClient() as client:
            result = client.test_connection()

        if not result["success"]:
            raise CommandError(result["message"])
        self.stdout.write(self.style.SUCCESS(f"✅ {result['message']} (HTTP {result['status_code']})"))
