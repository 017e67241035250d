"""
Django management command to print invoice counts per status.

Usage:
    python manage.py invoice_statistics
"""

from __future__ import annotations

from django.core.management.base import BaseCommand

from apps.invoicing.services import get_invoice_statistics


class Command(BaseCommand):
    """Print invoice counts per lifecycle status."""

    help = "Show invoice counts per status and authorized totals"

    def handle(self, *args: object, **options: object) -> None:
        stats = get_invoice_statistics()

        self.stdout.write(f"Total invoices: {stats['total']}")
        for status, count in stats["by_status"].items():
            self.stdout.write(f"  {status:<22} {count}")
        self.stdout.write(f"Authorized total: {stats['authorized_total_amount']}")
        self.stdout.write(f"Authorized tax: {stats['authorized_tax_amount']}")

        if stats["needs_attention"]:
            self.stdout.write(self.style.WARNING(f"⚠️  {stats['needs_attention']} invoices need attention"))
        else:
            self.stdout.write(self.style.SUCCESS("No invoices need attention"))
