"""
Django management command to run the invoice retry loop once.

Runs the same steps as the scheduled tasks: recover stuck submissions,
retry transient failures whose backoff elapsed, submit stale drafts.

Usage:
    python manage.py process_invoice_retries
    python manage.py process_invoice_retries --invoice-id 42  # Retry one invoice now
"""

from __future__ import annotations

import logging

from django.core.management.base import BaseCommand, CommandError, CommandParser

from apps.invoicing.fiscal.orchestrator import SubmissionOrchestrator

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    """Run one cycle of the invoice retry loop."""

    help = "Recover stuck submissions, retry due transient failures and submit stale drafts"

    def add_arguments(self, parser: CommandParser) -> None:
        parser.add_argument(
            "--invoice-id",
            type=int,
            help="Retry a single invoice immediately, ignoring its backoff window",
        )

    def handle(self, *args: object, **options: object) -> None:
        orchestrator = SubmissionOrchestrator()
        invoice_id = options.get("invoice_id")

        if invoice_id:
            result = orchestrator.retry(int(invoice_id))  # type: ignore[call-overload]
            if result.skipped:
                raise CommandError(f"Invoice {invoice_id} not retried: {result.reason}")
            style = self.style.SUCCESS if result.success else self.style.WARNING
            self.stdout.write(style(f"Invoice {result.invoice_number}: {result.status} {result.reason}".rstrip()))
            return

        stuck = orchestrator.recover_stuck_submissions()
        self.stdout.write(f"🔁 Stuck submissions recovered: {stuck['recovered']} (escalated: {stuck['escalated']})")

        retries = orchestrator.process_due_retries()
        self.stdout.write(self._format("Retries", retries))

        drafts = orchestrator.process_stale_drafts()
        self.stdout.write(self._format("Stale drafts", drafts))

        self.stdout.write(self.style.SUCCESS("Done!"))

    def _format(self, label: str, summary: dict[str, int]) -> str:
        return (
            f"📤 {label}: processed {summary['processed']}, authorized {summary['authorized']}, "
            f"rejected {summary['rejected']}, failed {summary['failed']}, skipped {summary['skipped']}"
        )
