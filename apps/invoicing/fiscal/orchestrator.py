"""
Submission orchestrator: the invoice lifecycle state machine.

    DRAFT -> SUBMITTING -> AUTHORIZED
                        -> REJECTED
                        -> TRANSIENT_FAILURE -> SUBMITTING (retry loop)
                                             -> DEFINITIVELY_FAILED

Each attempt claims the invoice under a row lock, calls the authority
outside any transaction, then applies the outcome under the lock again.
An invoice that stays in SUBMITTING past the configured timeout is
considered stuck and is handed back to the retry loop.

Usage:
    from apps.invoicing.fiscal.orchestrator import SubmissionOrchestrator

    result = SubmissionOrchestrator().process(invoice.id)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from django.db import transaction
from django.dispatch import Signal
from django.utils import timezone

from ..models import Invoice, InvoiceStatus
from ..settings import invoicing_settings
from ..signals import invoice_authorized, invoice_definitively_failed, invoice_rejected
from .client import Authorized, FiscalSubmissionClient, Rejected, SubmissionResult, Transient
from .metrics import metrics
from .payload import access_key_for

logger = logging.getLogger(__name__)


@dataclass
class ProcessResult:
    """What one orchestrator pass did to an invoice."""

    invoice_id: int
    status: str
    skipped: bool = False
    reason: str = ""
    retry_count: int = 0
    invoice_number: str = ""

    @property
    def success(self) -> bool:
        return self.status == InvoiceStatus.AUTHORIZED.value

    @classmethod
    def skip(cls, invoice_id: int, reason: str, invoice: Invoice | None = None) -> ProcessResult:
        return cls(
            invoice_id=invoice_id,
            status=invoice.status if invoice else "",
            skipped=True,
            reason=reason,
            retry_count=invoice.retry_count if invoice else 0,
            invoice_number=invoice.invoice_number if invoice else "",
        )

    @classmethod
    def from_invoice(cls, invoice: Invoice, reason: str = "") -> ProcessResult:
        return cls(
            invoice_id=invoice.pk,
            status=invoice.status,
            reason=reason,
            retry_count=invoice.retry_count,
            invoice_number=invoice.invoice_number,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "invoice_id": self.invoice_id,
            "invoice_number": self.invoice_number,
            "status": self.status,
            "skipped": self.skipped,
            "reason": self.reason,
            "retry_count": self.retry_count,
            "success": self.success,
        }


@dataclass
class _Claim:
    invoice: Invoice
    reattempt: bool


def _emit_on_commit(signal: Signal, invoice: Invoice, **kwargs: Any) -> None:
    transaction.on_commit(lambda: signal.send(sender=Invoice, invoice=invoice, **kwargs))


class SubmissionOrchestrator:
    """
    Drives invoices through submission to the tax authority.

    A client can be injected (tests, or a long-lived client for batches);
    otherwise a fresh client is opened for each attempt.
    """

    def __init__(self, client: FiscalSubmissionClient | None = None):
        self._client = client

    # --- Main Workflow Methods ---

    def process(self, invoice_id: int, *, force: bool = False) -> ProcessResult:
        """
        Run one submission attempt for an invoice.

        Args:
            invoice_id: primary key of the invoice
            force: ignore the backoff window (operator retry)
        """
        claim = self._claim(invoice_id, force=force)
        if isinstance(claim, ProcessResult):
            return claim

        result = self._attempt(claim.invoice, reattempt=claim.reattempt)
        return self._apply(invoice_id, result)

    def retry(self, invoice_id: int) -> ProcessResult:
        """Operator-triggered retry; ignores the backoff window."""
        invoice = Invoice.objects.filter(pk=invoice_id).first()
        if invoice is None:
            return ProcessResult.skip(invoice_id, "Invoice not found")
        if not invoice.can_retry:
            return ProcessResult.skip(invoice_id, f"Invoice in status {invoice.status} cannot be retried", invoice)

        logger.info(f"[Invoicing] Manual retry requested for invoice {invoice.invoice_number}")
        return self.process(invoice_id, force=True)

    def recover_stuck_submissions(self) -> dict[str, int]:
        """Turn SUBMITTING rows older than the timeout into transient failures."""
        timeout = invoicing_settings.submitting_timeout_seconds
        recovered = escalated = 0

        for invoice_id in list(Invoice.get_stuck_submissions(timeout).values_list("id", flat=True)):
            with transaction.atomic():
                invoice = Invoice.objects.select_for_update().get(pk=invoice_id)
                if not invoice.is_stuck:
                    continue
                invoice.mark_transient_failure(f"Submission did not complete within {timeout} seconds")
                recovered += 1
                logger.warning(
                    f"⚠️ [Invoicing] Recovered stuck submission for {invoice.invoice_number} "
                    f"(attempt {invoice.retry_count}/{invoicing_settings.max_attempts})"
                )
                if invoice.status == InvoiceStatus.DEFINITIVELY_FAILED.value:
                    escalated += 1
                    self._on_definitive_failure(invoice)
                else:
                    metrics.record_retry("STUCK")

        return {"recovered": recovered, "escalated": escalated}

    def process_due_retries(self, limit: int | None = None) -> dict[str, int]:
        """Process transient failures whose backoff window has elapsed."""
        ids = list(Invoice.get_ready_for_retry(limit or invoicing_settings.batch_size).values_list("id", flat=True))
        return self._process_many(ids)

    def process_stale_drafts(self, limit: int | None = None) -> dict[str, int]:
        """Submit drafts whose queued submission never ran."""
        drafts = Invoice.get_stale_drafts(limit=limit or invoicing_settings.batch_size)
        return self._process_many(list(drafts.values_list("id", flat=True)))

    # --- State Machine Steps ---

    def _claim(self, invoice_id: int, *, force: bool) -> _Claim | ProcessResult:
        with transaction.atomic():
            invoice = Invoice.objects.select_for_update().filter(pk=invoice_id).first()
            if invoice is None:
                logger.error(f"🔥 [Invoicing] Invoice {invoice_id} not found")
                return ProcessResult.skip(invoice_id, "Invoice not found")

            if invoice.is_terminal:
                return ProcessResult.skip(invoice_id, f"Invoice already {invoice.status}", invoice)

            stale = False
            if invoice.status == InvoiceStatus.SUBMITTING.value:
                if not invoice.is_stuck:
                    return ProcessResult.skip(invoice_id, "Submission already in flight", invoice)
                stale = True
                logger.warning(f"⚠️ [Invoicing] Reclaiming stuck submission for {invoice.invoice_number}")

            if invoice.status == InvoiceStatus.TRANSIENT_FAILURE.value:
                if invoice.retry_count >= invoicing_settings.max_attempts:
                    invoice.mark_definitively_failed(invoice.error_message or "Retry budget exhausted")
                    self._on_definitive_failure(invoice)
                    return ProcessResult.from_invoice(invoice, "Retry budget exhausted")
                if not force and invoice.next_retry_at and invoice.next_retry_at > timezone.now():
                    return ProcessResult.skip(invoice_id, "Backoff window has not elapsed", invoice)

            if not invoice.access_key:
                try:
                    access_key = access_key_for(invoice)
                except ValueError as e:
                    # Issuer configuration problem; leave the invoice untouched for a later pass
                    logger.error(f"🔥 [Invoicing] Cannot derive access key for {invoice.invoice_number}: {e}")
                    return ProcessResult.skip(invoice_id, f"Configuration error: {e}", invoice)
            else:
                access_key = invoice.access_key

            reattempt = stale or invoice.retry_count > 0
            invoice.mark_submitting(access_key)

        logger.info(
            f"[Invoicing] Submitting {invoice.invoice_number} "
            f"(attempt {invoice.retry_count + 1}/{invoicing_settings.max_attempts})"
        )
        return _Claim(invoice=invoice, reattempt=reattempt)

    def _attempt(self, invoice: Invoice, *, reattempt: bool) -> SubmissionResult:
        """Talk to the authority. Runs outside any database transaction."""
        client = self._client or FiscalSubmissionClient()
        try:
            with metrics.time_submission() as context:
                result = None
                if reattempt and not invoicing_settings.authority_idempotent:
                    # A previous attempt may have reached the authority; ask before resending
                    result = client.query_status(invoice.access_key)
                    if result is not None:
                        logger.info(
                            f"[Invoicing] Authority already knows {invoice.invoice_number}: {result.status_label}"
                        )
                if result is None:
                    result = client.submit(invoice)
                context["outcome"] = result.outcome.value
            return result
        except Exception as e:
            logger.exception(f"🔥 [Invoicing] Unexpected error submitting invoice {invoice.invoice_number}")
            return Transient(cause=f"Unexpected error: {e}", access_key=invoice.access_key, status_label="UNEXPECTED")
        finally:
            if self._client is None:
                client.close()

    def _apply(self, invoice_id: int, result: SubmissionResult) -> ProcessResult:
        with transaction.atomic():
            invoice = Invoice.objects.select_for_update().get(pk=invoice_id)
            if invoice.status != InvoiceStatus.SUBMITTING.value:
                # Terminal, or already counted by stuck recovery; the next attempt queries the authority first
                logger.warning(
                    f"⚠️ [Invoicing] Invoice {invoice.invoice_number} became {invoice.status} during the attempt, "
                    f"discarding {result.outcome.value} result"
                )
                return ProcessResult.skip(invoice_id, f"Invoice already {invoice.status}", invoice)

            if isinstance(result, Authorized):
                invoice.mark_authorized(result.access_key, result.authorization_number, result.raw_response or None)
                _emit_on_commit(invoice_authorized, invoice)
                logger.info(
                    f"✅ [Invoicing] Invoice {invoice.invoice_number} authorized "
                    f"(authorization {result.authorization_number})"
                )
                return ProcessResult.from_invoice(invoice)

            if isinstance(result, Rejected):
                invoice.mark_rejected(result.reason, result.raw_response or None)
                _emit_on_commit(invoice_rejected, invoice, reason=result.reason)
                logger.warning(f"⚠️ [Invoicing] Invoice {invoice.invoice_number} rejected: {result.reason}")
                return ProcessResult.from_invoice(invoice, result.reason)

            invoice.mark_transient_failure(result.cause, result.raw_response or None, access_key=result.access_key)
            if invoice.status == InvoiceStatus.DEFINITIVELY_FAILED.value:
                self._on_definitive_failure(invoice)
            else:
                metrics.record_retry(result.status_label or "TRANSIENT")
                logger.info(
                    f"[Invoicing] Invoice {invoice.invoice_number} transient failure "
                    f"({invoice.retry_count}/{invoicing_settings.max_attempts}): {result.cause}; "
                    f"next attempt at {invoice.next_retry_at.isoformat()}"
                )
            return ProcessResult.from_invoice(invoice, result.cause)

    def _on_definitive_failure(self, invoice: Invoice) -> None:
        metrics.record_definitive_failure()
        _emit_on_commit(invoice_definitively_failed, invoice, reason=invoice.error_message or "")

    def _process_many(self, invoice_ids: list[int]) -> dict[str, int]:
        summary = {"processed": 0, "authorized": 0, "rejected": 0, "failed": 0, "skipped": 0}
        for invoice_id in invoice_ids:
            outcome = self.process(invoice_id)
            summary["processed"] += 1
            if outcome.skipped:
                summary["skipped"] += 1
            elif outcome.status == InvoiceStatus.AUTHORIZED.value:
                summary["authorized"] += 1
            elif outcome.status == InvoiceStatus.REJECTED.value:
                summary["rejected"] += 1
            else:
                summary["failed"] += 1
        return summary
