"""
Async tasks for the invoicing pipeline.

These tasks are designed for use with Django-Q2:
- generate_invoice_for_order_task: Assemble the invoice for a completed order
- submit_invoice_task: Run one submission attempt for an invoice
- process_invoice_retries_task: Retry transient failures whose backoff elapsed
- recover_stuck_submissions_task: Hand stuck SUBMITTING invoices back to the retry loop
- process_pending_drafts_task: Submit drafts whose queued submission was lost

Usage:
    from django_q.tasks import async_task
    async_task('apps.invoicing.tasks.submit_invoice_task', invoice_id)
"""

from __future__ import annotations

import logging

from django.db import transaction
from django.utils import timezone
from django_q.models import Schedule
from django_q.tasks import async_task

from apps.common.logging import correlation_context
from apps.common.types import TaskSummary

from .fiscal.orchestrator import SubmissionOrchestrator
from .models import InvoiceStatus
from .services import generate_invoice_for_order

logger = logging.getLogger(__name__)

# Task timeout in seconds
TASK_TIMEOUT = 300  # 5 minutes

RETRY_LOOP_MINUTES = 5


def generate_invoice_for_order_task(payload: dict) -> TaskSummary:
    """
    Assemble the invoice for a completed order and queue its submission.

    Args:
        payload: Order-Completed payload

    Returns:
        Dict with result status and details
    """
    order_id = str(payload.get("order_id", "")) if isinstance(payload, dict) else ""
    with correlation_context(f"order-{order_id or 'unknown'}"):
        logger.info(f"[Invoicing Task] Generating invoice for order {order_id}")

        result = generate_invoice_for_order(payload)
        if result.is_err():
            error = result.unwrap_err()
            logger.warning(f"[Invoicing Task] Invoice not generated for order {order_id}: {error}")
            return {
                "success": False,
                "order_id": order_id,
                "error_code": error.code,
                "error": error.message,
                "details": error.details,
            }

        invoice = result.unwrap()
        if invoice.status == InvoiceStatus.DRAFT.value:
            invoice_id = invoice.id
            transaction.on_commit(lambda: queue_invoice_submission(invoice_id))

        return {
            "success": True,
            "order_id": order_id,
            "invoice_id": invoice.id,
            "invoice_number": invoice.invoice_number,
            "status": invoice.status,
        }


def submit_invoice_task(invoice_id: int) -> TaskSummary:
    """
    Run one submission attempt for an invoice.

    Args:
        invoice_id: primary key of the invoice

    Returns:
        Dict with the orchestrator outcome
    """
    with correlation_context(f"invoice-{invoice_id}"):
        logger.info(f"[Invoicing Task] Starting submission for invoice {invoice_id}")
        result = SubmissionOrchestrator().process(int(invoice_id))

        if result.success:
            logger.info(f"[Invoicing Task] Invoice {result.invoice_number} authorized")
        elif result.skipped:
            logger.info(f"[Invoicing Task] Invoice {invoice_id} skipped: {result.reason}")
        else:
            logger.warning(f"[Invoicing Task] Invoice {result.invoice_number} is {result.status}: {result.reason}")

        return result.to_dict()


def process_invoice_retries_task() -> TaskSummary:
    """
    Retry invoices in transient failure whose backoff window has elapsed.

    Scheduled every few minutes by schedule_invoicing_tasks().
    """
    logger.info("[Invoicing Task] Processing retries")
    with correlation_context("invoicing-retries"):
        results = SubmissionOrchestrator().process_due_retries()

    logger.info(f"[Invoicing Task] Retries complete: {results}")
    return {
        "success": True,
        "timestamp": timezone.now().isoformat(),
        **results,
    }


def recover_stuck_submissions_task() -> TaskSummary:
    """Move invoices stuck in SUBMITTING back into the retry loop."""
    with correlation_context("invoicing-stuck"):
        results = SubmissionOrchestrator().recover_stuck_submissions()

    if results["recovered"]:
        logger.warning(f"[Invoicing Task] Recovered {results['recovered']} stuck submissions")
    return {
        "success": True,
        "timestamp": timezone.now().isoformat(),
        **results,
    }


def process_pending_drafts_task() -> TaskSummary:
    """Submit drafts older than the grace period (their queued task never ran)."""
    logger.info("[Invoicing Task] Processing pending drafts")
    with correlation_context("invoicing-drafts"):
        results = SubmissionOrchestrator().process_stale_drafts()

    logger.info(f"[Invoicing Task] Drafts complete: {results}")
    return {
        "success": True,
        "timestamp": timezone.now().isoformat(),
        **results,
    }


# --- Task Scheduling Helpers ---


def schedule_invoicing_tasks() -> None:
    """
    Schedule the recurring retry loop.

    Call this during application startup to set up scheduled tasks.
    """
    try:
        Schedule.objects.update_or_create(
            name="invoicing_recover_stuck",
            defaults={
                "func": "apps.invoicing.tasks.recover_stuck_submissions_task",
                "schedule_type": Schedule.MINUTES,
                "minutes": RETRY_LOOP_MINUTES,
            },
        )

        Schedule.objects.update_or_create(
            name="invoicing_process_retries",
            defaults={
                "func": "apps.invoicing.tasks.process_invoice_retries_task",
                "schedule_type": Schedule.MINUTES,
                "minutes": RETRY_LOOP_MINUTES,
            },
        )

        Schedule.objects.update_or_create(
            name="invoicing_process_pending_drafts",
            defaults={
                "func": "apps.invoicing.tasks.process_pending_drafts_task",
                "schedule_type": Schedule.MINUTES,
                "minutes": RETRY_LOOP_MINUTES,
            },
        )

        logger.info("✅ [Invoicing] Scheduled tasks configured")

    except Exception as e:
        logger.error(f"🔥 [Invoicing] Failed to schedule invoicing tasks: {e}")


# --- Async Task Helpers ---


def queue_invoice_generation(payload: dict) -> str | None:
    """
    Queue invoice generation for a completed order.

    Returns:
        Task ID if queued, None if failed
    """
    try:
        task_id = async_task(
            "apps.invoicing.tasks.generate_invoice_for_order_task",
            payload,
            timeout=TASK_TIMEOUT,
        )
        logger.info(f"[Invoicing] Queued invoice generation for order {payload.get('order_id')}: task {task_id}")
        return str(task_id)
    except Exception as e:
        logger.error(f"🔥 [Invoicing] Failed to queue invoice generation: {e}")
        return None


def queue_invoice_submission(invoice_id: int) -> str | None:
    """
    Queue an invoice for submission to the tax authority.

    Returns:
        Task ID if queued, None if failed
    """
    try:
        task_id = async_task(
            "apps.invoicing.tasks.submit_invoice_task",
            invoice_id,
            timeout=TASK_TIMEOUT,
        )
        logger.info(f"[Invoicing] Queued submission for invoice {invoice_id}: task {task_id}")
        return str(task_id)
    except Exception as e:
        logger.error(f"🔥 [Invoicing] Failed to queue invoice submission: {e}")
        return None
