"""
Invoicing signals.

Inbound:
    order_completed(sender, payload) - sent by the checkout flow once an order
    is paid. The receiver only queues invoice generation after the sender's
    transaction commits, so checkout is never blocked or rolled back by
    invoicing problems.

Outbound (for PDF rendering, email delivery and alerting):
    invoice_created(sender, invoice)
    invoice_authorized(sender, invoice)
    invoice_rejected(sender, invoice, reason)
    invoice_definitively_failed(sender, invoice, reason)
"""

from __future__ import annotations

import logging
from typing import Any

from django.db import transaction
from django.dispatch import Signal, receiver

logger = logging.getLogger(__name__)

order_completed = Signal()

invoice_created = Signal()
invoice_authorized = Signal()
invoice_rejected = Signal()
invoice_definitively_failed = Signal()


@receiver(order_completed, dispatch_uid="invoicing_generate_on_order_completed")
def handle_order_completed(sender: Any, payload: dict[str, Any] | None = None, **kwargs: Any) -> None:
    """Queue invoice generation for a completed order once its transaction commits."""
    from .settings import invoicing_settings  # noqa: PLC0415

    if not invoicing_settings.enabled:
        logger.info("[Invoicing] Invoicing disabled, ignoring order_completed")
        return

    if not isinstance(payload, dict) or not payload.get("order_id"):
        logger.error(f"🔥 [Invoicing] order_completed received without a usable payload from {sender}")
        return

    def _queue() -> None:
        from .tasks import queue_invoice_generation  # noqa: PLC0415

        try:
            queue_invoice_generation(payload)
        except Exception as e:
            logger.error(f"🔥 [Invoicing] Failed to queue invoice generation for order {payload['order_id']}: {e}")

    transaction.on_commit(_queue)


@receiver(invoice_definitively_failed, dispatch_uid="invoicing_alert_on_definitive_failure")
def alert_definitive_failure(sender: Any, invoice: Any = None, reason: str = "", **kwargs: Any) -> None:
    """Operational alert: an invoice needs a human."""
    if invoice is None:
        return
    logger.critical(
        f"🚨 [Invoicing] Invoice {invoice.invoice_number} (order {invoice.order_id}) definitively failed "
        f"after {invoice.retry_count} attempts: {reason}"
    )
