"""
Invoicing service functions.

Synchronous entry points shared by tasks, the operator API and management
commands.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

from django.db.models import Count, Sum

from apps.common.types import Err, Result, quantize_money

from .assembler import AssemblyError, AssemblyErrorCode, InvoiceAssembler
from .models import Invoice, InvoiceStatus
from .orders import OrderPayloadError, OrderSnapshot

logger = logging.getLogger(__name__)


def generate_invoice_for_order(payload: dict[str, Any]) -> Result[Invoice, AssemblyError]:
    """Parse an Order-Completed payload and assemble its invoice."""
    try:
        order = OrderSnapshot.from_payload(payload)
    except OrderPayloadError as e:
        order_id = payload.get("order_id") if isinstance(payload, dict) else None
        logger.warning(f"⚠️ [Invoicing] Invalid order payload for order {order_id}: {e}")
        return Err(AssemblyError(code=AssemblyErrorCode.INVALID_ORDER.value, message=str(e)))

    return InvoiceAssembler().assemble(order)


def get_invoice_statistics() -> dict[str, Any]:
    """Counts per status plus authorized totals."""
    counts = dict(Invoice.objects.values_list("status").annotate(count=Count("id")).order_by())
    by_status = {status.value: counts.get(status.value, 0) for status in InvoiceStatus}

    authorized = Invoice.objects.filter(status=InvoiceStatus.AUTHORIZED.value).aggregate(
        total_amount=Sum("total_amount"),
        tax_amount=Sum("tax_amount"),
    )

    return {
        "total": sum(by_status.values()),
        "by_status": by_status,
        "pending": by_status[InvoiceStatus.DRAFT.value]
        + by_status[InvoiceStatus.SUBMITTING.value]
        + by_status[InvoiceStatus.TRANSIENT_FAILURE.value],
        "needs_attention": by_status[InvoiceStatus.REJECTED.value]
        + by_status[InvoiceStatus.DEFINITIVELY_FAILED.value],
        "authorized_total_amount": str(quantize_money(authorized["total_amount"] or Decimal("0"))),
        "authorized_tax_amount": str(quantize_money(authorized["tax_amount"] or Decimal("0"))),
    }
