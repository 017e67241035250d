"""
Invoice assembly from completed orders.

The assembler validates an order snapshot, classifies the buyer's
identification, computes per-line and aggregate amounts, and persists a
numbered DRAFT invoice. It is idempotent per order: the unique order_id
guarantees a single invoice even when two workers race on the same order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import StrEnum
from typing import Any

from django.db import IntegrityError, transaction

from apps.common.types import Err, Ok, Result, quantize_money

from .fiscal.metrics import metrics
from .fiscal.payload import IVA_RATE_CODES
from .identification import classify_identification
from .models import Invoice, InvoiceItem, InvoiceStatus
from .orders import BillingProfile, OrderLine, OrderSnapshot
from .sequencer import InvoiceSequencer
from .settings import invoicing_settings
from .signals import invoice_created

logger = logging.getLogger(__name__)

NO_ADDRESS = "Sin dirección especificada"


class AssemblyErrorCode(StrEnum):
    INVALID_ORDER = "invalid_order"
    EMPTY_ORDER = "empty_order"
    INVALID_LINE = "invalid_line"
    MISSING_PRODUCT_CODE = "missing_product_code"
    INVALID_IDENTIFICATION = "invalid_identification"
    TOTAL_MISMATCH = "total_mismatch"


@dataclass(frozen=True)
class AssemblyError:
    """Why an order could not be turned into an invoice."""

    code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


@dataclass(frozen=True)
class ComputedLine:
    position: int
    line: OrderLine
    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    total_amount: Decimal


@dataclass(frozen=True)
class ComputedTotals:
    subtotal: Decimal
    tax_amount: Decimal
    total_amount: Decimal


# ===============================================================================
# PURE HELPERS
# ===============================================================================


def compute_line(line: OrderLine, position: int, default_tax_rate: Decimal) -> ComputedLine:
    """Amounts for one line: subtotal = qty x price - discount, tax rounded per line."""
    tax_rate = line.tax_rate if line.tax_rate is not None else default_tax_rate
    subtotal = quantize_money(line.unit_price * line.quantity - line.discount)
    tax_amount = quantize_money(subtotal * tax_rate)
    return ComputedLine(
        position=position,
        line=line,
        subtotal=subtotal,
        tax_rate=tax_rate,
        tax_amount=tax_amount,
        total_amount=subtotal + tax_amount,
    )


def aggregate_totals(lines: list[ComputedLine]) -> ComputedTotals:
    subtotal = sum((item.subtotal for item in lines), Decimal("0.00"))
    tax_amount = sum((item.tax_amount for item in lines), Decimal("0.00"))
    return ComputedTotals(subtotal=subtotal, tax_amount=tax_amount, total_amount=subtotal + tax_amount)


def format_address(profile: BillingProfile, default_country: str) -> str:
    parts = [profile.address, profile.city, profile.state, profile.postal_code]
    parts = [part for part in parts if part]
    if not parts and not profile.country:
        return NO_ADDRESS
    parts.append(profile.country or default_country)
    return ", ".join(parts)


def buyer_display_name(profile: BillingProfile, order: OrderSnapshot) -> str:
    return profile.name or f"Cliente {order.buyer_id or order.order_id}"


# ===============================================================================
# ASSEMBLER
# ===============================================================================


class InvoiceAssembler:
    """
    Builds and persists the invoice for a completed order.

    Usage:
        result = InvoiceAssembler().assemble(OrderSnapshot.from_payload(payload))
        if result.is_ok():
            invoice = result.unwrap()
    """

    def __init__(self, sequencer: InvoiceSequencer | None = None):
        self.sequencer = sequencer or InvoiceSequencer()

    def assemble(self, order: OrderSnapshot) -> Result[Invoice, AssemblyError]:
        existing = Invoice.objects.filter(order_id=order.order_id).first()
        if existing is not None:
            logger.info(f"[Invoicing] Order {order.order_id} already invoiced as {existing.invoice_number}")
            metrics.record_assembly("existing")
            return Ok(existing)

        validation_error = self._validate_lines(order)
        if validation_error is not None:
            return self._fail(order, validation_error)

        classified = classify_identification(order.billing_profile.identification)
        if classified.is_err():
            return self._fail(
                order,
                AssemblyError(
                    code=AssemblyErrorCode.INVALID_IDENTIFICATION.value,
                    message=classified.unwrap_err(),
                ),
            )
        identification = classified.unwrap()

        default_tax_rate = invoicing_settings.default_tax_rate
        computed = [compute_line(line, position, default_tax_rate) for position, line in enumerate(order.lines)]
        totals = aggregate_totals(computed)

        mismatch = self._check_totals(order, totals)
        if mismatch is not None:
            return self._fail(order, mismatch)

        try:
            with transaction.atomic():
                invoice = Invoice.objects.create(
                    invoice_number=self.sequencer.next(),
                    order_id=order.order_id,
                    buyer_id=order.buyer_id,
                    issued_at=order.issued_at,
                    created_via=order.created_via,
                    subtotal=totals.subtotal,
                    tax_amount=totals.tax_amount,
                    total_amount=totals.total_amount,
                    currency=invoicing_settings.currency,
                    status=InvoiceStatus.DRAFT.value,
                    customer_identification=identification.normalized_value,
                    customer_identification_type=identification.type_code,
                    customer_name=buyer_display_name(order.billing_profile, order),
                    customer_email=order.billing_profile.email,
                    customer_phone=order.billing_profile.phone,
                    customer_address=format_address(order.billing_profile, invoicing_settings.default_country),
                )
                InvoiceItem.objects.bulk_create(
                    [
                        InvoiceItem(
                            invoice=invoice,
                            position=item.position,
                            product_id=item.line.product_id,
                            product_code=item.line.product_code,
                            product_name=item.line.product_name,
                            quantity=item.line.quantity,
                            unit_price=item.line.unit_price,
                            discount=item.line.discount,
                            subtotal=item.subtotal,
                            tax_rate=item.tax_rate,
                            tax_amount=item.tax_amount,
                            total_amount=item.total_amount,
                        )
                        for item in computed
                    ]
                )
                transaction.on_commit(lambda: invoice_created.send(sender=Invoice, invoice=invoice))
        except IntegrityError:
            # Another worker invoiced this order first; our number increment rolled back with us
            winner = Invoice.objects.filter(order_id=order.order_id).first()
            if winner is None:
                raise
            logger.info(f"[Invoicing] Concurrent assembly for order {order.order_id}, using {winner.invoice_number}")
            metrics.record_assembly("existing")
            return Ok(winner)

        logger.info(
            f"✅ [Invoicing] Invoice {invoice.invoice_number} assembled for order {order.order_id} "
            f"({len(computed)} lines, total {invoice.total_amount} {invoice.currency})"
        )
        metrics.record_assembly("created")
        return Ok(invoice)

    # --- Validation ---

    def _validate_lines(self, order: OrderSnapshot) -> AssemblyError | None:
        if not order.lines:
            return AssemblyError(
                code=AssemblyErrorCode.EMPTY_ORDER.value,
                message=f"Order {order.order_id} has no lines",
            )

        default_tax_rate = invoicing_settings.default_tax_rate
        for position, line in enumerate(order.lines, start=1):
            details = {"line": position, "product_id": line.product_id}
            if not line.product_code:
                return AssemblyError(
                    code=AssemblyErrorCode.MISSING_PRODUCT_CODE.value,
                    message=f"Line {position} has no product code",
                    details=details,
                )
            if line.quantity <= 0:
                return AssemblyError(
                    code=AssemblyErrorCode.INVALID_LINE.value,
                    message=f"Line {position} quantity must be positive, got {line.quantity}",
                    details=details,
                )
            if line.unit_price < 0:
                return AssemblyError(
                    code=AssemblyErrorCode.INVALID_LINE.value,
                    message=f"Line {position} unit price must not be negative, got {line.unit_price}",
                    details=details,
                )
            if line.discount < 0 or line.discount > line.unit_price * line.quantity:
                return AssemblyError(
                    code=AssemblyErrorCode.INVALID_LINE.value,
                    message=f"Line {position} discount {line.discount} is out of range",
                    details=details,
                )
            tax_rate = line.tax_rate if line.tax_rate is not None else default_tax_rate
            if tax_rate not in IVA_RATE_CODES:
                return AssemblyError(
                    code=AssemblyErrorCode.INVALID_LINE.value,
                    message=f"Line {position} tax rate {tax_rate} has no IVA rate code",
                    details={**details, "tax_rate": str(tax_rate)},
                )
        return None

    def _check_totals(self, order: OrderSnapshot, totals: ComputedTotals) -> AssemblyError | None:
        tolerance = invoicing_settings.total_tolerance
        comparisons = {
            "subtotal": (totals.subtotal, order.totals.subtotal),
            "tax_amount": (totals.tax_amount, order.totals.tax_amount),
            "total": (totals.total_amount, order.totals.total),
        }
        mismatched = {
            name: {"computed": str(computed), "order": str(expected)}
            for name, (computed, expected) in comparisons.items()
            if abs(computed - expected) > tolerance
        }
        if not mismatched:
            return None
        return AssemblyError(
            code=AssemblyErrorCode.TOTAL_MISMATCH.value,
            message=f"Computed totals differ from order {order.order_id} by more than {tolerance}",
            details=mismatched,
        )

    def _fail(self, order: OrderSnapshot, error: AssemblyError) -> Err[AssemblyError]:
        logger.warning(f"⚠️ [Invoicing] Cannot invoice order {order.order_id}: {error}")
        metrics.record_assembly(error.code)
        return Err(error)
