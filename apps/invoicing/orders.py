"""
Read-only snapshot of a completed order.

The checkout flow hands over a plain dict when an order completes; this
module turns it into immutable dataclasses with Decimal amounts so the
assembler never touches loosely typed input.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from django.utils import timezone
from django.utils.dateparse import parse_datetime

from apps.common.types import OrderReference, to_decimal

from .models import Invoice, InvoiceItem, InvoiceOrigin


class OrderPayloadError(ValueError):
    """Raised when an Order-Completed payload cannot be parsed."""


def _require(data: dict[str, Any], key: str, context: str) -> Any:
    value = data.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise OrderPayloadError(f"{context}: missing '{key}'")
    return value


def _money(data: dict[str, Any], key: str, context: str, default: Any = None) -> Decimal:
    value = data.get(key, default)
    if value is None:
        raise OrderPayloadError(f"{context}: missing '{key}'")
    try:
        return to_decimal(value)
    except ValueError as e:
        raise OrderPayloadError(f"{context}: invalid amount for '{key}': {value!r}") from e


def _text(value: Any) -> str:
    return str(value).strip() if value is not None else ""


def _bounded(value: str, model: type, field_name: str, context: str, key: str) -> str:
    """Reject text longer than the column it is stored in."""
    max_length = model._meta.get_field(field_name).max_length
    if len(value) > max_length:
        raise OrderPayloadError(f"{context}: '{key}' is longer than {max_length} characters")
    return value


@dataclass(frozen=True)
class OrderLine:
    """One purchased product line."""

    product_id: str
    product_code: str
    product_name: str
    quantity: int
    unit_price: Decimal
    line_subtotal: Decimal
    discount: Decimal = Decimal("0")
    tax_rate: Decimal | None = None

    @classmethod
    def from_payload(cls, data: dict[str, Any], index: int) -> OrderLine:
        context = f"line {index + 1}"
        if not isinstance(data, dict):
            raise OrderPayloadError(f"{context}: expected an object")

        raw_quantity = _require(data, "quantity", context)
        if isinstance(raw_quantity, bool):
            raise OrderPayloadError(f"{context}: invalid quantity {raw_quantity!r}")
        try:
            quantity_decimal = to_decimal(raw_quantity)
        except ValueError as e:
            raise OrderPayloadError(f"{context}: invalid quantity {raw_quantity!r}") from e
        if quantity_decimal != quantity_decimal.to_integral_value():
            raise OrderPayloadError(f"{context}: quantity must be a whole number, got {raw_quantity!r}")

        unit_price = _money(data, "unit_price", context)
        quantity = int(quantity_decimal)
        discount = _money(data, "discount", context, default=0)
        line_subtotal = _money(data, "line_subtotal", context, default=unit_price * quantity - discount)

        tax_rate = None
        if data.get("tax_rate") is not None:
            tax_rate = _money(data, "tax_rate", context)

        product_code = _bounded(_text(data.get("product_code")), InvoiceItem, "product_code", context, "product_code")
        product_name = _text(data.get("product_name")) or product_code

        return cls(
            product_id=_bounded(_text(data.get("product_id")), InvoiceItem, "product_id", context, "product_id"),
            product_code=product_code,
            product_name=_bounded(product_name, InvoiceItem, "product_name", context, "product_name"),
            quantity=quantity,
            unit_price=unit_price,
            line_subtotal=line_subtotal,
            discount=discount,
            tax_rate=tax_rate,
        )


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> OrderTotals:
        if not isinstance(data, dict):
            raise OrderPayloadError("totals: expected an object")
        return cls(
            subtotal=_money(data, "subtotal", "totals"),
            tax_amount=_money(data, "tax_amount", "totals"),
            total=_money(data, "total", "totals"),
        )


@dataclass(frozen=True)
class BillingProfile:
    """Buyer billing data as entered at checkout."""

    identification: str
    name: str = ""
    email: str = ""
    phone: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    postal_code: str = ""
    country: str = ""

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> BillingProfile:
        if not isinstance(data, dict):
            raise OrderPayloadError("billing_profile: expected an object")
        return cls(
            identification=_text(data.get("identification")),
            name=_bounded(_text(data.get("name")), Invoice, "customer_name", "billing_profile", "name"),
            email=_bounded(_text(data.get("email")), Invoice, "customer_email", "billing_profile", "email"),
            phone=_bounded(_text(data.get("phone")), Invoice, "customer_phone", "billing_profile", "phone"),
            address=_text(data.get("address")),
            city=_text(data.get("city")),
            state=_text(data.get("state")),
            postal_code=_text(data.get("postal_code")),
            country=_text(data.get("country")),
        )


@dataclass(frozen=True)
class OrderSnapshot:
    """
    Immutable view of a completed order.

    Built once from the Order-Completed payload and passed to the
    assembler; nothing in the invoicing pipeline ever writes back to it.
    """

    order_id: OrderReference
    buyer_id: str
    lines: tuple[OrderLine, ...]
    totals: OrderTotals
    billing_profile: BillingProfile
    issued_at: datetime = field(default_factory=timezone.now)
    created_via: str = InvoiceOrigin.CHECKOUT.value

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> OrderSnapshot:
        """
        Parse an Order-Completed payload.

        Expected shape:
            {order_id, buyer_id, line_items[], totals{subtotal, tax_amount, total},
             billing_profile{identification, name, email, ...}, created_via?, issued_at?}

        Raises:
            OrderPayloadError: required fields missing or amounts malformed
        """
        if not isinstance(payload, dict):
            raise OrderPayloadError("Order payload must be an object")

        order_id = _bounded(_text(_require(payload, "order_id", "order")), Invoice, "order_id", "order", "order_id")
        buyer_id = _bounded(_text(payload.get("buyer_id")), Invoice, "buyer_id", "order", "buyer_id")

        raw_lines = payload.get("line_items") or []
        if not isinstance(raw_lines, list | tuple):
            raise OrderPayloadError("order: 'line_items' must be a list")
        lines = tuple(OrderLine.from_payload(line, index) for index, line in enumerate(raw_lines))

        totals = OrderTotals.from_payload(_require(payload, "totals", "order"))
        billing_profile = BillingProfile.from_payload(payload.get("billing_profile") or {})

        issued_at = timezone.now()
        raw_issued_at = payload.get("issued_at")
        if isinstance(raw_issued_at, datetime):
            issued_at = raw_issued_at
        elif raw_issued_at:
            parsed = parse_datetime(str(raw_issued_at))
            if parsed is None:
                raise OrderPayloadError(f"order: invalid issued_at {raw_issued_at!r}")
            issued_at = parsed
        if timezone.is_naive(issued_at):
            issued_at = timezone.make_aware(issued_at)

        created_via = _text(payload.get("created_via")) or InvoiceOrigin.CHECKOUT.value
        if created_via not in {origin.value for origin in InvoiceOrigin}:
            raise OrderPayloadError(f"order: unknown created_via {created_via!r}")

        return cls(
            order_id=order_id,
            buyer_id=buyer_id,
            lines=lines,
            totals=totals,
            billing_profile=billing_profile,
            issued_at=issued_at,
            created_via=created_via,
        )
