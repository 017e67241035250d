"""
Tax authority document format.

Builds the JSON document the authority API expects for an invoice, the
49-digit access key that identifies it, and a local validation pass run
before anything goes over the wire.
"""

from __future__ import annotations

import hashlib
import re
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from django.utils import timezone

from apps.common.types import AccessKey, quantize_money

from ..identification import IdentificationType
from ..settings import invoicing_settings

if TYPE_CHECKING:
    from ..models import Invoice

DOCUMENT_TYPE_INVOICE = "01"
EMISSION_TYPE_NORMAL = "1"
ACCESS_KEY_LENGTH = 49
SEQUENTIAL_WIDTH = 9
NUMERIC_CODE_WIDTH = 8

# IVA tax code and its rate codes (codigoPorcentaje)
TAX_CODE_IVA = "2"
IVA_RATE_CODES: dict[Decimal, str] = {
    Decimal("0"): "0",
    Decimal("0.12"): "2",
    Decimal("0.14"): "3",
    Decimal("0.15"): "4",
    Decimal("0.05"): "5",
}

_ACCESS_KEY_PATTERN = re.compile(r"^\d{49}$")


def format_amount(value: Decimal) -> str:
    return f"{quantize_money(Decimal(value)):.2f}"


def iva_rate_code(rate: Decimal) -> str:
    """Authority code for an IVA rate expressed as a fraction (0.15 -> '4')."""
    code = IVA_RATE_CODES.get(Decimal(rate))
    if code is None:
        raise ValueError(f"Unsupported IVA rate: {rate}")
    return code


# ===============================================================================
# ACCESS KEY
# ===============================================================================


def mod11_check_digit(digits: str) -> int:
    """Module-11 check digit, weights 2..7 cycling from the rightmost digit."""
    total = 0
    for index, digit in enumerate(reversed(digits)):
        total += int(digit) * (2 + index % 6)
    check = 11 - total % 11
    if check == 11:  # noqa: PLR2004
        return 0
    if check == 10:  # noqa: PLR2004
        return 1
    return check


def numeric_code(invoice_number: str, order_id: str) -> str:
    """Deterministic 8-digit code, stable across re-attempts of the same invoice."""
    digest = hashlib.sha256(f"{invoice_number}:{order_id}".encode()).hexdigest()
    return str(int(digest, 16) % 10**NUMERIC_CODE_WIDTH).zfill(NUMERIC_CODE_WIDTH)


def generate_access_key(
    *,
    issued_on: Any,
    company_ruc: str,
    environment: str,
    series: str,
    invoice_number: str,
    code: str,
    document_type: str = DOCUMENT_TYPE_INVOICE,
    emission_type: str = EMISSION_TYPE_NORMAL,
) -> AccessKey:
    """
    Build the 49-digit access key.

    Layout: date(DDMMYYYY) + document type(2) + RUC(13) + environment(1)
    + series(6) + sequential(9) + numeric code(8) + emission type(1)
    + check digit(1).
    """
    sequential = str(int(invoice_number)).zfill(SEQUENTIAL_WIDTH)
    parts = {
        "company_ruc": (company_ruc, 13),
        "environment": (environment, 1),
        "series": (series, 6),
        "sequential": (sequential, SEQUENTIAL_WIDTH),
        "numeric code": (code, NUMERIC_CODE_WIDTH),
    }
    for name, (value, length) in parts.items():
        if len(value) != length or not value.isdigit():
            raise ValueError(f"Access key {name} must be {length} digits, got {value!r}")

    base = (
        f"{issued_on.strftime('%d%m%Y')}{document_type}{company_ruc}{environment}"
        f"{series}{sequential}{code}{emission_type}"
    )
    return f"{base}{mod11_check_digit(base)}"


def access_key_for(invoice: Invoice) -> AccessKey:
    """Access key for an invoice using the configured issuer data."""
    return generate_access_key(
        issued_on=timezone.localtime(invoice.issued_at).date(),
        company_ruc=invoicing_settings.company_ruc,
        environment=invoicing_settings.authority_environment,
        series=invoicing_settings.series,
        invoice_number=invoice.invoice_number,
        code=numeric_code(invoice.invoice_number, invoice.order_id),
    )


def is_valid_access_key(value: str) -> bool:
    if not value or not _ACCESS_KEY_PATTERN.match(value):
        return False
    return mod11_check_digit(value[:-1]) == int(value[-1])


# ===============================================================================
# DOCUMENT
# ===============================================================================


def build_invoice_payload(invoice: Invoice, access_key: AccessKey) -> dict[str, Any]:
    """
    Serialize an invoice to the authority document.

    Raises:
        ValueError: an item carries a tax rate the authority has no code for
    """
    detalles = []
    for item in invoice.items.order_by("position"):
        detalles.append(
            {
                "codigoPrincipal": item.product_code,
                "descripcion": item.product_name,
                "cantidad": str(item.quantity),
                "precioUnitario": format_amount(item.unit_price),
                "descuento": format_amount(item.discount),
                "precioTotalSinImpuesto": format_amount(item.subtotal),
                "impuestos": [
                    {
                        "codigo": TAX_CODE_IVA,
                        "codigoPorcentaje": iva_rate_code(item.tax_rate),
                        "tarifa": format_amount(item.tax_rate * 100),
                        "baseImponible": format_amount(item.subtotal),
                        "valor": format_amount(item.tax_amount),
                    }
                ],
            }
        )

    return {
        "secuencial": str(int(invoice.invoice_number)).zfill(SEQUENTIAL_WIDTH),
        "fechaEmision": timezone.localtime(invoice.issued_at).strftime("%Y-%m-%d"),
        "claveAcceso": access_key,
        "comprador": {
            "tipoIdentificacion": invoice.customer_identification_type,
            "identificacion": invoice.customer_identification,
            "razonSocial": invoice.customer_name,
            "direccion": invoice.customer_address,
            "telefono": invoice.customer_phone,
            "email": invoice.customer_email,
        },
        "detalles": detalles,
        "totales": {
            "totalSinImpuestos": format_amount(invoice.subtotal),
            "totalIva": format_amount(invoice.tax_amount),
            "importeTotal": format_amount(invoice.total_amount),
        },
        "moneda": invoice.currency,
        "informacionAdicional": {
            "Email": invoice.customer_email,
            "Direccion": invoice.customer_address,
        },
    }


def validate_payload(payload: dict[str, Any]) -> list[str]:
    """Local checks on a built document; returns the list of problems found."""
    errors: list[str] = []

    if not is_valid_access_key(payload.get("claveAcceso", "")):
        errors.append("claveAcceso must be 49 digits with a valid check digit")
    if not str(payload.get("secuencial", "")).isdigit():
        errors.append("secuencial must be numeric")

    buyer = payload.get("comprador") or {}
    if buyer.get("tipoIdentificacion") not in {id_type.value for id_type in IdentificationType}:
        errors.append(f"comprador.tipoIdentificacion is invalid: {buyer.get('tipoIdentificacion')!r}")
    if not buyer.get("identificacion"):
        errors.append("comprador.identificacion is required")
    if not buyer.get("razonSocial"):
        errors.append("comprador.razonSocial is required")

    detalles = payload.get("detalles") or []
    if not detalles:
        errors.append("detalles must contain at least one line")
    for index, line in enumerate(detalles, start=1):
        if not line.get("codigoPrincipal"):
            errors.append(f"detalles[{index}].codigoPrincipal is required")
        if not line.get("impuestos"):
            errors.append(f"detalles[{index}].impuestos is required")

    totals = payload.get("totales") or {}
    try:
        subtotal = Decimal(totals["totalSinImpuestos"])
        tax = Decimal(totals["totalIva"])
        total = Decimal(totals["importeTotal"])
        line_subtotal = sum((Decimal(line["precioTotalSinImpuesto"]) for line in detalles), Decimal("0"))
    except (KeyError, TypeError, ArithmeticError):
        errors.append("totales are missing or malformed")
    else:
        if subtotal + tax != total:
            errors.append("importeTotal must equal totalSinImpuestos + totalIva")
        if line_subtotal != subtotal:
            errors.append("totalSinImpuestos must equal the sum of detalles")

    return errors
