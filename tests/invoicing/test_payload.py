"""
Tests for the tax authority document and access key.
"""

from datetime import UTC, date, datetime
from decimal import Decimal

from django.test import SimpleTestCase, TestCase, override_settings

from apps.invoicing.fiscal.payload import (
    access_key_for,
    build_invoice_payload,
    format_amount,
    generate_access_key,
    is_valid_access_key,
    iva_rate_code,
    mod11_check_digit,
    numeric_code,
    validate_payload,
)
from tests.factories.invoicing_factories import COMPANY_RUC, create_invoice

ISSUED_AT = datetime(2024, 3, 15, 17, 0, tzinfo=UTC)


class AccessKeyTestCase(SimpleTestCase):
    """Test access key generation and validation."""

    def test_mod11_check_digit(self):
        """Test weights 2..7 from the right and the 11/10 special cases."""
        self.assertEqual(mod11_check_digit("12"), 4)
        self.assertEqual(mod11_check_digit("0"), 0)
        self.assertEqual(mod11_check_digit("6"), 1)
        self.assertEqual(mod11_check_digit("1111111"), 4)

    def test_generate_access_key_layout(self):
        """Test the 49-digit layout."""
        key = generate_access_key(
            issued_on=date(2024, 3, 15),
            company_ruc=COMPANY_RUC,
            environment="1",
            series="001001",
            invoice_number="000000042",
            code="12345678",
        )

        self.assertEqual(len(key), 49)
        self.assertEqual(key[:8], "15032024")
        self.assertEqual(key[8:10], "01")
        self.assertEqual(key[10:23], COMPANY_RUC)
        self.assertEqual(key[23], "1")
        self.assertEqual(key[24:30], "001001")
        self.assertEqual(key[30:39], "000000042")
        self.assertEqual(key[39:47], "12345678")
        self.assertEqual(key[47], "1")
        self.assertTrue(is_valid_access_key(key))

    def test_generate_access_key_rejects_bad_parts(self):
        """Test malformed issuer data raises ValueError."""
        base = {
            "issued_on": date(2024, 3, 15),
            "company_ruc": COMPANY_RUC,
            "environment": "1",
            "series": "001001",
            "invoice_number": "1",
            "code": "12345678",
        }
        for field, value in (("company_ruc", ""), ("series", "1001"), ("environment", "12"), ("code", "1234")):
            with self.subTest(field=field), self.assertRaises(ValueError):
                generate_access_key(**{**base, field: value})

    def test_is_valid_access_key(self):
        """Test length, digits and check digit are all verified."""
        key = generate_access_key(
            issued_on=date(2024, 1, 2),
            company_ruc=COMPANY_RUC,
            environment="2",
            series="002003",
            invoice_number="7",
            code="00000001",
        )
        self.assertTrue(is_valid_access_key(key))
        tampered = key[:-1] + str((int(key[-1]) + 1) % 10)
        self.assertFalse(is_valid_access_key(tampered))
        self.assertFalse(is_valid_access_key(key[:-1]))
        self.assertFalse(is_valid_access_key("A" * 49))
        self.assertFalse(is_valid_access_key(""))

    def test_numeric_code_deterministic(self):
        """Test the numeric code is stable for an invoice and differs between invoices."""
        code = numeric_code("000000001", "ORD-1")
        self.assertEqual(code, numeric_code("000000001", "ORD-1"))
        self.assertEqual(len(code), 8)
        self.assertTrue(code.isdigit())
        self.assertNotEqual(code, numeric_code("000000002", "ORD-2"))


class AmountFormattingTestCase(SimpleTestCase):
    """Test amount and rate codes."""

    def test_format_amount(self):
        """Test two decimals, half-up."""
        self.assertEqual(format_amount(Decimal("15")), "15.00")
        self.assertEqual(format_amount(Decimal("0.125")), "0.13")

    def test_iva_rate_code(self):
        """Test supported rates map to their codes."""
        self.assertEqual(iva_rate_code(Decimal("0.15")), "4")
        self.assertEqual(iva_rate_code(Decimal("0.1500")), "4")
        self.assertEqual(iva_rate_code(Decimal("0.12")), "2")
        self.assertEqual(iva_rate_code(Decimal("0")), "0")
        with self.assertRaises(ValueError):
            iva_rate_code(Decimal("0.13"))


class InvoicePayloadTestCase(TestCase):
    """Test build_invoice_payload and validate_payload."""

    def setUp(self):
        self.invoice = create_invoice(number="000000001", order_id="ORD-1", issued_at=ISSUED_AT)
        self.access_key = access_key_for(self.invoice)

    def test_access_key_for_invoice(self):
        """Test the key uses the local issue date and configured issuer data."""
        self.assertTrue(is_valid_access_key(self.access_key))
        self.assertEqual(self.access_key[:8], "15032024")
        self.assertEqual(self.access_key[10:23], COMPANY_RUC)
        self.assertEqual(self.access_key[30:39], "000000001")
        self.assertEqual(self.access_key[39:47], numeric_code("000000001", "ORD-1"))
        self.assertEqual(access_key_for(self.invoice), self.access_key)

    @override_settings(FISCAL_AUTHORITY_COMPANY_RUC="")
    def test_access_key_requires_company_ruc(self):
        """Test missing issuer configuration raises."""
        with self.assertRaises(ValueError):
            access_key_for(self.invoice)

    def test_build_payload(self):
        """Test the document fields."""
        payload = build_invoice_payload(self.invoice, self.access_key)

        self.assertEqual(payload["secuencial"], "000000001")
        self.assertEqual(payload["fechaEmision"], "2024-03-15")
        self.assertEqual(payload["claveAcceso"], self.access_key)
        self.assertEqual(payload["moneda"], "USD")
        self.assertEqual(
            payload["comprador"],
            {
                "tipoIdentificacion": "05",
                "identificacion": "1710034065",
                "razonSocial": "María Pérez",
                "direccion": "Av. Amazonas N34-451, Quito, Ecuador",
                "telefono": "0991234567",
                "email": "maria@example.com",
            },
        )
        line = payload["detalles"][0]
        self.assertEqual(line["codigoPrincipal"], "laptop-stand")
        self.assertEqual(line["cantidad"], "1")
        self.assertEqual(line["precioUnitario"], "100.00")
        self.assertEqual(line["descuento"], "0.00")
        self.assertEqual(line["precioTotalSinImpuesto"], "100.00")
        self.assertEqual(
            line["impuestos"],
            [{"codigo": "2", "codigoPorcentaje": "4", "tarifa": "15.00", "baseImponible": "100.00", "valor": "15.00"}],
        )
        self.assertEqual(
            payload["totales"],
            {"totalSinImpuestos": "100.00", "totalIva": "15.00", "importeTotal": "115.00"},
        )

    def test_valid_payload_has_no_issues(self):
        """Test a built document passes local validation."""
        self.assertEqual(validate_payload(build_invoice_payload(self.invoice, self.access_key)), [])

    def test_validate_payload_reports_problems(self):
        """Test broken documents are reported field by field."""
        payload = build_invoice_payload(self.invoice, self.access_key)
        payload["claveAcceso"] = "123"
        payload["comprador"]["tipoIdentificacion"] = "09"
        payload["comprador"]["razonSocial"] = ""
        payload["totales"]["importeTotal"] = "999.00"

        issues = validate_payload(payload)

        self.assertEqual(len(issues), 4)
        self.assertTrue(any("claveAcceso" in issue for issue in issues))
        self.assertTrue(any("tipoIdentificacion" in issue for issue in issues))
        self.assertTrue(any("razonSocial" in issue for issue in issues))
        self.assertTrue(any("importeTotal" in issue for issue in issues))

    def test_validate_payload_without_lines(self):
        """Test documents need at least one line and well-formed totals."""
        issues = validate_payload({"claveAcceso": self.access_key, "secuencial": "1", "comprador": {}, "totales": {}})
        self.assertIn("detalles must contain at least one line", issues)
        self.assertIn("totales are missing or malformed", issues)

    def test_unsupported_rate_raises(self):
        """Test an item with an unknown IVA rate cannot be serialized."""
        self.invoice.items.update(tax_rate=Decimal("0.13"))
        with self.assertRaises(ValueError):
            build_invoice_payload(self.invoice, self.access_key)
