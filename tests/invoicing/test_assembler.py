"""
Tests for invoice assembly from completed orders.
"""

from decimal import Decimal
from unittest.mock import Mock, patch

from django.test import SimpleTestCase, TestCase, override_settings

from apps.invoicing.assembler import (
    NO_ADDRESS,
    AssemblyErrorCode,
    InvoiceAssembler,
    aggregate_totals,
    buyer_display_name,
    compute_line,
    format_address,
)
from apps.invoicing.models import Invoice, InvoiceStatus
from apps.invoicing.orders import BillingProfile, OrderLine, OrderSnapshot
from apps.invoicing.sequencer import InvoiceSequencer
from apps.invoicing.signals import invoice_created
from tests.factories.invoicing_factories import VALID_RUC, build_order_payload, create_invoice


def _order(**overrides) -> OrderSnapshot:
    return OrderSnapshot.from_payload(build_order_payload(**overrides))


def _line(quantity=1, unit_price="10.00", discount="0", tax_rate=None) -> OrderLine:
    return OrderLine(
        product_id="P-1",
        product_code="sku-1",
        product_name="Widget",
        quantity=quantity,
        unit_price=Decimal(unit_price),
        line_subtotal=Decimal(unit_price) * quantity,
        discount=Decimal(discount),
        tax_rate=Decimal(tax_rate) if tax_rate is not None else None,
    )


class AmountComputationTestCase(SimpleTestCase):
    """Test the pure amount helpers."""

    def test_line_tax_rounded_half_up(self):
        """Test per-line tax is rounded to cents half-up."""
        computed = compute_line(_line(quantity=2, unit_price="299.99"), 0, Decimal("0.15"))
        self.assertEqual(computed.subtotal, Decimal("599.98"))
        self.assertEqual(computed.tax_amount, Decimal("90.00"))
        self.assertEqual(computed.total_amount, Decimal("689.98"))

        computed = compute_line(_line(unit_price="149.99"), 1, Decimal("0.15"))
        self.assertEqual(computed.tax_amount, Decimal("22.50"))

    def test_invoice_tax_is_sum_of_line_taxes(self):
        """Test totals aggregate rounded line amounts."""
        lines = [
            compute_line(_line(quantity=2, unit_price="299.99"), 0, Decimal("0.15")),
            compute_line(_line(unit_price="149.99"), 1, Decimal("0.15")),
        ]
        totals = aggregate_totals(lines)
        self.assertEqual(totals.subtotal, Decimal("749.97"))
        self.assertEqual(totals.tax_amount, Decimal("112.50"))
        self.assertEqual(totals.total_amount, Decimal("862.47"))

    def test_discount_and_line_rate(self):
        """Test discounts reduce the taxable base and a line rate overrides the default."""
        computed = compute_line(_line(unit_price="100.00", discount="10.00", tax_rate="0.05"), 0, Decimal("0.15"))
        self.assertEqual(computed.subtotal, Decimal("90.00"))
        self.assertEqual(computed.tax_rate, Decimal("0.05"))
        self.assertEqual(computed.tax_amount, Decimal("4.50"))

    def test_format_address(self):
        """Test address composition and the no-address fallback."""
        profile = BillingProfile(identification="x", address="Av. 10 de Agosto", city="Quito")
        self.assertEqual(format_address(profile, "Ecuador"), "Av. 10 de Agosto, Quito, Ecuador")
        self.assertEqual(format_address(BillingProfile(identification="x"), "Ecuador"), NO_ADDRESS)
        self.assertEqual(format_address(BillingProfile(identification="x", country="Peru"), "Ecuador"), "Peru")

    def test_buyer_display_name(self):
        """Test name fallback uses the buyer id, then the order id."""
        order = _order()
        self.assertEqual(buyer_display_name(BillingProfile(identification="x", name="Ana"), order), "Ana")
        self.assertEqual(buyer_display_name(BillingProfile(identification="x"), order), "Cliente BUYER-7")
        order = _order(buyer_id="")
        self.assertEqual(buyer_display_name(BillingProfile(identification="x"), order), "Cliente ORD-1001")


class InvoiceAssemblerTestCase(TestCase):
    """Test InvoiceAssembler.assemble."""

    def setUp(self):
        self.assembler = InvoiceAssembler()

    def test_assemble_creates_numbered_draft(self):
        """Test a valid order becomes a DRAFT invoice with computed amounts."""
        result = self.assembler.assemble(_order())

        self.assertTrue(result.is_ok())
        invoice = result.unwrap()
        self.assertEqual(invoice.invoice_number, "000000001")
        self.assertEqual(invoice.status, InvoiceStatus.DRAFT.value)
        self.assertEqual(invoice.order_id, "ORD-1001")
        self.assertEqual(invoice.subtotal, Decimal("749.97"))
        self.assertEqual(invoice.tax_amount, Decimal("112.50"))
        self.assertEqual(invoice.total_amount, Decimal("862.47"))
        self.assertEqual(invoice.currency, "USD")
        self.assertEqual(invoice.customer_identification_type, "05")
        self.assertEqual(invoice.customer_name, "María Pérez")
        self.assertEqual(invoice.customer_address, "Av. Amazonas N34-451, Quito, Pichincha, 170135, Ecuador")

        items = list(invoice.items.order_by("position"))
        self.assertEqual([item.product_code for item in items], ["laptop-stand", "usb-hub"])
        self.assertEqual([item.tax_amount for item in items], [Decimal("90.00"), Decimal("22.50")])
        self.assertEqual(items[0].tax_rate, Decimal("0.15"))

    def test_assemble_is_idempotent_per_order(self):
        """Test a second assembly returns the same invoice without a new number."""
        first = self.assembler.assemble(_order()).unwrap()
        second = self.assembler.assemble(_order()).unwrap()

        self.assertEqual(first.pk, second.pk)
        self.assertEqual(Invoice.objects.count(), 1)
        self.assertEqual(InvoiceSequencer().peek(), 1)

    def test_numbers_follow_order_of_assembly(self):
        """Test distinct orders get consecutive numbers."""
        first = self.assembler.assemble(_order(order_id="ORD-1")).unwrap()
        second = self.assembler.assemble(_order(order_id="ORD-2")).unwrap()
        self.assertEqual((first.invoice_number, second.invoice_number), ("000000001", "000000002"))

    def test_ruc_buyer(self):
        """Test RUC buyers are typed 04."""
        invoice = self.assembler.assemble(_order(identification=VALID_RUC)).unwrap()
        self.assertEqual(invoice.customer_identification_type, "04")
        self.assertEqual(invoice.customer_identification, VALID_RUC)

    def test_invalid_identification_consumes_no_number(self):
        """Test an unclassifiable id aborts before numbering."""
        result = self.assembler.assemble(_order(identification="12"))

        self.assertTrue(result.is_err())
        self.assertEqual(result.unwrap_err().code, AssemblyErrorCode.INVALID_IDENTIFICATION.value)
        self.assertFalse(Invoice.objects.exists())
        self.assertEqual(InvoiceSequencer().peek(), 0)

        invoice = self.assembler.assemble(_order(order_id="ORD-2")).unwrap()
        self.assertEqual(invoice.invoice_number, "000000001")

    def test_empty_order(self):
        """Test orders without lines are refused."""
        error = self.assembler.assemble(_order(line_items=[])).unwrap_err()
        self.assertEqual(error.code, AssemblyErrorCode.EMPTY_ORDER.value)

    def test_line_validation(self):
        """Test each invalid line is reported with its position."""
        cases = [
            ({"product_code": ""}, AssemblyErrorCode.MISSING_PRODUCT_CODE),
            ({"quantity": 0}, AssemblyErrorCode.INVALID_LINE),
            ({"quantity": -1}, AssemblyErrorCode.INVALID_LINE),
            ({"unit_price": "-5.00"}, AssemblyErrorCode.INVALID_LINE),
            ({"discount": "1000.00"}, AssemblyErrorCode.INVALID_LINE),
            ({"tax_rate": "15"}, AssemblyErrorCode.INVALID_LINE),
        ]
        for overrides, code in cases:
            with self.subTest(overrides=overrides):
                line = {"product_code": "sku-1", "quantity": 1, "unit_price": "10.00", **overrides}
                error = self.assembler.assemble(_order(line_items=[line])).unwrap_err()
                self.assertEqual(error.code, code.value)
                self.assertEqual(error.details["line"], 1)
        self.assertFalse(Invoice.objects.exists())

    def test_tax_rate_without_iva_code_refused(self):
        """Test a rate the authority cannot code fails before a number is consumed."""
        line = {"product_code": "sku-1", "quantity": 1, "unit_price": "100.00", "tax_rate": "0.08"}
        totals = {"subtotal": "100.00", "tax_amount": "8.00", "total": "108.00"}
        error = self.assembler.assemble(_order(line_items=[line], totals=totals)).unwrap_err()

        self.assertEqual(error.code, AssemblyErrorCode.INVALID_LINE.value)
        self.assertEqual(error.details["tax_rate"], "0.08")
        self.assertEqual(InvoiceSequencer().peek(), 0)
        self.assertFalse(Invoice.objects.exists())

    @override_settings(INVOICING_DEFAULT_TAX_RATE="0.08")
    def test_default_tax_rate_without_iva_code_refused(self):
        """Test lines falling back to an uncodable default rate are refused."""
        line = {"product_code": "sku-1", "quantity": 1, "unit_price": "100.00"}
        totals = {"subtotal": "100.00", "tax_amount": "8.00", "total": "108.00"}
        error = self.assembler.assemble(_order(line_items=[line], totals=totals)).unwrap_err()

        self.assertEqual(error.code, AssemblyErrorCode.INVALID_LINE.value)
        self.assertEqual(InvoiceSequencer().peek(), 0)

    def test_zero_rate_line_assembled(self):
        """Test 0% lines carry a valid IVA code."""
        line = {"product_code": "sku-1", "quantity": 2, "unit_price": "10.00", "tax_rate": "0"}
        totals = {"subtotal": "20.00", "tax_amount": "0.00", "total": "20.00"}
        invoice = self.assembler.assemble(_order(line_items=[line], totals=totals)).unwrap()
        self.assertEqual(invoice.tax_amount, Decimal("0.00"))

    def test_total_mismatch(self):
        """Test computed totals must match the order's totals."""
        totals = {"subtotal": "749.97", "tax_amount": "112.49", "total": "870.00"}
        error = self.assembler.assemble(_order(totals=totals)).unwrap_err()

        self.assertEqual(error.code, AssemblyErrorCode.TOTAL_MISMATCH.value)
        self.assertEqual(set(error.details), {"total"})
        self.assertEqual(error.details["total"], {"computed": "862.47", "order": "870.00"})
        self.assertEqual(InvoiceSequencer().peek(), 0)

    def test_difference_within_tolerance_accepted(self):
        """Test a one cent difference is tolerated."""
        totals = {"subtotal": "749.97", "tax_amount": "112.49", "total": "862.46"}
        invoice = self.assembler.assemble(_order(totals=totals)).unwrap()
        self.assertEqual(invoice.total_amount, Decimal("862.47"))

    def test_buyer_fallbacks(self):
        """Test missing name and address get placeholders."""
        payload = build_order_payload()
        payload["billing_profile"] = {"identification": "AB123456"}
        invoice = self.assembler.assemble(OrderSnapshot.from_payload(payload)).unwrap()

        self.assertEqual(invoice.customer_name, "Cliente BUYER-7")
        self.assertEqual(invoice.customer_address, NO_ADDRESS)
        self.assertEqual(invoice.customer_identification_type, "06")

    def test_invoice_created_sent_on_commit(self):
        """Test invoice_created is sent once the transaction commits."""
        receiver = Mock()
        invoice_created.connect(receiver, dispatch_uid="test_invoice_created")
        self.addCleanup(invoice_created.disconnect, dispatch_uid="test_invoice_created")

        with self.captureOnCommitCallbacks(execute=True):
            invoice = self.assembler.assemble(_order()).unwrap()

        receiver.assert_called_once()
        self.assertEqual(receiver.call_args.kwargs["invoice"], invoice)

    def test_concurrent_assembly_returns_winner(self):
        """Test losing the unique order race returns the existing invoice."""
        winner = create_invoice(number="000000050", order_id="ORD-1001")
        real_filter = Invoice.objects.filter
        calls = []

        def filter_missing_first(*args, **kwargs):
            calls.append(kwargs)
            if len(calls) == 1:
                return Invoice.objects.none()
            return real_filter(*args, **kwargs)

        with patch.object(Invoice.objects, "filter", side_effect=filter_missing_first):
            result = self.assembler.assemble(_order())

        self.assertEqual(result.unwrap().pk, winner.pk)
        self.assertEqual(Invoice.objects.count(), 1)
        self.assertEqual(InvoiceSequencer().peek(), 0)
