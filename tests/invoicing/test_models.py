"""
Tests for invoice models and lifecycle transitions.
"""

from datetime import timedelta

from django.db import IntegrityError, transaction
from django.test import TestCase, override_settings
from django.utils import timezone

from apps.invoicing.models import Invoice, InvoiceStatus
from tests.factories.invoicing_factories import create_invoice


class InvoiceStatusTestCase(TestCase):
    """Test InvoiceStatus helpers."""

    def test_terminal_statuses(self):
        """Test authorized, rejected and definitively failed are terminal."""
        self.assertEqual(
            InvoiceStatus.terminal_statuses(),
            {"authorized", "rejected", "definitively_failed"},
        )

    def test_choices(self):
        """Test choices have readable labels."""
        self.assertIn(("transient_failure", "Transient Failure"), InvoiceStatus.choices())


class InvoiceModelTestCase(TestCase):
    """Test Invoice transitions and queries."""

    def test_str(self):
        """Test string representation."""
        invoice = create_invoice()
        self.assertEqual(str(invoice), "Invoice 000000001 [draft]")
        self.assertEqual(str(invoice.items.get()), "laptop-stand x 1")

    def test_order_id_unique(self):
        """Test one invoice per order."""
        create_invoice(number="000000001", order_id="ORD-1")
        with self.assertRaises(IntegrityError), transaction.atomic():
            create_invoice(number="000000002", order_id="ORD-1")

    def test_mark_submitting_keeps_access_key(self):
        """Test an access key is stored once and never replaced."""
        invoice = create_invoice()
        invoice.mark_submitting("1" * 49)
        invoice.refresh_from_db()
        self.assertEqual(invoice.status, InvoiceStatus.SUBMITTING.value)
        self.assertEqual(invoice.access_key, "1" * 49)

        invoice.mark_submitting("2" * 49)
        self.assertEqual(invoice.access_key, "1" * 49)

    def test_mark_authorized(self):
        """Test authorization stores authority fields and clears errors."""
        invoice = create_invoice(error_message="previous timeout", next_retry_at=timezone.now())
        invoice.mark_authorized("1" * 49, "AUTH-1", {"data": {"estado": "AUTORIZADO"}})
        invoice.refresh_from_db()

        self.assertEqual(invoice.status, InvoiceStatus.AUTHORIZED.value)
        self.assertEqual(invoice.authorization_number, "AUTH-1")
        self.assertIsNone(invoice.error_message)
        self.assertIsNone(invoice.next_retry_at)
        self.assertEqual(invoice.authority_status_label, "AUTORIZADO")
        self.assertTrue(invoice.is_terminal)

    def test_mark_rejected(self):
        """Test rejection stores the reason."""
        invoice = create_invoice()
        invoice.mark_rejected("RUC inválido")
        invoice.refresh_from_db()
        self.assertEqual(invoice.status, InvoiceStatus.REJECTED.value)
        self.assertEqual(invoice.error_message, "RUC inválido")
        self.assertFalse(invoice.can_retry)

    def test_mark_transient_failure_schedules_retry(self):
        """Test the first failure counts one attempt and waits the first delay."""
        invoice = create_invoice()
        before = timezone.now()
        invoice.mark_transient_failure("Request timed out", access_key="1" * 49)
        invoice.refresh_from_db()

        self.assertEqual(invoice.status, InvoiceStatus.TRANSIENT_FAILURE.value)
        self.assertEqual(invoice.retry_count, 1)
        self.assertEqual(invoice.error_message, "Request timed out")
        self.assertEqual(invoice.access_key, "1" * 49)
        self.assertGreaterEqual(invoice.next_retry_at, before + timedelta(seconds=300))
        self.assertLess(invoice.next_retry_at, before + timedelta(seconds=900))
        self.assertTrue(invoice.can_retry)

    def test_backoff_grows_with_attempts(self):
        """Test later failures wait longer."""
        invoice = create_invoice(retry_count=2)
        now = timezone.now()
        invoice.mark_transient_failure("HTTP 503")
        self.assertEqual(invoice.retry_count, 3)
        self.assertGreaterEqual(invoice.next_retry_at, now + timedelta(seconds=1800))

    def test_transient_failure_escalates_at_max_attempts(self):
        """Test the fifth failure is definitive."""
        invoice = create_invoice(status=InvoiceStatus.TRANSIENT_FAILURE.value, retry_count=4)
        invoice.mark_transient_failure("HTTP 503")
        invoice.refresh_from_db()

        self.assertEqual(invoice.status, InvoiceStatus.DEFINITIVELY_FAILED.value)
        self.assertEqual(invoice.retry_count, 5)
        self.assertIsNone(invoice.next_retry_at)
        self.assertFalse(invoice.can_retry)

    @override_settings(INVOICING_MAX_ATTEMPTS=1)
    def test_single_attempt_budget(self):
        """Test a budget of one escalates on the first failure."""
        invoice = create_invoice()
        invoice.mark_transient_failure("timeout")
        self.assertEqual(invoice.status, InvoiceStatus.DEFINITIVELY_FAILED.value)

    def test_is_stuck(self):
        """Test SUBMITTING past the timeout is stuck."""
        invoice = create_invoice(status=InvoiceStatus.SUBMITTING.value)
        self.assertFalse(invoice.is_stuck)

        invoice.status_changed_at = timezone.now() - timedelta(seconds=301)
        self.assertTrue(invoice.is_stuck)

        invoice.status = InvoiceStatus.DRAFT.value
        self.assertFalse(invoice.is_stuck)

    def test_get_ready_for_retry(self):
        """Test only due transient failures are returned."""
        past = timezone.now() - timedelta(minutes=1)
        future = timezone.now() + timedelta(minutes=10)
        due = create_invoice(number="000000001", status="transient_failure", retry_count=1, next_retry_at=past)
        create_invoice(number="000000002", status="transient_failure", retry_count=1, next_retry_at=future)
        create_invoice(number="000000003", status="transient_failure", retry_count=5, next_retry_at=past)
        create_invoice(number="000000004", status="draft")

        self.assertEqual(list(Invoice.get_ready_for_retry()), [due])

    def test_get_stuck_submissions(self):
        """Test stuck submissions are selected by status age."""
        stuck = create_invoice(number="000000001", status="submitting")
        Invoice.objects.filter(pk=stuck.pk).update(status_changed_at=timezone.now() - timedelta(minutes=10))
        create_invoice(number="000000002", status="submitting")

        self.assertEqual(list(Invoice.get_stuck_submissions()), [stuck])

    def test_get_stale_drafts(self):
        """Test drafts older than the grace period are selected."""
        stale = create_invoice(number="000000001")
        Invoice.objects.filter(pk=stale.pk).update(created_at=timezone.now() - timedelta(minutes=5))
        create_invoice(number="000000002")

        self.assertEqual(list(Invoice.get_stale_drafts()), [stale])

    def test_authority_status_label_without_response(self):
        """Test label is empty when nothing was stored."""
        self.assertEqual(create_invoice().authority_status_label, "")
