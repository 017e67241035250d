"""
Invoice models for the fiscal invoicing pipeline.

An Invoice is the legal snapshot of a completed order: numbered once,
never deleted, and only ever mutated by the submission orchestrator
(status transitions, authority fields, retry bookkeeping).
"""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import StrEnum
from typing import Any

from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import Q
from django.utils import timezone

from .settings import invoicing_settings

MONEY_MAX_DIGITS = 14
MONEY_DECIMAL_PLACES = 2


class InvoiceStatus(StrEnum):
    """Invoice lifecycle status enumeration."""

    DRAFT = "draft"  # Assembled and numbered, not submitted yet
    SUBMITTING = "submitting"  # Attempt in flight
    AUTHORIZED = "authorized"  # Authority accepted the document
    REJECTED = "rejected"  # Authority refused the content
    TRANSIENT_FAILURE = "transient_failure"  # Network/5xx/processing, retryable
    DEFINITIVELY_FAILED = "definitively_failed"  # Retries exhausted, needs an operator

    @classmethod
    def choices(cls) -> list[tuple[str, str]]:
        return [(status.value, status.name.replace("_", " ").title()) for status in cls]

    @classmethod
    def terminal_statuses(cls) -> set[str]:
        """Statuses that are never processed again automatically."""
        return {cls.AUTHORIZED.value, cls.REJECTED.value, cls.DEFINITIVELY_FAILED.value}

    @classmethod
    def retryable_statuses(cls) -> set[str]:
        """Statuses the retry loop may pick up."""
        return {cls.TRANSIENT_FAILURE.value}


class InvoiceOrigin(StrEnum):
    """How the invoice was created."""

    CHECKOUT = "checkout"
    MANUAL = "manual"

    @classmethod
    def choices(cls) -> list[tuple[str, str]]:
        return [(origin.value, origin.name.title()) for origin in cls]


# ===============================================================================
# INVOICE SEQUENCE
# ===============================================================================


class InvoiceSequence(models.Model):
    """
    Gap-free counter for invoice numbers.

    One row per scope. Only InvoiceSequencer touches it, always under a row
    lock inside the transaction that inserts the invoice.
    """

    scope = models.CharField(max_length=50, unique=True, default="invoice")
    last_value = models.PositiveBigIntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "invoicing_invoice_sequence"
        verbose_name = "Invoice Sequence"
        verbose_name_plural = "Invoice Sequences"

    def __str__(self) -> str:
        return f"{self.scope}: {self.last_value}"


# ===============================================================================
# INVOICE
# ===============================================================================


class Invoice(models.Model):
    """
    Fiscal invoice issued for exactly one completed order.

    Buyer fields are copied at issue time and never refreshed from the
    buyer's profile; the authority fields are filled by the orchestrator.
    """

    # Identification
    invoice_number = models.CharField(max_length=20, unique=True)
    order_id = models.CharField(max_length=64, unique=True, help_text="One invoice per order")
    buyer_id = models.CharField(max_length=64, db_index=True)
    issued_at = models.DateTimeField(default=timezone.now)
    created_via = models.CharField(
        max_length=20,
        choices=InvoiceOrigin.choices(),
        default=InvoiceOrigin.CHECKOUT.value,
    )

    # Amounts
    subtotal = models.DecimalField(max_digits=MONEY_MAX_DIGITS, decimal_places=MONEY_DECIMAL_PLACES)
    tax_amount = models.DecimalField(max_digits=MONEY_MAX_DIGITS, decimal_places=MONEY_DECIMAL_PLACES)
    total_amount = models.DecimalField(max_digits=MONEY_MAX_DIGITS, decimal_places=MONEY_DECIMAL_PLACES)
    currency = models.CharField(max_length=10, default="USD")

    status = models.CharField(
        max_length=30,
        choices=InvoiceStatus.choices(),
        default=InvoiceStatus.DRAFT.value,
        db_index=True,
    )
    status_changed_at = models.DateTimeField(
        default=timezone.now,
        help_text="When the last status transition was persisted",
    )

    # Buyer snapshot
    customer_identification = models.CharField(max_length=20)
    customer_identification_type = models.CharField(max_length=2, help_text="04 RUC, 05 cédula, 06 passport")
    customer_name = models.CharField(max_length=300)
    customer_email = models.CharField(max_length=254, blank=True)
    customer_phone = models.CharField(max_length=50, blank=True)
    customer_address = models.TextField(blank=True)

    # Fiscal authority fields
    authorization_number = models.CharField(max_length=64, null=True, blank=True)
    access_key = models.CharField(max_length=64, null=True, blank=True, db_index=True)
    authority_response = models.JSONField(null=True, blank=True, help_text="Raw authority response")
    error_message = models.TextField(null=True, blank=True)

    # Retry bookkeeping
    retry_count = models.PositiveIntegerField(default=0)
    last_retry_at = models.DateTimeField(null=True, blank=True)
    next_retry_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "invoicing_invoice"
        verbose_name = "Invoice"
        verbose_name_plural = "Invoices"
        ordering = ["-invoice_number"]

        indexes = [
            models.Index(
                fields=["status", "next_retry_at"],
                name="invoice_retry_idx",
                condition=Q(status="transient_failure"),
            ),
            models.Index(
                fields=["status", "status_changed_at"],
                name="invoice_status_changed_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"Invoice {self.invoice_number} [{self.status}]"

    # --- Status Transition Methods ---

    def _transition(self, status: InvoiceStatus, now: datetime | None = None) -> None:
        self.status = status.value
        self.status_changed_at = now or timezone.now()

    def mark_submitting(self, access_key: str | None = None, save: bool = True) -> None:
        """Mark invoice as having a submission in flight."""
        self._transition(InvoiceStatus.SUBMITTING)
        if access_key and not self.access_key:
            self.access_key = access_key
        if save:
            self.save(update_fields=["status", "status_changed_at", "access_key", "updated_at"])

    def mark_authorized(
        self,
        access_key: str,
        authorization_number: str,
        response: dict[str, Any] | None = None,
        save: bool = True,
    ) -> None:
        """Mark invoice as authorized by the tax authority."""
        self._transition(InvoiceStatus.AUTHORIZED)
        self.access_key = access_key
        self.authorization_number = authorization_number
        self.authority_response = response
        self.error_message = None
        self.next_retry_at = None
        if save:
            self.save(
                update_fields=[
                    "status",
                    "status_changed_at",
                    "access_key",
                    "authorization_number",
                    "authority_response",
                    "error_message",
                    "next_retry_at",
                    "updated_at",
                ]
            )

    def mark_rejected(self, reason: str, response: dict[str, Any] | None = None, save: bool = True) -> None:
        """Mark invoice as rejected by the tax authority (content problem, not retried)."""
        self._transition(InvoiceStatus.REJECTED)
        self.error_message = reason or "Rejected by the tax authority"
        self.authority_response = response
        self.next_retry_at = None
        if save:
            self.save(
                update_fields=[
                    "status",
                    "status_changed_at",
                    "error_message",
                    "authority_response",
                    "next_retry_at",
                    "updated_at",
                ]
            )

    def mark_transient_failure(
        self,
        cause: str,
        response: dict[str, Any] | None = None,
        access_key: str | None = None,
        save: bool = True,
    ) -> None:
        """
        Record a retryable failure and schedule the next attempt.

        Escalates to DEFINITIVELY_FAILED once retry_count reaches the
        configured maximum number of attempts.
        """
        now = timezone.now()
        self.retry_count += 1
        self.last_retry_at = now
        self.error_message = cause or "Transient submission failure"
        if response is not None:
            self.authority_response = response
        if access_key:
            self.access_key = access_key

        if self.retry_count >= invoicing_settings.max_attempts:
            self._transition(InvoiceStatus.DEFINITIVELY_FAILED, now)
            self.next_retry_at = None
        else:
            self._transition(InvoiceStatus.TRANSIENT_FAILURE, now)
            self.next_retry_at = now + timedelta(seconds=invoicing_settings.get_retry_delay(self.retry_count))

        if save:
            self.save(
                update_fields=[
                    "status",
                    "status_changed_at",
                    "retry_count",
                    "last_retry_at",
                    "next_retry_at",
                    "error_message",
                    "authority_response",
                    "access_key",
                    "updated_at",
                ]
            )

    def mark_definitively_failed(self, reason: str, save: bool = True) -> None:
        """Escalate without another attempt (retry budget already spent)."""
        self._transition(InvoiceStatus.DEFINITIVELY_FAILED)
        self.error_message = reason
        self.next_retry_at = None
        if save:
            self.save(update_fields=["status", "status_changed_at", "error_message", "next_retry_at", "updated_at"])

    # --- Query Methods ---

    @classmethod
    def get_ready_for_retry(cls, limit: int = 100) -> models.QuerySet[Invoice]:
        """Transient failures whose backoff window has elapsed and that still have attempts left."""
        now = timezone.now()
        return cls.objects.filter(
            status=InvoiceStatus.TRANSIENT_FAILURE.value,
            retry_count__lt=invoicing_settings.max_attempts,
            next_retry_at__isnull=False,
            next_retry_at__lte=now,
        ).order_by("next_retry_at")[:limit]

    @classmethod
    def get_stuck_submissions(cls, timeout_seconds: int | None = None) -> models.QuerySet[Invoice]:
        """Invoices left in SUBMITTING longer than the timeout (worker crashed mid-attempt)."""
        if timeout_seconds is None:
            timeout_seconds = invoicing_settings.submitting_timeout_seconds
        cutoff = timezone.now() - timedelta(seconds=timeout_seconds)
        return cls.objects.filter(status=InvoiceStatus.SUBMITTING.value, status_changed_at__lt=cutoff)

    @classmethod
    def get_stale_drafts(cls, grace_seconds: int | None = None, limit: int = 100) -> models.QuerySet[Invoice]:
        """Drafts whose queued submission never ran."""
        if grace_seconds is None:
            grace_seconds = invoicing_settings.draft_grace_seconds
        cutoff = timezone.now() - timedelta(seconds=grace_seconds)
        return cls.objects.filter(status=InvoiceStatus.DRAFT.value, created_at__lt=cutoff).order_by("invoice_number")[
            :limit
        ]

    # --- Business Logic ---

    @property
    def is_terminal(self) -> bool:
        return self.status in InvoiceStatus.terminal_statuses()

    @property
    def is_stuck(self) -> bool:
        """Derived condition: SUBMITTING for longer than the configured timeout."""
        if self.status != InvoiceStatus.SUBMITTING.value:
            return False
        age = timezone.now() - self.status_changed_at
        return age > timedelta(seconds=invoicing_settings.submitting_timeout_seconds)

    @property
    def can_retry(self) -> bool:
        """Whether another submission attempt is allowed right now (ignoring backoff)."""
        if self.status == InvoiceStatus.DRAFT.value:
            return True
        return (
            self.status in InvoiceStatus.retryable_statuses() and self.retry_count < invoicing_settings.max_attempts
        )

    @property
    def authority_status_label(self) -> str:
        """Raw status label reported by the authority (RECIBIDA, AUTORIZADO, ...), if any."""
        response = self.authority_response or {}
        data = response.get("data") if isinstance(response, dict) else None
        if isinstance(data, dict):
            return str(data.get("estado", ""))
        return ""


# ===============================================================================
# INVOICE ITEMS
# ===============================================================================


class InvoiceItem(models.Model):
    """One line of an invoice, built from one order line."""

    invoice = models.ForeignKey(Invoice, on_delete=models.PROTECT, related_name="items")
    position = models.PositiveIntegerField(default=0)

    product_id = models.CharField(max_length=64, blank=True, help_text="Internal product reference")
    product_code = models.CharField(max_length=100, help_text="Stable external product code")
    product_name = models.CharField(max_length=300)

    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    unit_price = models.DecimalField(max_digits=MONEY_MAX_DIGITS, decimal_places=MONEY_DECIMAL_PLACES)
    discount = models.DecimalField(max_digits=MONEY_MAX_DIGITS, decimal_places=MONEY_DECIMAL_PLACES, default=0)
    subtotal = models.DecimalField(max_digits=MONEY_MAX_DIGITS, decimal_places=MONEY_DECIMAL_PLACES)
    tax_rate = models.DecimalField(max_digits=5, decimal_places=4, help_text="Fraction, e.g. 0.1500")
    tax_amount = models.DecimalField(max_digits=MONEY_MAX_DIGITS, decimal_places=MONEY_DECIMAL_PLACES)
    total_amount = models.DecimalField(max_digits=MONEY_MAX_DIGITS, decimal_places=MONEY_DECIMAL_PLACES)

    class Meta:
        db_table = "invoicing_invoice_item"
        verbose_name = "Invoice Item"
        verbose_name_plural = "Invoice Items"
        ordering = ["invoice", "position"]

        constraints = [
            models.CheckConstraint(condition=Q(quantity__gt=0), name="invoice_item_quantity_positive"),
            models.CheckConstraint(condition=Q(unit_price__gte=0), name="invoice_item_unit_price_non_negative"),
        ]

    def __str__(self) -> str:
        return f"{self.product_code} x {self.quantity}"
