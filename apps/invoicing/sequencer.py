"""
Gap-free invoice numbering.

Numbers are allocated from a single counter row per scope. The row is
locked and incremented inside the caller's transaction, so a rollback of
the invoice insert also rolls back the increment and no number is ever
skipped. Concurrent allocations serialize on the row lock.
"""

from __future__ import annotations

import logging

from django.db import transaction
from django.db.models import F

from apps.common.types import InvoiceNumber

from .models import InvoiceSequence
from .settings import invoicing_settings

logger = logging.getLogger(__name__)


class SequencerError(Exception):
    """Invoice number could not be allocated."""


class InvoiceSequencer:
    """
    Allocates the next invoice number for a scope.

    Usage:
        with transaction.atomic():
            number = InvoiceSequencer().next()
            Invoice.objects.create(invoice_number=number, ...)
    """

    def __init__(self, scope: str | None = None, width: int | None = None):
        self.scope = scope or invoicing_settings.sequence_scope
        self.width = width or invoicing_settings.number_width

    def next(self) -> InvoiceNumber:
        """
        Allocate and return the next zero-padded number.

        Raises:
            SequencerError: called outside a transaction, or the counter
                no longer fits the configured width
        """
        if not transaction.get_connection().in_atomic_block:
            raise SequencerError("Invoice numbers must be allocated inside transaction.atomic()")

        sequence, created = InvoiceSequence.objects.select_for_update().get_or_create(scope=self.scope)
        if created:
            logger.info(f"✅ [Invoicing] Created invoice sequence for scope '{self.scope}'")

        InvoiceSequence.objects.filter(pk=sequence.pk).update(last_value=F("last_value") + 1)
        sequence.refresh_from_db(fields=["last_value"])

        number = self.format(sequence.last_value)
        logger.debug(f"[Invoicing] Allocated invoice number {number} (scope {self.scope})")
        return number

    def peek(self) -> int:
        """Last allocated value for the scope, 0 when nothing was allocated yet."""
        value = InvoiceSequence.objects.filter(scope=self.scope).values_list("last_value", flat=True).first()
        return value or 0

    def format(self, value: int) -> InvoiceNumber:
        number = f"{value:0{self.width}d}"
        if len(number) > self.width:
            raise SequencerError(f"Invoice sequence '{self.scope}' exhausted: {value} exceeds {self.width} digits")
        return number
