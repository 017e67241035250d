# ===============================================================================
# INVOICING API VIEWS - OPERATOR ENDPOINTS 🧾
# ===============================================================================

import logging
from typing import Any, ClassVar

from django.db.models import QuerySet
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAdminUser
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.serializers import BaseSerializer

from apps.invoicing.fiscal.orchestrator import SubmissionOrchestrator
from apps.invoicing.models import Invoice
from apps.invoicing.services import get_invoice_statistics

from .serializers import InvoiceDetailSerializer, InvoiceListSerializer

logger = logging.getLogger(__name__)


class InvoiceViewSet(viewsets.ReadOnlyModelViewSet):
    """
    🧾 Fiscal invoices for operators.

    Invoices are created by the pipeline only; the API can inspect them and
    trigger a manual retry of drafts and transient failures.

    Query Parameters:
        status (str): filter by lifecycle status
        order_id (str): filter by order
    """

    permission_classes: ClassVar = [IsAdminUser]
    filter_backends: ClassVar = [DjangoFilterBackend]
    filterset_fields: ClassVar = ["status", "order_id", "customer_identification_type"]

    def get_queryset(self) -> QuerySet[Invoice]:
        queryset = Invoice.objects.all()
        if self.action == "retrieve":
            queryset = queryset.prefetch_related("items")
        return queryset

    def get_serializer_class(self) -> type[BaseSerializer]:
        if self.action == "list":
            return InvoiceListSerializer
        return InvoiceDetailSerializer

    @action(detail=True, methods=["post"], url_path="retry")
    def retry(self, request: Request, pk: str | None = None) -> Response:
        """
        Retry submission now, ignoring the backoff window.

        Returns 409 when the invoice is not in a retryable state.
        """
        invoice = self.get_object()
        logger.info(f"[Invoicing API] Manual retry of {invoice.invoice_number} by {request.user}")

        result = SubmissionOrchestrator().retry(invoice.pk)
        if result.skipped:
            return Response(result.to_dict(), status=status.HTTP_409_CONFLICT)

        invoice.refresh_from_db()
        return Response(
            {**result.to_dict(), "invoice": InvoiceDetailSerializer(invoice).data},
            status=status.HTTP_200_OK,
        )

    @action(detail=False, methods=["get"], url_path="statistics")
    def statistics(self, request: Request, *args: Any, **kwargs: Any) -> Response:
        """Counts per status and authorized totals."""
        return Response(get_invoice_statistics())
