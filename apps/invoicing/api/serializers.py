# ===============================================================================
# INVOICING API SERIALIZERS - OPERATOR VIEW OF FISCAL INVOICES 🧾
# ===============================================================================

from typing import ClassVar

from rest_framework import serializers

from apps.invoicing.models import Invoice, InvoiceItem


class InvoiceItemSerializer(serializers.ModelSerializer):
    """Serializer for invoice line items"""

    class Meta:
        model = InvoiceItem
        fields: ClassVar = [
            "position",
            "product_id",
            "product_code",
            "product_name",
            "quantity",
            "unit_price",
            "discount",
            "subtotal",
            "tax_rate",
            "tax_amount",
            "total_amount",
        ]


class InvoiceListSerializer(serializers.ModelSerializer):
    """Serializer for invoice list view - minimal data"""

    class Meta:
        model = Invoice
        fields: ClassVar = [
            "id",
            "invoice_number",
            "order_id",
            "status",
            "total_amount",
            "currency",
            "retry_count",
            "next_retry_at",
            "issued_at",
        ]


class InvoiceDetailSerializer(serializers.ModelSerializer):
    """Full invoice including items, authority fields and retry bookkeeping"""

    items = InvoiceItemSerializer(many=True, read_only=True)
    authority_status = serializers.CharField(source="authority_status_label", read_only=True)
    can_retry = serializers.BooleanField(read_only=True)
    is_stuck = serializers.BooleanField(read_only=True)

    class Meta:
        model = Invoice
        fields: ClassVar = [
            "id",
            "invoice_number",
            "order_id",
            "buyer_id",
            "issued_at",
            "created_via",
            "status",
            "status_changed_at",
            "subtotal",
            "tax_amount",
            "total_amount",
            "currency",
            "customer_identification",
            "customer_identification_type",
            "customer_name",
            "customer_email",
            "customer_phone",
            "customer_address",
            "authorization_number",
            "access_key",
            "authority_status",
            "error_message",
            "retry_count",
            "last_retry_at",
            "next_retry_at",
            "can_retry",
            "is_stuck",
            "items",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields
