import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="InvoiceSequence",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("scope", models.CharField(default="invoice", max_length=50, unique=True)),
                ("last_value", models.PositiveBigIntegerField(default=0)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "verbose_name": "Invoice Sequence",
                "verbose_name_plural": "Invoice Sequences",
                "db_table": "invoicing_invoice_sequence",
            },
        ),
        migrations.CreateModel(
            name="Invoice",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("invoice_number", models.CharField(max_length=20, unique=True)),
                ("order_id", models.CharField(help_text="One invoice per order", max_length=64, unique=True)),
                ("buyer_id", models.CharField(db_index=True, max_length=64)),
                ("issued_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "created_via",
                    models.CharField(
                        choices=[("checkout", "Checkout"), ("manual", "Manual")],
                        default="checkout",
                        max_length=20,
                    ),
                ),
                ("subtotal", models.DecimalField(decimal_places=2, max_digits=14)),
                ("tax_amount", models.DecimalField(decimal_places=2, max_digits=14)),
                ("total_amount", models.DecimalField(decimal_places=2, max_digits=14)),
                ("currency", models.CharField(default="USD", max_length=10)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("draft", "Draft"),
                            ("submitting", "Submitting"),
                            ("authorized", "Authorized"),
                            ("rejected", "Rejected"),
                            ("transient_failure", "Transient Failure"),
                            ("definitively_failed", "Definitively Failed"),
                        ],
                        db_index=True,
                        default="draft",
                        max_length=30,
                    ),
                ),
                (
                    "status_changed_at",
                    models.DateTimeField(
                        default=django.utils.timezone.now,
                        help_text="When the last status transition was persisted",
                    ),
                ),
                ("customer_identification", models.CharField(max_length=20)),
                (
                    "customer_identification_type",
                    models.CharField(help_text="04 RUC, 05 cédula, 06 passport", max_length=2),
                ),
                ("customer_name", models.CharField(max_length=300)),
                ("customer_email", models.CharField(blank=True, max_length=254)),
                ("customer_phone", models.CharField(blank=True, max_length=50)),
                ("customer_address", models.TextField(blank=True)),
                ("authorization_number", models.CharField(blank=True, max_length=64, null=True)),
                ("access_key", models.CharField(blank=True, db_index=True, max_length=64, null=True)),
                ("authority_response", models.JSONField(blank=True, help_text="Raw authority response", null=True)),
                ("error_message", models.TextField(blank=True, null=True)),
                ("retry_count", models.PositiveIntegerField(default=0)),
                ("last_retry_at", models.DateTimeField(blank=True, null=True)),
                ("next_retry_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "verbose_name": "Invoice",
                "verbose_name_plural": "Invoices",
                "db_table": "invoicing_invoice",
                "ordering": ["-invoice_number"],
                "indexes": [
                    models.Index(
                        condition=models.Q(("status", "transient_failure")),
                        fields=["status", "next_retry_at"],
                        name="invoice_retry_idx",
                    ),
                    models.Index(fields=["status", "status_changed_at"], name="invoice_status_changed_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="InvoiceItem",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("position", models.PositiveIntegerField(default=0)),
                ("product_id", models.CharField(blank=True, help_text="Internal product reference", max_length=64)),
                ("product_code", models.CharField(help_text="Stable external product code", max_length=100)),
                ("product_name", models.CharField(max_length=300)),
                (
                    "quantity",
                    models.PositiveIntegerField(validators=[django.core.validators.MinValueValidator(1)]),
                ),
                ("unit_price", models.DecimalField(decimal_places=2, max_digits=14)),
                ("discount", models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ("subtotal", models.DecimalField(decimal_places=2, max_digits=14)),
                ("tax_rate", models.DecimalField(decimal_places=4, help_text="Fraction, e.g. 0.1500", max_digits=5)),
                ("tax_amount", models.DecimalField(decimal_places=2, max_digits=14)),
                ("total_amount", models.DecimalField(decimal_places=2, max_digits=14)),
                (
                    "invoice",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="items",
                        to="invoicing.invoice",
                    ),
                ),
            ],
            options={
                "verbose_name": "Invoice Item",
                "verbose_name_plural": "Invoice Items",
                "db_table": "invoicing_invoice_item",
                "ordering": ["invoice", "position"],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("quantity__gt", 0)), name="invoice_item_quantity_positive"),
                    models.CheckConstraint(
                        condition=models.Q(("unit_price__gte", 0)), name="invoice_item_unit_price_non_negative"
                    ),
                ],
            },
        ),
    ]
