import uuid

import django.db.models.deletion
import django.utils.timezone
import django_fsm
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Invoice",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "deleted_at",
                    models.DateTimeField(
                        blank=True,
                        db_index=True,
                        help_text="Timestamp when this record was soft deleted",
                        null=True,
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "invoice_number",
                    models.CharField(
                        help_text="Human-facing invoice number (INV-YYYY-NNNNN)",
                        max_length=32,
                        unique=True,
                    ),
                ),
                (
                    "student_id",
                    models.PositiveBigIntegerField(
                        db_index=True,
                        help_text="Student this invoice is billed to",
                    ),
                ),
                (
                    "fee_structure_id",
                    models.PositiveBigIntegerField(
                        blank=True,
                        help_text="Fee structure the subtotal was computed from",
                        null=True,
                    ),
                ),
                (
                    "academic_year_id",
                    models.PositiveBigIntegerField(
                        blank=True,
                        help_text="Academic year this invoice belongs to",
                        null=True,
                    ),
                ),
                (
                    "subtotal",
                    models.DecimalField(
                        decimal_places=2,
                        help_text="Amount before discount",
                        max_digits=12,
                    ),
                ),
                (
                    "discount",
                    models.DecimalField(
                        decimal_places=2,
                        default=0,
                        help_text="Discount granted at creation",
                        max_digits=12,
                    ),
                ),
                (
                    "discount_reason",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Why the discount was granted",
                        max_length=255,
                    ),
                ),
                (
                    "total_amount",
                    models.DecimalField(
                        decimal_places=2,
                        help_text="subtotal - discount",
                        max_digits=12,
                    ),
                ),
                (
                    "paid_amount",
                    models.DecimalField(
                        decimal_places=2,
                        default=0,
                        help_text="Money applied against this invoice",
                        max_digits=12,
                    ),
                ),
                (
                    "balance",
                    models.DecimalField(
                        decimal_places=2,
                        help_text="total_amount - paid_amount",
                        max_digits=12,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("partial", "Partially Paid"),
                            ("paid", "Paid"),
                            ("overdue", "Overdue"),
                            ("cancelled", "Cancelled"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Derived payment status",
                        max_length=16,
                    ),
                ),
                (
                    "discount_approval_status",
                    models.CharField(
                        choices=[
                            ("none", "No Discount"),
                            ("pending", "Pending Approval"),
                            ("approved", "Approved"),
                            ("rejected", "Rejected"),
                        ],
                        default="none",
                        help_text="Review state of the discount",
                        max_length=16,
                    ),
                ),
                (
                    "discount_reviewed_by",
                    models.PositiveBigIntegerField(
                        blank=True,
                        help_text="Who approved or rejected the discount",
                        null=True,
                    ),
                ),
                ("discount_reviewed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "due_date",
                    models.DateField(
                        db_index=True,
                        help_text="Balance left after this date makes the invoice overdue",
                    ),
                ),
                (
                    "generated_at",
                    models.DateTimeField(
                        default=django.utils.timezone.now,
                        help_text="When the invoice was issued",
                    ),
                ),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
            ],
            options={
                "verbose_name": "Invoice",
                "verbose_name_plural": "Invoices",
                "ordering": ["-generated_at"],
                "indexes": [
                    models.Index(
                        fields=["student_id", "status"],
                        name="billing_inv_student_7c1e2a_idx",
                    ),
                    models.Index(
                        fields=["status", "due_date"],
                        name="billing_inv_status_4b9d10_idx",
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(
                            ("paid_amount__gte", 0),
                            ("paid_amount__lte", models.F("total_amount")),
                        ),
                        name="invoice_paid_within_total",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            ("balance", models.F("total_amount") - models.F("paid_amount"))
                        ),
                        name="invoice_balance_matches_amounts",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            ("discount__gte", 0),
                            ("discount__lte", models.F("subtotal")),
                        ),
                        name="invoice_discount_within_subtotal",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Payment",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "student_id",
                    models.PositiveBigIntegerField(
                        db_index=True,
                        help_text="Student who paid (copied from the invoice)",
                    ),
                ),
                (
                    "receipt_number",
                    models.CharField(
                        help_text="Human-facing receipt number (RCP-YYYY-NNNNN)",
                        max_length=32,
                        unique=True,
                    ),
                ),
                (
                    "amount",
                    models.DecimalField(
                        decimal_places=2,
                        help_text="Amount received",
                        max_digits=12,
                    ),
                ),
                (
                    "method",
                    models.CharField(
                        choices=[
                            ("cash", "Cash"),
                            ("bank_transfer", "Bank Transfer"),
                            ("esewa", "eSewa"),
                            ("khalti", "Khalti"),
                            ("ime_pay", "IME Pay"),
                        ],
                        max_length=16,
                    ),
                ),
                (
                    "external_ref",
                    models.CharField(
                        blank=True,
                        help_text="Gateway transaction reference",
                        max_length=128,
                        null=True,
                        unique=True,
                    ),
                ),
                (
                    "payment_date",
                    models.DateField(default=django.utils.timezone.localdate),
                ),
                (
                    "received_by",
                    models.PositiveBigIntegerField(
                        blank=True,
                        help_text="Staff member who recorded the payment",
                        null=True,
                    ),
                ),
                ("remarks", models.TextField(blank=True, default="")),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                            ("refunded", "Refunded"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current state of the payment (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("failed_at", models.DateTimeField(blank=True, null=True)),
                ("refunded_at", models.DateTimeField(blank=True, null=True)),
                ("failure_reason", models.TextField(blank=True, null=True)),
                (
                    "invoice",
                    models.ForeignKey(
                        help_text="Invoice this payment is applied to",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payments",
                        to="billing.invoice",
                    ),
                ),
            ],
            options={
                "verbose_name": "Payment",
                "verbose_name_plural": "Payments",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["invoice", "status"],
                        name="billing_pay_invoice_5e8f3c_idx",
                    ),
                    models.Index(
                        fields=["student_id", "payment_date"],
                        name="billing_pay_student_a2d6b7_idx",
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount__gt", 0)),
                        name="payment_amount_positive",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Refund",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("student_id", models.PositiveBigIntegerField(db_index=True)),
                (
                    "amount",
                    models.DecimalField(
                        decimal_places=2,
                        help_text="Refund amount (the full payment amount)",
                        max_digits=12,
                    ),
                ),
                ("reason", models.TextField(help_text="Why the refund was requested")),
                ("remarks", models.TextField(blank=True, default="")),
                (
                    "requested_by",
                    models.PositiveBigIntegerField(help_text="Who requested the refund"),
                ),
                (
                    "requested_at",
                    models.DateTimeField(
                        db_index=True,
                        default=django.utils.timezone.now,
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("approved", "Approved"),
                            ("rejected", "Rejected"),
                            ("completed", "Completed"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current state of the refund (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                ("approved_by", models.PositiveBigIntegerField(blank=True, null=True)),
                ("approved_at", models.DateTimeField(blank=True, null=True)),
                ("rejected_by", models.PositiveBigIntegerField(blank=True, null=True)),
                ("rejected_at", models.DateTimeField(blank=True, null=True)),
                ("rejection_reason", models.TextField(blank=True, null=True)),
                ("processed_by", models.PositiveBigIntegerField(blank=True, null=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "invoice",
                    models.ForeignKey(
                        help_text="Invoice of the refunded payment",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="refunds",
                        to="billing.invoice",
                    ),
                ),
                (
                    "payment",
                    models.ForeignKey(
                        help_text="Payment being refunded",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="refunds",
                        to="billing.payment",
                    ),
                ),
            ],
            options={
                "verbose_name": "Refund",
                "verbose_name_plural": "Refunds",
                "ordering": ["-requested_at"],
                "indexes": [
                    models.Index(
                        fields=["payment", "status"],
                        name="billing_ref_payment_9f2e41_idx",
                    ),
                    models.Index(
                        fields=["status", "requested_at"],
                        name="billing_ref_status_c3a871_idx",
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount__gt", 0)),
                        name="refund_amount_positive",
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(("status__in", ("pending", "approved"))),
                        fields=("payment",),
                        name="refund_one_active_per_payment",
                    ),
                ],
            },
        ),
    ]
