"""
Add installment plans.

Models added:
    - InstallmentPlan: invoice balance split into equal installments

Fields added to Payment:
    - installment_plan: plan the payment belongs to (null for plain payments)
    - installment_number: 1-based installment covered by the payment
"""

import uuid

import django.db.models.deletion
import django_fsm
from django.db import migrations, models


class Migration(migrations.Migration):
    dependencies = [
        ("billing", "0002_add_overdue_sweep_schedule"),
    ]

    operations = [
        migrations.CreateModel(
            name="InstallmentPlan",
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
                        help_text="Student of the invoice",
                    ),
                ),
                (
                    "total_amount",
                    models.DecimalField(
                        decimal_places=2,
                        help_text="Invoice balance covered by the plan",
                        max_digits=12,
                    ),
                ),
                (
                    "number_of_installments",
                    models.PositiveSmallIntegerField(
                        help_text="Number of installments",
                    ),
                ),
                (
                    "installment_amount",
                    models.DecimalField(
                        decimal_places=2,
                        help_text="Amount per installment (the last one absorbs rounding)",
                        max_digits=12,
                    ),
                ),
                (
                    "frequency",
                    models.CharField(
                        choices=[
                            ("monthly", "Monthly"),
                            ("quarterly", "Quarterly"),
                            ("custom", "Custom"),
                        ],
                        default="monthly",
                        max_length=16,
                    ),
                ),
                ("start_date", models.DateField()),
                ("created_by", models.PositiveBigIntegerField(blank=True, null=True)),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("active", "Active"),
                            ("completed", "Completed"),
                            ("cancelled", "Cancelled"),
                        ],
                        db_index=True,
                        default="active",
                        help_text="Current state of the plan (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("cancelled_by", models.PositiveBigIntegerField(blank=True, null=True)),
                (
                    "invoice",
                    models.ForeignKey(
                        help_text="Invoice this plan pays off",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="installment_plans",
                        to="billing.invoice",
                    ),
                ),
            ],
            options={
                "verbose_name": "Installment Plan",
                "verbose_name_plural": "Installment Plans",
                "ordering": ["-created_at"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("total_amount__gt", 0)),
                        name="installment_plan_total_positive",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("number_of_installments__gte", 1)),
                        name="installment_plan_count_positive",
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(("status", "active")),
                        fields=("invoice",),
                        name="installment_plan_one_active_per_invoice",
                    ),
                ],
            },
        ),
        migrations.AddField(
            model_name="payment",
            name="installment_plan",
            field=models.ForeignKey(
                blank=True,
                help_text="Installment plan this payment belongs to, if any",
                null=True,
                on_delete=django.db.models.deletion.PROTECT,
                related_name="payments",
                to="billing.installmentplan",
            ),
        ),
        migrations.AddField(
            model_name="payment",
            name="installment_number",
            field=models.PositiveSmallIntegerField(
                blank=True,
                help_text="1-based installment covered by this payment",
                null=True,
            ),
        ),
        migrations.AddConstraint(
            model_name="payment",
            constraint=models.UniqueConstraint(
                condition=models.Q(("status", "completed")),
                fields=("installment_plan", "installment_number"),
                name="payment_one_completed_per_installment",
            ),
        ),
    ]
