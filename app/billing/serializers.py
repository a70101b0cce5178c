"""
Serializers for billing API.

Serializer Hierarchy:
    InvoiceSerializer: Invoice with amounts and derived status
    InvoiceCreateSerializer: Issue an invoice
    PaymentSerializer: Recorded payment
    PaymentRecordSerializer: Gateway confirmation / cash receipt input
    RefundSerializer: Refund with review and settlement fields
    RefundCreateSerializer / RefundApproveSerializer / RefundRejectSerializer
    RefundSettlementSerializer: Records written by a settlement
    RefundStatisticsSerializer: Aggregates over a date range
    PaymentStatisticsSerializer: Completed payments per method
    InstallmentPlanSerializer: Plan with schedule and state
    InstallmentPlanCreateSerializer / InstallmentPaymentSerializer
    InstallmentPaymentResultSerializer: Records written by an installment

Design Decisions:
    - Read and write serializers are separate
    - Write serializers only shape input; amount and state rules live in
      the services, which raise BaseApplicationError subclasses
    - Money is rendered as a decimal string
"""

from __future__ import annotations

from rest_framework import serializers

from core.serializer_mixins import TimestampMixin

from billing.models import InstallmentPlan, Invoice, Payment, Refund
from billing.state_machines import InstallmentFrequency, PaymentMethod, RefundStatus
from billing.types import MONEY_DIGITS, MONEY_PLACES


def money_field(**kwargs) -> serializers.DecimalField:
    return serializers.DecimalField(
        max_digits=MONEY_DIGITS,
        decimal_places=MONEY_PLACES,
        **kwargs,
    )


# =============================================================================
# Invoices
# =============================================================================


class InvoiceSerializer(TimestampMixin, serializers.ModelSerializer):
    class Meta:
        model = Invoice
        fields = [
            "id",
            "invoice_number",
            "student_id",
            "fee_structure_id",
            "academic_year_id",
            "subtotal",
            "discount",
            "discount_reason",
            "total_amount",
            "paid_amount",
            "balance",
            "status",
            "discount_approval_status",
            "discount_reviewed_by",
            "discount_reviewed_at",
            "due_date",
            "generated_at",
            "cancelled_at",
        ]
        read_only_fields = fields


class InvoiceCreateSerializer(serializers.Serializer):
    student_id = serializers.IntegerField(min_value=1)
    fee_structure_id = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    academic_year_id = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    subtotal = money_field()
    discount = money_field(required=False, default=0)
    discount_reason = serializers.CharField(
        max_length=255,
        required=False,
        allow_blank=True,
        default="",
    )
    due_date = serializers.DateField()


class StudentInvoiceQuerySerializer(serializers.Serializer):
    student_id = serializers.IntegerField(min_value=1)


# =============================================================================
# Payments
# =============================================================================


class PaymentSerializer(TimestampMixin, serializers.ModelSerializer):
    class Meta:
        model = Payment
        fields = [
            "id",
            "invoice",
            "student_id",
            "receipt_number",
            "amount",
            "method",
            "external_ref",
            "payment_date",
            "received_by",
            "remarks",
            "status",
            "completed_at",
            "failed_at",
            "refunded_at",
            "failure_reason",
            "installment_plan",
            "installment_number",
        ]
        read_only_fields = fields


class PaymentRecordSerializer(serializers.Serializer):
    """
    Payment confirmation signal.

    succeeded=false records a failed attempt without touching the invoice.
    """

    invoice_id = serializers.UUIDField()
    # Range checks happen in PaymentService so the error codes match.
    amount = money_field()
    method = serializers.ChoiceField(choices=PaymentMethod.choices)
    external_ref = serializers.CharField(
        max_length=128,
        required=False,
        allow_null=True,
        allow_blank=True,
    )
    succeeded = serializers.BooleanField(default=True)
    failure_reason = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    remarks = serializers.CharField(required=False, allow_blank=True, default="")
    payment_date = serializers.DateField(required=False, allow_null=True)


class PaymentStatisticsQuerySerializer(serializers.Serializer):
    start = serializers.DateField(required=False)
    end = serializers.DateField(required=False)

    def validate(self, attrs):
        start, end = attrs.get("start"), attrs.get("end")
        if start and end and start > end:
            raise serializers.ValidationError({"end": "end must not be before start"})
        return attrs


class MethodTotalsSerializer(serializers.Serializer):
    count = serializers.IntegerField()
    amount = money_field()


class PaymentStatisticsSerializer(serializers.Serializer):
    total_count = serializers.IntegerField()
    total_amount = money_field()
    by_method = serializers.DictField(child=MethodTotalsSerializer())


# =============================================================================
# Refunds
# =============================================================================


class RefundSerializer(TimestampMixin, serializers.ModelSerializer):
    class Meta:
        model = Refund
        fields = [
            "id",
            "payment",
            "invoice",
            "student_id",
            "amount",
            "reason",
            "remarks",
            "requested_by",
            "requested_at",
            "status",
            "approved_by",
            "approved_at",
            "rejected_by",
            "rejected_at",
            "rejection_reason",
            "processed_by",
            "completed_at",
        ]
        read_only_fields = fields


class RefundCreateSerializer(serializers.Serializer):
    payment_id = serializers.UUIDField()
    reason = serializers.CharField()
    remarks = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class RefundApproveSerializer(serializers.Serializer):
    remarks = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class RefundRejectSerializer(serializers.Serializer):
    rejection_reason = serializers.CharField()


class RefundListQuerySerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=RefundStatus.choices, required=False)
    student_id = serializers.IntegerField(min_value=1, required=False)
    invoice_id = serializers.UUIDField(required=False)


class RefundStatisticsQuerySerializer(serializers.Serializer):
    start = serializers.DateTimeField(required=False)
    end = serializers.DateTimeField(required=False)

    def validate(self, attrs):
        start, end = attrs.get("start"), attrs.get("end")
        if start and end and start > end:
            raise serializers.ValidationError({"end": "end must not be before start"})
        return attrs


class RefundSettlementSerializer(serializers.Serializer):
    refund = RefundSerializer()
    payment = PaymentSerializer()
    invoice = InvoiceSerializer()


class RefundStatisticsSerializer(serializers.Serializer):
    total = serializers.IntegerField()
    pending = serializers.IntegerField()
    approved = serializers.IntegerField()
    rejected = serializers.IntegerField()
    completed = serializers.IntegerField()
    total_amount = money_field()
    approved_amount = money_field()
    completed_amount = money_field()


# =============================================================================
# Installment Plans
# =============================================================================


class InstallmentPlanSerializer(TimestampMixin, serializers.ModelSerializer):
    class Meta:
        model = InstallmentPlan
        fields = [
            "id",
            "invoice",
            "student_id",
            "total_amount",
            "number_of_installments",
            "installment_amount",
            "frequency",
            "start_date",
            "created_by",
            "status",
            "completed_at",
            "cancelled_at",
            "cancelled_by",
        ]
        read_only_fields = fields


class InstallmentPlanCreateSerializer(serializers.Serializer):
    invoice_id = serializers.UUIDField()
    # PaymentService also refuses counts that would leave installments under 0.01.
    number_of_installments = serializers.IntegerField(min_value=1, max_value=120)
    frequency = serializers.ChoiceField(
        choices=InstallmentFrequency.choices,
        default=InstallmentFrequency.MONTHLY,
    )
    start_date = serializers.DateField()


class InstallmentPlanQuerySerializer(serializers.Serializer):
    invoice_id = serializers.UUIDField()


class InstallmentPaymentSerializer(serializers.Serializer):
    installment_number = serializers.IntegerField(min_value=1)
    method = serializers.ChoiceField(choices=PaymentMethod.choices)
    external_ref = serializers.CharField(
        max_length=128,
        required=False,
        allow_null=True,
        allow_blank=True,
    )
    remarks = serializers.CharField(required=False, allow_blank=True, default="")
    payment_date = serializers.DateField(required=False, allow_null=True)


class InstallmentPaymentResultSerializer(serializers.Serializer):
    payment = PaymentSerializer()
    plan = InstallmentPlanSerializer()
    invoice = InvoiceSerializer()
