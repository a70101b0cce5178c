"""
ViewSets for billing API.

This module provides REST API endpoints over the billing services:
- InvoiceViewSet: Issue, read, cancel invoices and review discounts
- PaymentViewSet: Record payment confirmations and read payments
- RefundViewSet: The refund request / review / settlement workflow
- InstallmentPlanViewSet: Split an invoice balance and pay it in parts

URL Structure:
    /api/v1/billing/invoices/                          GET (?student_id=), POST
    /api/v1/billing/invoices/{id}/                     GET
    /api/v1/billing/invoices/{id}/cancel/              POST
    /api/v1/billing/invoices/{id}/approve-discount/    POST
    /api/v1/billing/invoices/{id}/reject-discount/     POST
    /api/v1/billing/payments/                          POST
    /api/v1/billing/payments/statistics/               GET
    /api/v1/billing/payments/{id}/                     GET
    /api/v1/billing/refunds/                           GET, POST
    /api/v1/billing/refunds/{id}/                      GET, DELETE
    /api/v1/billing/refunds/{id}/approve/              POST
    /api/v1/billing/refunds/{id}/reject/               POST
    /api/v1/billing/refunds/{id}/process/              POST
    /api/v1/billing/refunds/statistics/                GET
    /api/v1/billing/installment-plans/                 POST
    /api/v1/billing/installment-plans/by-invoice/      GET (?invoice_id=)
    /api/v1/billing/installment-plans/{id}/            GET
    /api/v1/billing/installment-plans/{id}/pay/        POST
    /api/v1/billing/installment-plans/{id}/cancel/     POST

Design Decisions:
    - Views only parse input and render output; every rule lives in the
      services
    - Service errors become JSON bodies via ApplicationErrorMixin
      (404 not found, 409 state conflict, 400 validation)
    - The acting user's id is recorded as actor on every mutation
"""

from __future__ import annotations

from uuid import UUID

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import (
    OpenApiParameter,
    OpenApiResponse,
    extend_schema,
    extend_schema_view,
)
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from core.viewset_mixins import ActorMixin, ApplicationErrorMixin

from billing.exceptions import InstallmentPlanNotFound
from billing.serializers import (
    InstallmentPaymentResultSerializer,
    InstallmentPaymentSerializer,
    InstallmentPlanCreateSerializer,
    InstallmentPlanQuerySerializer,
    InstallmentPlanSerializer,
    InvoiceCreateSerializer,
    InvoiceSerializer,
    PaymentRecordSerializer,
    PaymentSerializer,
    PaymentStatisticsQuerySerializer,
    PaymentStatisticsSerializer,
    RefundApproveSerializer,
    RefundCreateSerializer,
    RefundListQuerySerializer,
    RefundRejectSerializer,
    RefundSerializer,
    RefundSettlementSerializer,
    RefundStatisticsQuerySerializer,
    RefundStatisticsSerializer,
    StudentInvoiceQuerySerializer,
)
from billing.services import InvoiceService, PaymentService, RefundService
from billing.state_machines import RefundStatus

UUID_LOOKUP = r"[0-9a-fA-F-]{36}"


class BillingViewSet(ApplicationErrorMixin, ActorMixin, viewsets.ViewSet):
    """Shared configuration for billing viewsets."""

    permission_classes = [IsAuthenticated]
    lookup_value_regex = UUID_LOOKUP


# =============================================================================
# Invoices
# =============================================================================


@extend_schema_view(
    list=extend_schema(
        operation_id="list_student_invoices",
        summary="List a student's invoices",
        parameters=[
            OpenApiParameter("student_id", OpenApiTypes.INT, required=True),
        ],
        responses={200: InvoiceSerializer(many=True)},
        tags=["Billing - Invoices"],
    ),
    create=extend_schema(
        operation_id="create_invoice",
        summary="Issue invoice",
        request=InvoiceCreateSerializer,
        responses={201: InvoiceSerializer},
        tags=["Billing - Invoices"],
    ),
    retrieve=extend_schema(
        operation_id="get_invoice",
        summary="Get invoice",
        responses={200: InvoiceSerializer, 404: OpenApiResponse(description="Not found")},
        tags=["Billing - Invoices"],
    ),
)
class InvoiceViewSet(BillingViewSet):
    """
    ViewSet for invoices.

    Balance and status always reflect the latest committed payment or
    refund. Invoices are never deleted through the API.
    """

    def list(self, request):
        query = StudentInvoiceQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        invoices = InvoiceService().get_student_invoices(query.validated_data["student_id"])
        return Response(InvoiceSerializer(invoices, many=True).data)

    def create(self, request):
        serializer = InvoiceCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        invoice = InvoiceService().create_invoice(
            **serializer.validated_data,
            created_by=self.actor_id,
        )
        return Response(InvoiceSerializer(invoice).data, status=status.HTTP_201_CREATED)

    def retrieve(self, request, pk=None):
        invoice = InvoiceService().get_invoice_by_id(UUID(pk))
        return Response(InvoiceSerializer(invoice).data)

    @extend_schema(
        operation_id="cancel_invoice",
        summary="Cancel invoice",
        request=None,
        responses={200: InvoiceSerializer},
        tags=["Billing - Invoices"],
    )
    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):
        invoice = InvoiceService().cancel_invoice(UUID(pk), cancelled_by=self.actor_id)
        return Response(InvoiceSerializer(invoice).data)

    @extend_schema(
        operation_id="approve_invoice_discount",
        summary="Approve invoice discount",
        request=None,
        responses={200: InvoiceSerializer},
        tags=["Billing - Invoices"],
    )
    @action(detail=True, methods=["post"], url_path="approve-discount")
    def approve_discount(self, request, pk=None):
        invoice = InvoiceService().approve_discount(UUID(pk), approved_by=self.actor_id)
        return Response(InvoiceSerializer(invoice).data)

    @extend_schema(
        operation_id="reject_invoice_discount",
        summary="Reject invoice discount",
        request=None,
        responses={200: InvoiceSerializer},
        tags=["Billing - Invoices"],
    )
    @action(detail=True, methods=["post"], url_path="reject-discount")
    def reject_discount(self, request, pk=None):
        invoice = InvoiceService().reject_discount(UUID(pk), reviewed_by=self.actor_id)
        return Response(InvoiceSerializer(invoice).data)


# =============================================================================
# Payments
# =============================================================================


@extend_schema_view(
    create=extend_schema(
        operation_id="record_payment",
        summary="Record payment",
        description=(
            "Record a gateway confirmation or cash receipt. "
            "succeeded=false stores a failed attempt and leaves the invoice untouched."
        ),
        request=PaymentRecordSerializer,
        responses={201: PaymentSerializer},
        tags=["Billing - Payments"],
    ),
    retrieve=extend_schema(
        operation_id="get_payment",
        summary="Get payment",
        responses={200: PaymentSerializer},
        tags=["Billing - Payments"],
    ),
)
class PaymentViewSet(BillingViewSet):
    """ViewSet for payments. Payments are immutable once recorded."""

    def create(self, request):
        serializer = PaymentRecordSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        payment = PaymentService().record_payment(
            data["invoice_id"],
            data["amount"],
            data["method"],
            data.get("external_ref"),
            received_by=self.actor_id,
            remarks=data.get("remarks", ""),
            succeeded=data["succeeded"],
            failure_reason=data.get("failure_reason"),
            payment_date=data.get("payment_date"),
        )
        return Response(PaymentSerializer(payment).data, status=status.HTTP_201_CREATED)

    def retrieve(self, request, pk=None):
        payment = PaymentService().get_payment_by_id(UUID(pk))
        return Response(PaymentSerializer(payment).data)

    @extend_schema(
        operation_id="get_payment_statistics",
        summary="Payment statistics",
        description="Completed payments dated within the range, counted and summed per method.",
        parameters=[PaymentStatisticsQuerySerializer],
        responses={200: PaymentStatisticsSerializer},
        tags=["Billing - Payments"],
    )
    @action(detail=False, methods=["get"])
    def statistics(self, request):
        query = PaymentStatisticsQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        stats = PaymentService().get_payment_statistics(
            start=query.validated_data.get("start"),
            end=query.validated_data.get("end"),
        )
        return Response(PaymentStatisticsSerializer(stats).data)


# =============================================================================
# Refunds
# =============================================================================


@extend_schema_view(
    list=extend_schema(
        operation_id="list_refunds",
        summary="List refunds",
        description="Filter by status, student_id or invoice_id. Defaults to pending refunds.",
        parameters=[RefundListQuerySerializer],
        responses={200: RefundSerializer(many=True)},
        tags=["Billing - Refunds"],
    ),
    create=extend_schema(
        operation_id="create_refund_request",
        summary="Request refund",
        request=RefundCreateSerializer,
        responses={201: RefundSerializer},
        tags=["Billing - Refunds"],
    ),
    retrieve=extend_schema(
        operation_id="get_refund",
        summary="Get refund",
        responses={200: RefundSerializer},
        tags=["Billing - Refunds"],
    ),
    destroy=extend_schema(
        operation_id="cancel_refund_request",
        summary="Cancel pending refund request",
        responses={204: None},
        tags=["Billing - Refunds"],
    ),
)
class RefundViewSet(BillingViewSet):
    """
    ViewSet for the refund workflow.

    create:
        Open a refund request for a completed payment.

    approve / reject:
        Review a pending request. Approval does not move money.

    process:
        Settle an approved refund. Payment, invoice and refund change
        together or not at all.

    destroy:
        Cancel a pending request.
    """

    def list(self, request):
        query = RefundListQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        filters = dict(query.validated_data)
        if not filters:
            filters["status"] = RefundStatus.PENDING
        refunds = RefundService().get_refunds(**filters)
        return Response(RefundSerializer(refunds, many=True).data)

    def create(self, request):
        serializer = RefundCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        refund = RefundService().create_refund_request(
            data["payment_id"],
            reason=data["reason"],
            requested_by=self.actor_id,
            remarks=data.get("remarks"),
        )
        return Response(RefundSerializer(refund).data, status=status.HTTP_201_CREATED)

    def retrieve(self, request, pk=None):
        refund = RefundService().get_refund_by_id(UUID(pk))
        return Response(RefundSerializer(refund).data)

    def destroy(self, request, pk=None):
        RefundService().cancel_refund_request(UUID(pk), cancelled_by=self.actor_id)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @extend_schema(
        operation_id="approve_refund",
        summary="Approve refund",
        request=RefundApproveSerializer,
        responses={200: RefundSerializer},
        tags=["Billing - Refunds"],
    )
    @action(detail=True, methods=["post"])
    def approve(self, request, pk=None):
        serializer = RefundApproveSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        refund = RefundService().approve_refund(
            UUID(pk),
            approved_by=self.actor_id,
            remarks=serializer.validated_data.get("remarks"),
        )
        return Response(RefundSerializer(refund).data)

    @extend_schema(
        operation_id="reject_refund",
        summary="Reject refund",
        request=RefundRejectSerializer,
        responses={200: RefundSerializer},
        tags=["Billing - Refunds"],
    )
    @action(detail=True, methods=["post"])
    def reject(self, request, pk=None):
        serializer = RefundRejectSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        refund = RefundService().reject_refund(
            UUID(pk),
            rejected_by=self.actor_id,
            rejection_reason=serializer.validated_data["rejection_reason"],
        )
        return Response(RefundSerializer(refund).data)

    @extend_schema(
        operation_id="process_refund",
        summary="Settle approved refund",
        request=None,
        responses={200: RefundSettlementSerializer},
        tags=["Billing - Refunds"],
    )
    @action(detail=True, methods=["post"])
    def process(self, request, pk=None):
        settlement = RefundService().process_refund(UUID(pk), processed_by=self.actor_id)
        return Response(RefundSettlementSerializer(settlement).data)

    @extend_schema(
        operation_id="get_refund_statistics",
        summary="Refund statistics",
        parameters=[RefundStatisticsQuerySerializer],
        responses={200: RefundStatisticsSerializer},
        tags=["Billing - Refunds"],
    )
    @action(detail=False, methods=["get"])
    def statistics(self, request):
        query = RefundStatisticsQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        stats = RefundService().get_refund_statistics(
            start=query.validated_data.get("start"),
            end=query.validated_data.get("end"),
        )
        return Response(RefundStatisticsSerializer(stats).data)


# =============================================================================
# Installment Plans
# =============================================================================


@extend_schema_view(
    create=extend_schema(
        operation_id="create_installment_plan",
        summary="Create installment plan",
        description="Split the invoice's current balance into equal installments.",
        request=InstallmentPlanCreateSerializer,
        responses={201: InstallmentPlanSerializer},
        tags=["Billing - Installment Plans"],
    ),
    retrieve=extend_schema(
        operation_id="get_installment_plan",
        summary="Get installment plan",
        responses={200: InstallmentPlanSerializer},
        tags=["Billing - Installment Plans"],
    ),
)
class InstallmentPlanViewSet(BillingViewSet):
    """
    ViewSet for installment plans.

    pay:
        Record the payment for one installment. Paying the last unpaid
        installment completes the plan.

    cancel:
        Stop an active plan. Paid installments stay on the invoice.
    """

    def create(self, request):
        serializer = InstallmentPlanCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        plan = PaymentService().create_installment_plan(
            data["invoice_id"],
            data["number_of_installments"],
            data["start_date"],
            frequency=data["frequency"],
            created_by=self.actor_id,
        )
        return Response(InstallmentPlanSerializer(plan).data, status=status.HTTP_201_CREATED)

    def retrieve(self, request, pk=None):
        plan = PaymentService().get_installment_plan_by_id(UUID(pk))
        return Response(InstallmentPlanSerializer(plan).data)

    @extend_schema(
        operation_id="get_invoice_installment_plan",
        summary="Latest installment plan of an invoice",
        parameters=[InstallmentPlanQuerySerializer],
        responses={200: InstallmentPlanSerializer},
        tags=["Billing - Installment Plans"],
    )
    @action(detail=False, methods=["get"], url_path="by-invoice")
    def by_invoice(self, request):
        query = InstallmentPlanQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        invoice_id = query.validated_data["invoice_id"]
        plan = PaymentService().get_installment_plan_by_invoice_id(invoice_id)
        if plan is None:
            raise InstallmentPlanNotFound(
                f"Invoice {invoice_id} has no installment plan",
                details={"invoice_id": str(invoice_id)},
            )
        return Response(InstallmentPlanSerializer(plan).data)

    @extend_schema(
        operation_id="pay_installment",
        summary="Pay installment",
        request=InstallmentPaymentSerializer,
        responses={201: InstallmentPaymentResultSerializer},
        tags=["Billing - Installment Plans"],
    )
    @action(detail=True, methods=["post"])
    def pay(self, request, pk=None):
        serializer = InstallmentPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        result = PaymentService().process_installment_payment(
            UUID(pk),
            data["installment_number"],
            data["method"],
            data.get("external_ref"),
            received_by=self.actor_id,
            remarks=data.get("remarks", ""),
            payment_date=data.get("payment_date"),
        )
        return Response(
            InstallmentPaymentResultSerializer(result).data,
            status=status.HTTP_201_CREATED,
        )

    @extend_schema(
        operation_id="cancel_installment_plan",
        summary="Cancel installment plan",
        request=None,
        responses={200: InstallmentPlanSerializer},
        tags=["Billing - Installment Plans"],
    )
    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):
        plan = PaymentService().cancel_installment_plan(UUID(pk), cancelled_by=self.actor_id)
        return Response(InstallmentPlanSerializer(plan).data)
