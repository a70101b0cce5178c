"""
URL configuration for billing API.

URL Structure:
    Invoices:
        /invoices/                          GET (?student_id=), POST
        /invoices/{id}/                     GET
        /invoices/{id}/cancel/              POST
        /invoices/{id}/approve-discount/    POST
        /invoices/{id}/reject-discount/     POST

    Payments:
        /payments/                          POST
        /payments/statistics/               GET (?start=&end=)
        /payments/{id}/                     GET

    Refunds:
        /refunds/                           GET (?status=&student_id=&invoice_id=), POST
        /refunds/{id}/                      GET, DELETE
        /refunds/{id}/approve/              POST
        /refunds/{id}/reject/               POST
        /refunds/{id}/process/              POST
        /refunds/statistics/                GET (?start=&end=)

    Installment plans:
        /installment-plans/                 POST
        /installment-plans/by-invoice/      GET (?invoice_id=)
        /installment-plans/{id}/            GET
        /installment-plans/{id}/pay/        POST
        /installment-plans/{id}/cancel/     POST

All URLs are prefixed with /api/v1/billing/ in the main URL configuration.
"""

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from billing.views import (
    InstallmentPlanViewSet,
    InvoiceViewSet,
    PaymentViewSet,
    RefundViewSet,
)

router = DefaultRouter()
router.register(r"invoices", InvoiceViewSet, basename="invoice")
router.register(r"payments", PaymentViewSet, basename="payment")
router.register(r"refunds", RefundViewSet, basename="refund")
router.register(r"installment-plans", InstallmentPlanViewSet, basename="installment-plan")

app_name = "billing"

urlpatterns = [
    path("", include(router.urls)),
]
