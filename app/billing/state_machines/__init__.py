"""
State machine definitions for billing models.

Usage:
    from billing.state_machines import PaymentStatus, RefundStatus

    if refund.status == RefundStatus.PENDING:
        refund.approve(approved_by=actor_id)
        refund.save()
"""

from billing.state_machines.states import (
    ACTIVE_REFUND_STATUSES,
    DiscountApprovalStatus,
    InstallmentFrequency,
    InstallmentPlanStatus,
    InvoiceStatus,
    PaymentMethod,
    PaymentStatus,
    RefundStatus,
)

__all__ = [
    "ACTIVE_REFUND_STATUSES",
    "DiscountApprovalStatus",
    "InstallmentFrequency",
    "InstallmentPlanStatus",
    "InvoiceStatus",
    "PaymentMethod",
    "PaymentStatus",
    "RefundStatus",
]
