"""
Billing app configuration.

This app provides the student billing ledger:
- Invoices with a running balance
- Payments applied against invoices
- The refund request / approval / settlement workflow
"""

from django.apps import AppConfig


class BillingConfig(AppConfig):
    """Configuration for the billing application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "billing"
    verbose_name = "Billing"
