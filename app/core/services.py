"""
Base service layer patterns for business logic encapsulation.

Services encapsulate business logic separate from views and models.
Views handle HTTP concerns, models handle data, services handle logic.

Failures are raised as core.exceptions.BaseApplicationError subclasses and
translated to HTTP responses by the views.

Usage:
    from core.services import BaseService

    class InvoiceService(BaseService):
        def cancel_invoice(self, invoice_id):
            self.get_logger().info(
                "Cancelling invoice",
                extra={"invoice_id": str(invoice_id)},
            )
            ...

Related:
    - core.exceptions: Error hierarchy raised from services
"""

from __future__ import annotations

import logging

from core.exceptions import ValidationError


class BaseService:
    """
    Base class for service layer classes.

    Provides common utilities for services:
    - Logging setup per service
    - Required-argument validation

    Design Notes:
        - Collaborators (stores, sinks) are passed to the constructor
        - Services keep no per-call state on the instance
        - Raise BaseApplicationError subclasses for expected failures
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """
        Get logger for this service.

        Returns a logger named after the service class for
        easy filtering in logs.
        """
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    def validate_required(cls, **kwargs) -> None:
        """
        Validate that required fields are provided.

        Raises:
            ValidationError: If any field is None or a blank string.
                details maps each missing field to its messages.

        Example:
            cls.validate_required(reason=reason, requested_by=requested_by)
        """
        errors = {}
        for field_name, value in kwargs.items():
            if value is None or (isinstance(value, str) and not value.strip()):
                errors[field_name] = ["This field is required."]

        if errors:
            raise ValidationError(
                "Required fields missing",
                error_code="VALIDATION_ERROR",
                details=errors,
            )
