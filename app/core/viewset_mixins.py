"""
ViewSet mixins for common DRF functionality.

This module provides generic, non-domain-specific mixins for viewsets:
- ApplicationErrorMixin: Render service-layer errors as JSON responses
- ActorMixin: Resolve the id of the user making the request

Usage:
    from core.viewset_mixins import ActorMixin, ApplicationErrorMixin

    class RefundViewSet(ApplicationErrorMixin, ActorMixin, viewsets.ViewSet):
        def approve(self, request, pk=None):
            refund = RefundService().approve_refund(pk, approved_by=self.actor_id)
            ...

Note:
    These are infrastructure patterns, not domain-specific utilities.
    For serializer mixins, see core.serializer_mixins.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from rest_framework.response import Response

from core.exceptions import BaseApplicationError

if TYPE_CHECKING:
    from typing import Any

logger = logging.getLogger(__name__)


class ApplicationErrorMixin:
    """
    Translate BaseApplicationError into a response.

    The body is the error's to_dict() and the status is its status_code,
    so services can raise without knowing about HTTP. Anything else falls
    through to DRF's normal exception handling.
    """

    def handle_exception(self, exc: Exception) -> Response:
        if isinstance(exc, BaseApplicationError):
            logger.info(
                "Request refused by service",
                extra={
                    "error_code": exc.error_code,
                    "status_code": exc.status_code,
                    "view": type(self).__name__,
                },
            )
            return Response(exc.to_dict(), status=exc.status_code)
        return super().handle_exception(exc)  # type: ignore[misc]


class ActorMixin:
    """Expose the authenticated user's primary key as ``actor_id``."""

    request: Any

    @property
    def actor_id(self) -> int | None:
        user = getattr(self.request, "user", None)
        if user is None or not user.is_authenticated:
            return None
        return user.pk
