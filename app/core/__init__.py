"""
Core Application - Infrastructure & Base Classes

Generic, reusable base classes shared by the domain apps. Business logic
does not live here.

Models (import from core.models):
    - BaseModel: Abstract model with timestamps (created_at, updated_at)

Model Mixins (import from core.model_mixins):
    - UUIDPrimaryKeyMixin: UUID as primary key
    - SoftDeleteMixin: Soft delete support (deleted_at timestamp)

Managers (import from core.managers):
    - SoftDeleteManager: Filter deleted records by default
    - SoftDeleteQuerySet: QuerySet with soft delete operations
    - BaseQuerySet: QuerySet with timestamp helpers

Services (import from core.services):
    - BaseService: Base class for the service layer

Exceptions (import from core.exceptions):
    - BaseApplicationError: Base exception with error codes
    - ValidationError, NotFoundError, ConflictError, InvariantViolationError

Protocols (import from core.protocols):
    - CacheBackend: Generic cache interface
    - AuditSink: Audit trail destination

Note:
    Django models and model mixins are NOT imported here to avoid
    AppRegistryNotReady errors. Import them directly from their modules.
"""

from .exceptions import (
    BaseApplicationError,
    ConflictError,
    InvariantViolationError,
    NotFoundError,
    ValidationError,
)
from .protocols import AuditSink, CacheBackend
from .services import BaseService

__all__ = [
    "AuditSink",
    "BaseApplicationError",
    "BaseService",
    "CacheBackend",
    "ConflictError",
    "InvariantViolationError",
    "NotFoundError",
    "ValidationError",
]
