"""
Protocol definitions for generic infrastructure services.

Protocols define contracts that services must fulfill, enabling:
- Duck typing with static type checking
- Dependency inversion (depend on abstractions, not concretions)
- Easy substitution in tests

Available Protocols:
    CacheBackend: Cache operations interface
    AuditSink: Destination for audit trail events

Usage:
    from core.protocols import AuditSink

    class ListSink:
        def __init__(self):
            self.events = []

        def emit(self, event):
            self.events.append(event)

    sink: AuditSink = ListSink()  # valid without explicit inheritance
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from typing import Any


@runtime_checkable
class CacheBackend(Protocol):
    """
    Protocol for cache backends.

    Compatible with Django's cache interface. Used by the health check.
    """

    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any, timeout: int | None = None) -> None: ...

    def delete(self, key: str) -> bool: ...


@runtime_checkable
class AuditSink(Protocol):
    """
    Protocol for audit trail destinations.

    A sink receives one event object per change to an audited record.
    Sinks may raise; callers treat delivery as best effort and never let
    a sink failure affect the change being audited.
    """

    def emit(self, event: Any) -> None:
        """
        Deliver a single audit event.

        Args:
            event: The audit event (see billing.audit.AuditEvent)
        """
        ...
