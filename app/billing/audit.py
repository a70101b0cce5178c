"""
Audit trail for ledger records.

Every create, update and delete of an Invoice, Payment or Refund produces an
AuditEvent. Events are handed to the configured sink only after the unit of
work commits, so rolled-back changes never show up in the trail.

Delivery is fire-and-forget: a failing sink is logged and otherwise ignored.
It can never fail or roll back the ledger change it describes.

Configuration:
    BILLING_AUDIT_SINK: dotted path to a class implementing
        core.protocols.AuditSink (default: billing.audit.LoggingAuditSink)

Usage:
    audit = AuditTrail()

    with store.unit_of_work() as uow:
        before = refund.snapshot()
        refund.approve(approved_by=actor_id)
        store.save_refund(uow, refund)
        audit.record(uow, refund, AuditAction.UPDATED, old_value=before, actor_id=actor_id)
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from functools import partial
from typing import TYPE_CHECKING

from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder
from django.db import models
from django.utils import timezone
from django.utils.module_loading import import_string

if TYPE_CHECKING:
    from typing import Any

    from core.models import BaseModel
    from core.protocols import AuditSink

    from billing.store import UnitOfWork

logger = logging.getLogger(__name__)

DEFAULT_AUDIT_SINK = "billing.audit.LoggingAuditSink"


class AuditAction(models.TextChoices):
    CREATED = "created", "Created"
    UPDATED = "updated", "Updated"
    DELETED = "deleted", "Deleted"


@dataclass(frozen=True)
class AuditEvent:
    """
    One change to one ledger record.

    old_value is None for creations, new_value is None for deletions.
    Values are field snapshots taken when the change was made.
    """

    entity_type: str
    entity_id: str
    action: str
    old_value: dict[str, Any] | None
    new_value: dict[str, Any] | None
    actor_id: int | None = None
    occurred_at: datetime = field(default_factory=timezone.now)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-safe representation (Decimal/UUID/dates as strings)."""
        return json.loads(json.dumps(asdict(self), cls=DjangoJSONEncoder))


class LoggingAuditSink:
    """Writes audit events to the ``billing.audit`` logger."""

    logger = logging.getLogger("billing.audit")

    def emit(self, event: AuditEvent) -> None:
        self.logger.info(
            "%s %s %s",
            event.entity_type,
            event.entity_id,
            event.action,
            extra={"audit_event": event.to_dict()},
        )


def get_audit_sink() -> AuditSink:
    """Instantiate the sink named by BILLING_AUDIT_SINK."""
    path = getattr(settings, "BILLING_AUDIT_SINK", DEFAULT_AUDIT_SINK)
    return import_string(path)()


class AuditTrail:
    """Builds audit events and schedules their delivery after commit."""

    def __init__(self, sink: AuditSink | None = None):
        self.sink = sink if sink is not None else get_audit_sink()

    def record(
        self,
        uow: UnitOfWork,
        instance: BaseModel,
        action: str,
        old_value: dict[str, Any] | None = None,
        actor_id: int | None = None,
    ) -> AuditEvent:
        """
        Capture a change to ``instance`` and emit it once ``uow`` commits.

        Pass ``old_value`` (from ``instance.snapshot()`` taken before the
        change) for updates and deletions.
        """
        event = AuditEvent(
            entity_type=type(instance).__name__,
            entity_id=str(instance.pk),
            action=action,
            old_value=old_value,
            new_value=None if action == AuditAction.DELETED else instance.snapshot(),
            actor_id=actor_id,
        )
        uow.on_commit(partial(self._deliver, event))
        return event

    def _deliver(self, event: AuditEvent) -> None:
        try:
            self.sink.emit(event)
        except Exception:
            logger.exception(
                "Audit sink failed to record event",
                extra={
                    "entity_type": event.entity_type,
                    "entity_id": event.entity_id,
                    "action": event.action,
                },
            )
