"""
ORM-level guards for append-only records.

Communications and audit log entries are written once. Any UPDATE or DELETE
issued through a session is rejected before SQL reaches the database.
"""
from typing import Any

import structlog
from sqlalchemy import event

from database.models import AuditLog, Communication

logger = structlog.get_logger(__name__)


class ImmutabilityViolationError(Exception):
    """Raised when code attempts to modify or delete an immutable record."""

    def __init__(self, entity_type: str, entity_id: str, operation: str):
        super().__init__(f"{entity_type} {entity_id} is immutable; {operation} rejected")
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.operation = operation


def _reject(operation: str):
    def listener(mapper: Any, connection: Any, target: Any) -> None:
        entity_type = type(target).__name__
        logger.error(
            "immutability_violation_blocked",
            entity_type=entity_type,
            entity_id=str(target.id),
            operation=operation,
        )
        raise ImmutabilityViolationError(entity_type, str(target.id), operation)

    return listener


_registered = False


def register_immutability_listeners() -> None:
    """Install the update/delete guards. Safe to call more than once."""
    global _registered
    if _registered:
        return

    for model in (Communication, AuditLog):
        event.listen(model, "before_update", _reject("UPDATE"))
        event.listen(model, "before_delete", _reject("DELETE"))

    _registered = True
