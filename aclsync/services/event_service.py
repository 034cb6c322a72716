"""
Event recording for managed ACLs.
"""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from aclsync.models.reconcile_event import ReconcileEvent

logger = logging.getLogger(__name__)


class EventType:
    """Constants for event types."""
    NORMAL = "Normal"
    WARNING = "Warning"


class EventReason:
    """Constants for event reasons."""
    CANNOT_CONNECT = "CannotConnectToProvider"
    CANNOT_OBSERVE = "CannotObserveExternalResource"
    CANNOT_CREATE = "CannotCreateExternalResource"
    CANNOT_UPDATE = "CannotUpdateExternalResource"
    CANNOT_DELETE = "CannotDeleteExternalResource"
    CREATED = "CreatedExternalResource"
    DELETED = "DeletedExternalResource"


def record_event(
    db: Session,
    resource_id: int,
    event_type: str,
    reason: str,
    message: Optional[str] = None,
) -> ReconcileEvent:
    """
    Record an event for a managed ACL.

    The event is added to the session; the caller commits it together with
    the resource's status.

    Args:
        db: Database session
        resource_id: ID of the managed ACL
        event_type: EventType.NORMAL or EventType.WARNING
        reason: One of the EventReason constants
        message: Human-readable detail, e.g. the error text

    Returns:
        The pending ReconcileEvent
    """
    event = ReconcileEvent(
        resource_id=resource_id,
        event_type=event_type,
        reason=reason,
        message=message,
    )
    db.add(event)

    log_level = logging.WARNING if event_type == EventType.WARNING else logging.INFO
    logger.log(log_level, f"Event {reason} for acl id={resource_id}: {message or ''}")

    return event
