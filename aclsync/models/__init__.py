"""Database models."""
from aclsync.models.access_control_list import AccessControlListResource
from aclsync.models.reconcile_event import ReconcileEvent

__all__ = [
    "AccessControlListResource",
    "ReconcileEvent",
]
