"""
Service for moving managed ACLs between the database and the reconciliation operations.
"""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from aclsync.models.access_control_list import AccessControlListResource
from aclsync.utils.acl.acl_models import (
    AccessControlListParameters,
    Condition,
    ConditionReason,
    ConditionType,
    ManagedAccessControlList,
)

logger = logging.getLogger(__name__)


def parameters_from_resource(resource: AccessControlListResource) -> AccessControlListParameters:
    """Build the declared specification stored on a resource row."""
    return AccessControlListParameters(
        principal=resource.principal,
        host=resource.host,
        operation=resource.operation,
        permission_type=resource.permission_type,
        resource_type=resource.resource_type,
        resource_name=resource.resource_name,
        pattern_type=resource.pattern_type,
    )


def apply_parameters(resource: AccessControlListResource, params: AccessControlListParameters) -> None:
    """Store a declared specification on a resource row."""
    resource.principal = params.principal
    resource.host = params.host
    resource.operation = params.operation.value
    resource.permission_type = params.permission_type.value
    resource.resource_type = params.resource_type.value
    resource.resource_name = params.resource_name
    resource.pattern_type = params.pattern_type.value if params.pattern_type else None


def _load_condition(resource: AccessControlListResource, prefix: str, condition_type: ConditionType) -> Optional[Condition]:
    status = getattr(resource, f"{prefix}_status")
    reason = getattr(resource, f"{prefix}_reason")
    if status is None or reason is None:
        return None
    condition = Condition(
        type=condition_type,
        status=status,
        reason=ConditionReason(reason),
        message=getattr(resource, f"{prefix}_message"),
    )
    transition_at = getattr(resource, f"{prefix}_transition_at")
    if transition_at is not None:
        condition.last_transition_time = transition_at
    return condition


def to_managed(resource: AccessControlListResource) -> ManagedAccessControlList:
    """Build the managed object the reconciliation operations work on."""
    conditions = [
        c for c in (
            _load_condition(resource, "ready", ConditionType.READY),
            _load_condition(resource, "synced", ConditionType.SYNCED),
        )
        if c is not None
    ]
    return ManagedAccessControlList(
        name=resource.name,
        for_provider=parameters_from_resource(resource),
        external_name=resource.external_name,
        conditions=conditions,
    )


def apply_managed(resource: AccessControlListResource, mg: ManagedAccessControlList) -> None:
    """
    Copy the external name and conditions back onto the resource row.

    The external name is written only while the row has none.
    """
    if mg.external_name and not resource.external_name:
        resource.external_name = mg.external_name

    for condition_type, prefix in ((ConditionType.READY, "ready"), (ConditionType.SYNCED, "synced")):
        condition = mg.get_condition(condition_type)
        if condition is None:
            continue
        changed = (
            getattr(resource, f"{prefix}_status") != condition.status
            or getattr(resource, f"{prefix}_reason") != condition.reason.value
        )
        setattr(resource, f"{prefix}_status", condition.status)
        setattr(resource, f"{prefix}_reason", condition.reason.value)
        setattr(resource, f"{prefix}_message", condition.message)
        if changed or getattr(resource, f"{prefix}_transition_at") is None:
            setattr(resource, f"{prefix}_transition_at", condition.last_transition_time)


def get_resource(db: Session, resource_id: int) -> Optional[AccessControlListResource]:
    return db.query(AccessControlListResource).filter(AccessControlListResource.id == resource_id).first()
