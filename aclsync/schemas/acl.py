"""Schemas for managed ACL endpoints."""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from aclsync.utils.acl.acl_models import AccessControlListParameters


class AccessControlListCreateRequest(BaseModel):
    """Request schema for declaring a managed ACL."""
    name: str = Field(..., min_length=1, max_length=255, description="Unique name of the managed ACL")
    for_provider: AccessControlListParameters


class AccessControlListUpdateRequest(BaseModel):
    """Request schema for replacing the declared specification."""
    for_provider: AccessControlListParameters


class ConditionResponse(BaseModel):
    """Response schema for one status condition."""
    type: str
    status: bool
    reason: str
    message: Optional[str] = None
    last_transition_time: Optional[datetime] = None


class AccessControlListResponse(BaseModel):
    """Response schema for a managed ACL."""
    id: int
    name: str
    for_provider: AccessControlListParameters
    external_name: Optional[str] = None
    deletion_requested: bool
    conditions: List[ConditionResponse]
    created_at: datetime
    updated_at: datetime
    last_reconciled_at: Optional[datetime] = None


class AccessControlListListResponse(BaseModel):
    """Response schema for managed ACL list."""
    items: List[AccessControlListResponse]
    total: int


class ReconcileEventResponse(BaseModel):
    """Response schema for a reconcile event."""
    id: int
    resource_id: int
    timestamp: datetime
    event_type: str
    reason: str
    message: Optional[str] = None

    model_config = {"from_attributes": True}


class ReconcileEventListResponse(BaseModel):
    """Response schema for reconcile event list."""
    items: List[ReconcileEventResponse]
    total: int
