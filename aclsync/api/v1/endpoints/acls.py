"""
Managed ACL endpoints.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from aclsync.core.auth import verify_api_key
from aclsync.core.database import get_db
from aclsync.models.access_control_list import AccessControlListResource
from aclsync.models.reconcile_event import ReconcileEvent
from aclsync.schemas.acl import (
    AccessControlListCreateRequest,
    AccessControlListListResponse,
    AccessControlListResponse,
    AccessControlListUpdateRequest,
    ConditionResponse,
    ReconcileEventListResponse,
    ReconcileEventResponse,
)
from aclsync.services import acl_service
from aclsync.services.scheduler import Scheduler, get_scheduler
from aclsync.utils.acl.acl_models import AclResourceType

logger = logging.getLogger(__name__)

router = APIRouter()


def _to_response(resource: AccessControlListResource) -> AccessControlListResponse:
    mg = acl_service.to_managed(resource)
    return AccessControlListResponse(
        id=resource.id,
        name=resource.name,
        for_provider=mg.for_provider,
        external_name=resource.external_name,
        deletion_requested=resource.deletion_requested,
        conditions=[
            ConditionResponse(
                type=c.type.value,
                status=c.status,
                reason=c.reason.value,
                message=c.message,
                last_transition_time=c.last_transition_time,
            )
            for c in mg.conditions
        ],
        created_at=resource.created_at,
        updated_at=resource.updated_at,
        last_reconciled_at=resource.last_reconciled_at,
    )


def _get_or_404(db: Session, acl_id: int) -> AccessControlListResource:
    resource = acl_service.get_resource(db, acl_id)
    if not resource:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"ACL with id {acl_id} not found"
        )
    return resource


@router.get("/", response_model=AccessControlListListResponse)
async def list_acls(
    resource_type: Optional[AclResourceType] = Query(None, description="Filter by resource type"),
    ready: Optional[bool] = Query(None, description="Filter by Ready condition status"),
    synced: Optional[bool] = Query(None, description="Filter by Synced condition status"),
    limit: int = Query(100, ge=1, le=500, description="Maximum number of ACLs to return"),
    offset: int = Query(0, ge=0, description="Number of ACLs to skip"),
    db: Session = Depends(get_db),
):
    """
    List managed ACLs with optional filters.
    """
    query = db.query(AccessControlListResource)

    if resource_type:
        query = query.filter(AccessControlListResource.resource_type == resource_type.value)
    if ready is not None:
        query = query.filter(AccessControlListResource.ready_status == ready)
    if synced is not None:
        query = query.filter(AccessControlListResource.synced_status == synced)

    total = query.count()
    resources = query.order_by(AccessControlListResource.id).offset(offset).limit(limit).all()

    return AccessControlListListResponse(
        items=[_to_response(r) for r in resources],
        total=total,
    )


@router.get("/{acl_id}", response_model=AccessControlListResponse)
async def get_acl(acl_id: int, db: Session = Depends(get_db)):
    """
    Get a managed ACL with its conditions and external name.
    """
    return _to_response(_get_or_404(db, acl_id))


@router.post("/", response_model=AccessControlListResponse, status_code=status.HTTP_201_CREATED)
async def create_acl(
    request: AccessControlListCreateRequest,
    _: Optional[str] = Depends(verify_api_key),
    db: Session = Depends(get_db),
    scheduler: Scheduler = Depends(get_scheduler),
):
    """
    Declare a managed ACL. It is created on the cluster by the next pass.
    """
    resource = AccessControlListResource(name=request.name, deletion_requested=False)
    acl_service.apply_parameters(resource, request.for_provider)

    db.add(resource)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"ACL with name {request.name!r} already exists"
        )
    db.refresh(resource)

    logger.info(f"Declared acl: id={resource.id}, name={resource.name}")
    scheduler.enqueue(resource.id)

    return _to_response(resource)


@router.put("/{acl_id}", response_model=AccessControlListResponse)
async def update_acl(
    acl_id: int,
    request: AccessControlListUpdateRequest,
    _: Optional[str] = Depends(verify_api_key),
    db: Session = Depends(get_db),
    scheduler: Scheduler = Depends(get_scheduler),
):
    """
    Replace the declared specification.

    The rule on the cluster is never changed in place: once the ACL has been
    created, a different specification is reported as drift by the next pass.

    Allowed while a deletion is pending: a drifted ACL cannot be deleted until
    its recorded specification is restored.
    """
    resource = _get_or_404(db, acl_id)

    acl_service.apply_parameters(resource, request.for_provider)
    db.commit()
    db.refresh(resource)

    logger.info(f"Updated declared specification of acl: id={acl_id}")
    scheduler.enqueue(resource.id)

    return _to_response(resource)


@router.delete("/{acl_id}", status_code=status.HTTP_202_ACCEPTED)
async def delete_acl(
    acl_id: int,
    _: Optional[str] = Depends(verify_api_key),
    db: Session = Depends(get_db),
    scheduler: Scheduler = Depends(get_scheduler),
):
    """
    Mark a managed ACL for deletion.

    The rule is deleted from the cluster by the next pass, after which the
    managed ACL itself is removed.
    """
    resource = _get_or_404(db, acl_id)
    resource.deletion_requested = True
    db.commit()

    logger.info(f"Marked acl for deletion: id={acl_id}")
    scheduler.enqueue(acl_id)

    return {"message": "ACL marked for deletion", "id": acl_id, "deletion_requested": True}


@router.post("/{acl_id}/reconcile")
def reconcile_acl(
    acl_id: int,
    _: Optional[str] = Depends(verify_api_key),
    db: Session = Depends(get_db),
    scheduler: Scheduler = Depends(get_scheduler),
):
    """
    Run one reconciliation pass now and return the result.

    ``acl`` is null when the pass finalized a deletion.
    """
    _get_or_404(db, acl_id)

    result = scheduler.reconcile(acl_id)

    # The pass ran in its own session
    db.expire_all()
    resource = acl_service.get_resource(db, acl_id)

    return {
        "error": result.error,
        "requeue_after": result.requeue_after,
        "acl": _to_response(resource).model_dump(mode="json") if resource else None,
    }


@router.get("/{acl_id}/events", response_model=ReconcileEventListResponse)
async def list_acl_events(
    acl_id: int,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    """
    List the events recorded for a managed ACL, newest first.
    """
    _get_or_404(db, acl_id)

    query = db.query(ReconcileEvent).filter(ReconcileEvent.resource_id == acl_id)
    total = query.count()
    events = query.order_by(ReconcileEvent.id.desc()).offset(offset).limit(limit).all()

    return ReconcileEventListResponse(
        items=[ReconcileEventResponse.model_validate(e) for e in events],
        total=total,
    )
