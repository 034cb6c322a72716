"""
Managed access control list model.
"""
from sqlalchemy import Column, Integer, String, DateTime, Text, Boolean
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from aclsync.core.database import Base


class AccessControlListResource(Base):
    """A declared ACL rule and its reconciliation status."""
    __tablename__ = "access_control_lists"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False, unique=True, index=True)

    # Declared specification (all identity-defining)
    principal = Column(String(255), nullable=False)
    host = Column(String(255), nullable=True)  # '*' when unset
    operation = Column(String(50), nullable=False)
    permission_type = Column(String(50), nullable=False)
    resource_type = Column(String(50), nullable=False, index=True)
    resource_name = Column(String(255), nullable=False)
    pattern_type = Column(String(50), nullable=True)  # Literal when unset

    # Identity token, written once at first successful create
    external_name = Column(Text, nullable=True)
    deletion_requested = Column(Boolean, default=False, nullable=False, index=True)

    # Ready condition
    ready_status = Column(Boolean, nullable=True)
    ready_reason = Column(String(50), nullable=True)
    ready_message = Column(Text, nullable=True)
    ready_transition_at = Column(DateTime(timezone=True), nullable=True)

    # Synced condition
    synced_status = Column(Boolean, nullable=True)
    synced_reason = Column(String(50), nullable=True)
    synced_message = Column(Text, nullable=True)
    synced_transition_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    last_reconciled_at = Column(DateTime(timezone=True), nullable=True)

    events = relationship(
        "ReconcileEvent",
        back_populates="resource",
        cascade="all, delete-orphan",
    )
