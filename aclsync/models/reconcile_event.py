"""
Reconcile event model for per-resource history.
"""
from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from aclsync.core.database import Base


class ReconcileEvent(Base):
    """One event recorded while reconciling a managed ACL."""
    __tablename__ = "reconcile_events"

    id = Column(Integer, primary_key=True, index=True)
    resource_id = Column(
        Integer,
        ForeignKey("access_control_lists.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    event_type = Column(String(20), nullable=False)  # Normal or Warning
    reason = Column(String(100), nullable=False, index=True)
    message = Column(Text, nullable=True)

    resource = relationship("AccessControlListResource", back_populates="events")
