"""
Maintenance request filed against a room.
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship

from app.db.base import Base, TimestampMixin


class MaintenanceStatus:
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    OPEN = (PENDING, IN_PROGRESS)


class MaintenancePriority:
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class MaintenanceRequest(Base, TimestampMixin):
    __tablename__ = "maintenance_requests"

    id = Column(Integer, primary_key=True, index=True)
    room_id = Column(Integer, ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False, index=True)
    reported_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    assigned_to = Column(Integer, ForeignKey("users.id"), nullable=True)
    issue = Column(String(100), nullable=False)
    description = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default=MaintenanceStatus.PENDING)
    priority = Column(String(20), nullable=False, default=MaintenancePriority.MEDIUM)
    estimated_completion_date = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)
    completed_on = Column(DateTime(timezone=True), nullable=True)

    room = relationship("Room", lazy="raise")

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'in-progress', 'completed', 'cancelled')",
            name="check_maintenance_status",
        ),
        CheckConstraint(
            "priority IN ('low', 'medium', 'high', 'urgent')",
            name="check_maintenance_priority",
        ),
    )

    def __repr__(self) -> str:
        return f"<MaintenanceRequest(id={self.id}, room={self.room_id}, status={self.status})>"
