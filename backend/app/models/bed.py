"""
Bed model: one capacity slot in a room, the unit a student is allocated.

Bed.status is the single source of truth for occupancy. Claims flip it with
a conditional UPDATE (available -> occupied) so two concurrent allocations
can never both see the bed as free.
"""

from sqlalchemy import Column, Integer, String, ForeignKey, UniqueConstraint, CheckConstraint, Index
from sqlalchemy.orm import relationship

from app.db.base import Base, TimestampMixin


class BedStatus:
    AVAILABLE = "available"
    OCCUPIED = "occupied"
    MAINTENANCE = "maintenance"
    FULL = "full"

    ALL = (AVAILABLE, OCCUPIED, MAINTENANCE, FULL)


class Bed(Base, TimestampMixin):
    __tablename__ = "beds"

    id = Column(Integer, primary_key=True, index=True)
    room_id = Column(Integer, ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False, index=True)
    bed_number = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default=BedStatus.AVAILABLE)
    occupied_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    version = Column(Integer, nullable=False, default=1)

    # Relationships
    room = relationship("Room", back_populates="beds", lazy="raise")

    __table_args__ = (
        UniqueConstraint("room_id", "bed_number", name="uq_room_bed_number"),
        CheckConstraint("bed_number > 0", name="check_bed_number_positive"),
        CheckConstraint(
            "status IN ('available', 'occupied', 'maintenance', 'full')",
            name="check_bed_status",
        ),
        # Availability counts: WHERE room_id = ? AND status = ?
        Index("ix_beds_room_status", "room_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<Bed(id={self.id}, room={self.room_id}, number={self.bed_number}, status={self.status})>"
