"""
Room model with a denormalized occupancy projection.

Key design decisions:
- `occupied_count` and `status` are projections of the room's bed rows.
  They are recomputed from the beds after every claim or release, never
  incremented, so they cannot drift.
- `status = maintenance` is an administrative override the projection
  leaves alone.
- `version` column enables optimistic locking for metadata/capacity edits
"""

from sqlalchemy import Column, Integer, String, Numeric, JSON, CheckConstraint, Index
from sqlalchemy.orm import relationship

from app.db.base import Base, TimestampMixin


class RoomStatus:
    AVAILABLE = "available"
    OCCUPIED = "occupied"
    MAINTENANCE = "maintenance"
    FULL = "full"

    ALL = (AVAILABLE, OCCUPIED, MAINTENANCE, FULL)
    # Statuses that refuse new allocations outright
    CLOSED = (OCCUPIED, FULL)


class Room(Base, TimestampMixin):
    __tablename__ = "rooms"

    id = Column(Integer, primary_key=True, index=True)
    room_number = Column(String(50), unique=True, nullable=False)
    floor = Column(Integer, nullable=False)
    building = Column(String(100), nullable=True)
    capacity = Column(Integer, nullable=False)
    type = Column(String(50), nullable=False)
    amenities = Column(JSON, nullable=False, default=list)
    price = Column(Numeric(10, 2), nullable=True)
    occupied_count = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, default=RoomStatus.AVAILABLE)

    # Optimistic locking version counter
    version = Column(Integer, nullable=False, default=1)

    # Relationships
    beds = relationship(
        "Bed",
        back_populates="room",
        order_by="Bed.bed_number",
        lazy="raise",
    )

    __table_args__ = (
        CheckConstraint("capacity > 0", name="check_room_capacity_positive"),
        CheckConstraint("occupied_count >= 0", name="check_room_occupied_non_negative"),
        CheckConstraint("occupied_count <= capacity", name="check_room_occupied_lte_capacity"),
        CheckConstraint(
            "status IN ('available', 'occupied', 'maintenance', 'full')",
            name="check_room_status",
        ),
        # Available-rooms listing filters on status first
        Index("ix_rooms_status", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<Room(id={self.id}, number={self.room_number}, "
            f"occupied={self.occupied_count}/{self.capacity}, status={self.status})>"
        )
