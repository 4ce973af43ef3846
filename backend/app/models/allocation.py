"""
Allocation model binding a student to a bed for a period of time.

Key design decisions:
- Rows are never deleted; ending an allocation sets active=false and end_date
- Partial unique index allows one active allocation per bed, backing up the
  conditional bed claim at the database level
- Room/bed foreign keys are SET NULL on delete so history outlives the room
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, CheckConstraint, Index, text
from sqlalchemy.orm import relationship

from app.db.base import Base, TimestampMixin


class PaymentStatus:
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"
    REFUNDED = "refunded"

    ALL = (PENDING, PAID, OVERDUE, REFUNDED)


class Allocation(Base, TimestampMixin):
    __tablename__ = "allocations"

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    room_id = Column(Integer, ForeignKey("rooms.id", ondelete="SET NULL"), nullable=True, index=True)
    bed_id = Column(Integer, ForeignKey("beds.id", ondelete="SET NULL"), nullable=True, index=True)
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=True)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING)
    active = Column(Boolean, nullable=False, default=True)

    # Relationships
    student = relationship("User", back_populates="allocations", foreign_keys=[student_id], lazy="raise")
    room = relationship("Room", lazy="raise")
    bed = relationship("Bed", lazy="raise")

    __table_args__ = (
        CheckConstraint(
            "payment_status IN ('pending', 'paid', 'overdue', 'refunded')",
            name="check_allocation_payment_status",
        ),
        # An ended allocation always records when it ended
        CheckConstraint("active OR end_date IS NOT NULL", name="check_inactive_has_end_date"),
        Index(
            "uq_active_allocation_per_bed",
            "bed_id",
            unique=True,
            postgresql_where=text("active"),
            sqlite_where=text("active = 1"),
        ),
        Index("ix_allocations_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Allocation(id={self.id}, student={self.student_id}, room={self.room_id}, "
            f"bed={self.bed_id}, active={self.active})>"
        )
