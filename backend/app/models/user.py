"""
User model: login identity and the student's cached room number.

`room_number` mirrors the room of the student's active allocation. It is a
read shortcut for other subsystems, never consulted by the allocation ledger.
"""

from sqlalchemy import Column, Integer, String, Boolean, CheckConstraint
from sqlalchemy.orm import relationship

from app.db.base import Base, TimestampMixin


class UserRole:
    STUDENT = "student"
    STAFF = "staff"

    ALL = (STUDENT, STAFF)


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(100), nullable=False)
    hashed_password = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default=UserRole.STUDENT)
    room_number = Column(String(50), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    # Relationships
    allocations = relationship(
        "Allocation",
        back_populates="student",
        foreign_keys="Allocation.student_id",
        lazy="raise",
    )

    __table_args__ = (
        CheckConstraint("role IN ('student', 'staff')", name="check_user_role"),
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
