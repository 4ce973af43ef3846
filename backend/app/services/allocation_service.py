"""
Allocation ledger: binds students to beds and keeps the projections in step.

CONCURRENCY STRATEGY: Conditional Claim, Then Record
====================================================

Problem:
  Two staff members allocate the same bed at the same moment.
  Both read bed.status='available', both create an allocation, both mark
  the bed occupied. Result: one bed, two active allocations.

Solution:
  The read is only a fast-fail pre-check. The decision is a single
  conditional write made before any allocation row exists:

  1. UPDATE beds SET status='occupied'
     WHERE id = :bed AND room_id = :room AND status = 'available'
  2. If rows_affected == 0, the bed was taken -> 409, nothing written
  3. Only then INSERT the allocation row

  Under READ COMMITTED the losing UPDATE waits for the winner's row lock,
  re-checks the predicate and matches nothing. The partial unique index
  uq_active_allocation_per_bed is the final safety net.

Projections:
  Room.occupied_count / Room.status and the student's cached room number are
  rewritten from bed state in the same transaction (see room_service). Every
  step after the claim is idempotent, so ending an allocation twice, or
  re-running a step after a crash, converges on the same state.

Room row lock:
  Allocate and end both take the room row FOR UPDATE before any bed write
  and hold it until commit (room_service.lock_room). Two transactions on one
  room therefore recount beds in turn and cannot overwrite each other's
  projection with a count taken before the other committed.

Optionally a room lock (strategy_factory) serializes allocations per room
across workers so losers fail fast instead of queueing on the row lock. It
is released before commit, so it never replaces the row lock.
"""

import time
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.models.allocation import Allocation, PaymentStatus
from app.models.bed import BedStatus
from app.models.room import Room, RoomStatus
from app.models.user import User, UserRole
from app.schemas.allocation import AllocationCreate, AllocationUpdate
from app.services import bed_service, room_service
from app.services.strategy_factory import get_room_lock
from app.core.config import get_settings
from app.core.exceptions import CapacityConflictError, ConflictError, NotFoundError
from app.core.metrics import (
    allocation_latency,
    allocations_ended,
    bed_claim_conflicts,
    record_allocation_attempt,
)
from app.core.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()


def _now() -> datetime:
    return datetime.now(timezone.utc)


async def _get_student(db: AsyncSession, student_id: int) -> User:
    result = await db.execute(
        select(User).where(User.id == student_id, User.role == UserRole.STUDENT)
    )
    student = result.scalar_one_or_none()
    if not student:
        raise NotFoundError("Student not found")
    return student


async def _get_allocation(db: AsyncSession, allocation_id: int) -> Allocation:
    result = await db.execute(
        select(Allocation)
        .where(Allocation.id == allocation_id)
        .execution_options(populate_existing=True)
    )
    allocation = result.scalar_one_or_none()
    if not allocation:
        raise NotFoundError("Allocation not found")
    return allocation


async def _check_preconditions(db: AsyncSession, data: AllocationCreate) -> Room:
    """Read-only guards. Nothing has been written when one of these fails."""
    await _get_student(db, data.student_id)
    room = await room_service.get_room(db, data.room_id)

    if room.occupied_count >= room.capacity or room.status in RoomStatus.CLOSED:
        raise CapacityConflictError(f"Room {room.room_number} is fully occupied")
    if room.status == RoomStatus.MAINTENANCE:
        raise ConflictError(f"Room {room.room_number} is under maintenance")

    existing = await db.execute(
        select(Allocation.id).where(
            Allocation.student_id == data.student_id,
            Allocation.active.is_(True),
        )
    )
    if existing.first() is not None:
        raise ConflictError("Student already has an active allocation")

    bed = await bed_service.get_bed(db, data.bed_id)
    if bed.room_id != data.room_id:
        raise ConflictError("Bed does not belong to the specified room")
    if bed.status != BedStatus.AVAILABLE:
        raise ConflictError("Bed is not available")

    return room


async def allocate(db: AsyncSession, data: AllocationCreate) -> Allocation:
    """
    Allocate a bed to a student.
    Raises NotFoundError, CapacityConflictError or ConflictError; on any of
    them no allocation row exists and the bed is untouched.
    """
    started = time.perf_counter()
    try:
        await room_service.lock_room(db, data.room_id)
        room = await _check_preconditions(db, data)

        async with get_room_lock().hold(data.room_id):
            # The claim is the authoritative availability check
            if not await bed_service.claim_bed(db, data.bed_id, data.room_id, data.student_id):
                bed_claim_conflicts.inc()
                logger.warning(
                    "allocation_lost_bed_race",
                    bed_id=data.bed_id,
                    room_id=data.room_id,
                    student_id=data.student_id,
                )
                raise ConflictError("Bed is not available")

            allocation = Allocation(
                student_id=data.student_id,
                room_id=data.room_id,
                bed_id=data.bed_id,
                start_date=data.start_date or _now(),
                end_date=data.end_date,
                payment_status=data.payment_status or PaymentStatus.PENDING,
                active=True,
            )
            db.add(allocation)
            try:
                await db.flush()
            except IntegrityError:
                # Unique active-allocation index caught what the claim did not
                await db.rollback()
                logger.error("allocation_duplicate_active", bed_id=data.bed_id)
                raise ConflictError("Bed is not available")

            await sync_student_room_number(db, data.student_id, room.room_number)
            room = await room_service.refresh_occupancy(db, data.room_id)

        await db.refresh(allocation)
    except CapacityConflictError:
        record_allocation_attempt("capacity")
        raise
    except ConflictError:
        record_allocation_attempt("conflict")
        raise
    except Exception:
        record_allocation_attempt("error")
        raise
    finally:
        allocation_latency.observe(time.perf_counter() - started)

    record_allocation_attempt("success")
    logger.info(
        "allocation_created",
        allocation_id=allocation.id,
        student_id=allocation.student_id,
        room_id=allocation.room_id,
        bed_id=allocation.bed_id,
        room_status=room.status,
        occupied=room.occupied_count,
    )
    return allocation


async def update_allocation(
    db: AsyncSession,
    allocation_id: int,
    data: AllocationUpdate,
) -> Allocation:
    """
    Edit end date and/or payment status of an active allocation.
    Beds, rooms and students are untouched. Ended allocations are history
    and raise ConflictError.
    """
    allocation = await _get_allocation(db, allocation_id)
    if not allocation.active:
        raise ConflictError("Allocation has ended and can no longer be edited")

    changes = {
        field: value
        for field, value in data.model_dump(exclude_unset=True).items()
        if value is not None
    }
    for field, value in changes.items():
        setattr(allocation, field, value)

    await db.flush()
    await db.refresh(allocation)

    logger.info("allocation_updated", allocation_id=allocation_id, fields=sorted(changes))
    return allocation


async def end_allocation(db: AsyncSession, allocation_id: int) -> Allocation:
    """
    End an allocation and release its bed.
    Safe to call again on an ended allocation.
    """
    allocation = await _get_allocation(db, allocation_id)
    was_active = allocation.active

    if allocation.room_id is not None:
        await room_service.lock_room(db, allocation.room_id)
        async with get_room_lock().hold(allocation.room_id):
            await _release(db, allocation)
    else:
        await _release(db, allocation)

    if allocation.end_date is None:
        allocation.end_date = _now()
    allocation.active = False
    await db.flush()
    await db.refresh(allocation)

    if was_active:
        allocations_ended.inc()
    logger.info(
        "allocation_ended",
        allocation_id=allocation.id,
        student_id=allocation.student_id,
        room_id=allocation.room_id,
        bed_id=allocation.bed_id,
        already_ended=not was_active,
    )
    return allocation


async def _release(db: AsyncSession, allocation: Allocation) -> None:
    """Free the bed, refresh the room, clear the student's cached room."""
    if allocation.active and allocation.bed_id is not None:
        await bed_service.release_bed(db, allocation.bed_id)
    if allocation.room_id is not None:
        await room_service.refresh_occupancy(db, allocation.room_id)

    # Another active allocation means the cache already points elsewhere
    other = await db.execute(
        select(Allocation.id).where(
            Allocation.student_id == allocation.student_id,
            Allocation.active.is_(True),
            Allocation.id != allocation.id,
        )
    )
    if other.first() is None:
        await sync_student_room_number(db, allocation.student_id, None)


async def sync_student_room_number(
    db: AsyncSession,
    student_id: int,
    room_number: Optional[str],
) -> None:
    """Write the student's cached room number. Idempotent."""
    await db.execute(
        update(User)
        .where(User.id == student_id)
        .values(room_number=room_number)
        .execution_options(synchronize_session=False)
    )


async def get_student_allocation(db: AsyncSession, student_id: int) -> Allocation:
    """The student's active allocation with room and bed loaded."""
    await _get_student(db, student_id)

    result = await db.execute(
        select(Allocation)
        .where(Allocation.student_id == student_id, Allocation.active.is_(True))
        .options(selectinload(Allocation.room), selectinload(Allocation.bed))
        .order_by(Allocation.created_at.desc())
        .execution_options(populate_existing=True)
    )
    allocation = result.scalars().first()
    if not allocation:
        raise NotFoundError("No active allocation found for this student")
    return allocation


async def list_recent_allocations(db: AsyncSession, limit: Optional[int] = None) -> list[dict]:
    """Newest allocations with student and room display fields."""
    limit = limit or settings.RECENT_ALLOCATIONS_LIMIT

    result = await db.execute(
        select(Allocation, User.name, Room.room_number, Room.type)
        .outerjoin(User, User.id == Allocation.student_id)
        .outerjoin(Room, Room.id == Allocation.room_id)
        .order_by(Allocation.created_at.desc(), Allocation.id.desc())
        .limit(limit)
    )

    return [
        {
            "id": allocation.id,
            "room_number": room_number or "Unknown",
            "type": room_type or "Unknown",
            "student_name": student_name or "Unknown",
            "date": allocation.created_at,
            "start_date": allocation.start_date,
            "end_date": allocation.end_date,
            "status": "Active" if allocation.active else "Ended",
        }
        for allocation, student_name, room_number, room_type in result.all()
    ]
