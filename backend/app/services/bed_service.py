"""
Bed pool service: creates, counts and flips beds.

Bed.status is the authoritative occupancy record. The two transitions the
allocation ledger uses are written as conditional updates:

  claim:   UPDATE beds SET status='occupied' WHERE id=:bed AND room_id=:room AND status='available'
  release: UPDATE beds SET status='available' WHERE id=:bed AND status='occupied'

A claim that matches no row means another request got the bed first (or it
never was free); the caller treats that as "bed unavailable". A release that
matches no row means the bed was already free, which makes ending an
allocation safe to repeat.
"""

from typing import Optional

from sqlalchemy import select, update, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.bed import Bed, BedStatus
from app.models.room import Room
from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.core.logging import get_logger

logger = get_logger(__name__)


async def _require_room(db: AsyncSession, room_id: int, lock: bool = False) -> None:
    query = select(Room.id).where(Room.id == room_id)
    if lock:
        # Same room-first lock order as the allocation ledger
        query = query.with_for_update()
    result = await db.execute(query)
    if result.scalar_one_or_none() is None:
        raise NotFoundError(f"Room {room_id} not found")


async def create_beds(
    db: AsyncSession,
    room_id: int,
    count: int,
    starting_number: int = 1,
) -> list[Bed]:
    """Create `count` available beds numbered from `starting_number`."""
    if count <= 0:
        raise ValidationError("Bed count must be positive")
    if starting_number <= 0:
        raise ValidationError("Bed numbers start at 1")
    await _require_room(db, room_id)

    beds = [
        Bed(room_id=room_id, bed_number=number, status=BedStatus.AVAILABLE)
        for number in range(starting_number, starting_number + count)
    ]
    db.add_all(beds)
    await db.flush()

    logger.info(
        "beds_created",
        room_id=room_id,
        count=count,
        first_number=starting_number,
    )
    return beds


async def list_beds(db: AsyncSession, room_id: int) -> list[Bed]:
    """All beds of a room in bed-number order, any status."""
    await _require_room(db, room_id)
    result = await db.execute(
        select(Bed)
        .where(Bed.room_id == room_id)
        .order_by(Bed.bed_number.asc())
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def get_bed(db: AsyncSession, bed_id: int) -> Bed:
    result = await db.execute(
        select(Bed).where(Bed.id == bed_id).execution_options(populate_existing=True)
    )
    bed = result.scalar_one_or_none()
    if not bed:
        raise NotFoundError(f"Bed {bed_id} not found")
    return bed


async def count_by_status(db: AsyncSession, room_id: int, status: str) -> int:
    result = await db.execute(
        select(func.count()).select_from(Bed).where(Bed.room_id == room_id, Bed.status == status)
    )
    return result.scalar_one()


async def count_beds(db: AsyncSession, room_id: int) -> int:
    result = await db.execute(select(func.count()).select_from(Bed).where(Bed.room_id == room_id))
    return result.scalar_one()


async def max_bed_number(db: AsyncSession, room_id: int) -> int:
    result = await db.execute(select(func.max(Bed.bed_number)).where(Bed.room_id == room_id))
    return result.scalar_one() or 0


async def set_status(
    db: AsyncSession,
    bed_id: int,
    status: str,
    occupied_by: Optional[int] = None,
) -> None:
    """Unconditionally write a bed's status. Idempotent."""
    if status not in BedStatus.ALL:
        raise ValidationError(f"Unknown bed status '{status}'")

    result = await db.execute(
        update(Bed)
        .where(Bed.id == bed_id)
        .values(
            status=status,
            occupied_by=occupied_by if status == BedStatus.OCCUPIED else None,
            version=Bed.version + 1,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise NotFoundError(f"Bed {bed_id} not found")


async def claim_bed(db: AsyncSession, bed_id: int, room_id: int, student_id: int) -> bool:
    """
    Atomically flip an available bed in `room_id` to occupied.
    Returns False when no such available bed exists at write time.
    """
    result = await db.execute(
        update(Bed)
        .where(
            Bed.id == bed_id,
            Bed.room_id == room_id,
            Bed.status == BedStatus.AVAILABLE,
        )
        .values(
            status=BedStatus.OCCUPIED,
            occupied_by=student_id,
            version=Bed.version + 1,
        )
        .execution_options(synchronize_session=False)
    )
    claimed = result.rowcount == 1
    logger.debug("bed_claim", bed_id=bed_id, room_id=room_id, claimed=claimed)
    return claimed


async def release_bed(db: AsyncSession, bed_id: int) -> bool:
    """
    Flip an occupied bed back to available.
    Returns False when the bed was not occupied (already released).
    """
    result = await db.execute(
        update(Bed)
        .where(Bed.id == bed_id, Bed.status == BedStatus.OCCUPIED)
        .values(
            status=BedStatus.AVAILABLE,
            occupied_by=None,
            version=Bed.version + 1,
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def set_maintenance(db: AsyncSession, room_id: int, bed_id: int, status: str) -> Bed:
    """
    Administrative toggle between available and maintenance.
    Occupied beds are left to the allocation ledger.
    """
    if status not in (BedStatus.AVAILABLE, BedStatus.MAINTENANCE):
        raise ValidationError("Beds can only be set to available or maintenance here")

    await _require_room(db, room_id, lock=True)
    bed = await get_bed(db, bed_id)
    if bed.room_id != room_id:
        raise NotFoundError(f"Bed {bed_id} not found in room {room_id}")

    result = await db.execute(
        update(Bed)
        .where(Bed.id == bed_id, Bed.status != BedStatus.OCCUPIED)
        .values(status=status, version=Bed.version + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise ConflictError("Bed is occupied. End its allocation first.")

    logger.info("bed_status_changed", bed_id=bed_id, room_id=room_id, status=status)
    return await get_bed(db, bed_id)


async def remove_surplus_beds(db: AsyncSession, room_id: int, count: int) -> list[int]:
    """
    Delete the `count` highest-numbered beds that are not occupied.
    Callers check occupancy first; a shortfall here means a bed was
    claimed concurrently.
    """
    if count <= 0:
        return []

    result = await db.execute(
        select(Bed.id, Bed.bed_number)
        .where(Bed.room_id == room_id, Bed.status != BedStatus.OCCUPIED)
        .order_by(Bed.bed_number.desc())
        .limit(count)
    )
    rows = result.all()
    if len(rows) < count:
        raise ConflictError("Room occupancy changed while resizing. Please try again.")

    bed_ids = [row.id for row in rows]
    deleted = await db.execute(
        delete(Bed)
        .where(Bed.id.in_(bed_ids), Bed.status != BedStatus.OCCUPIED)
        .execution_options(synchronize_session=False)
    )
    if deleted.rowcount != count:
        raise ConflictError("Room occupancy changed while resizing. Please try again.")

    logger.info(
        "beds_removed",
        room_id=room_id,
        bed_numbers=sorted(row.bed_number for row in rows),
    )
    return bed_ids


async def delete_room_beds(db: AsyncSession, room_id: int) -> int:
    result = await db.execute(
        delete(Bed).where(Bed.room_id == room_id).execution_options(synchronize_session=False)
    )
    return result.rowcount
