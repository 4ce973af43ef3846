"""
Room catalog service: rooms, capacity changes and the occupancy projection.

OCCUPANCY PROJECTION
====================

Room.occupied_count and Room.status are derived from the room's beds:

  occupied_count = beds with status 'occupied'
  status         = 'occupied'  if no bed is available and at least one is occupied
                   'available' if at least one bed is available
                   unchanged   otherwise, and always unchanged for 'maintenance'

refresh_occupancy() rewrites both from a fresh count after every claim,
release, resize or bed status change, inside the same transaction. Because
it never adds or subtracts, running it twice is harmless and a missed run is
repaired by the next one.

ROOM ROW LOCK
=============

Every writer that changes a room's beds first takes the room row with
SELECT ... FOR UPDATE (lock_room), then touches beds, allocations and
students in that order. Two transactions on the same room therefore count
beds one after the other: the second count runs after the first commit and
sees its bed changes, so the projection written last is always current.
SQLite ignores FOR UPDATE; its database-wide write lock serializes anyway.

CAPACITY CHANGES
================

  grow:   append beds numbered after the highest existing bed number
  shrink: rejected if occupied beds > new capacity; otherwise the
          highest-numbered beds that are not occupied are deleted

Room edits carry an optimistic `version` check, retried up to
MAX_RETRY_ATTEMPTS, so a resize cannot interleave with a claim on the same
room and act on a stale occupancy count.
"""

from sqlalchemy import select, update, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.room import Room, RoomStatus
from app.models.bed import Bed, BedStatus
from app.models.allocation import Allocation
from app.models.user import User
from app.schemas.room import RoomCreate, RoomUpdate
from app.services import bed_service
from app.core.config import get_settings
from app.core.exceptions import CapacityConflictError, ConflictError, NotFoundError, ValidationError
from app.core.metrics import db_retries
from app.core.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()

# Columns a caller may explicitly clear with null
NULLABLE_FIELDS = ("building", "price")


async def get_room(db: AsyncSession, room_id: int) -> Room:
    """Get a single room by ID, bypassing any stale identity-map copy."""
    result = await db.execute(
        select(Room).where(Room.id == room_id).execution_options(populate_existing=True)
    )
    room = result.scalar_one_or_none()

    if not room:
        raise NotFoundError(f"Room {room_id} not found")
    return room


async def lock_room(db: AsyncSession, room_id: int) -> None:
    """Hold the room row until commit. A missing room locks nothing."""
    await db.execute(select(Room.id).where(Room.id == room_id).with_for_update())


async def list_rooms(db: AsyncSession) -> list[Room]:
    result = await db.execute(
        select(Room).order_by(Room.room_number.asc()).execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def _ensure_room_number_free(db: AsyncSession, room_number: str, room_id: int = None) -> None:
    query = select(Room.id).where(Room.room_number == room_number)
    if room_id is not None:
        query = query.where(Room.id != room_id)
    if (await db.execute(query)).scalar_one_or_none() is not None:
        raise ConflictError(f"Room number {room_number} already exists")


async def create_room(db: AsyncSession, room_data: RoomCreate) -> tuple[Room, list[Bed]]:
    """Create a room together with beds 1..capacity, all available."""
    if room_data.capacity <= 0:
        raise ValidationError("Room capacity must be positive")
    await _ensure_room_number_free(db, room_data.room_number)

    room = Room(
        room_number=room_data.room_number,
        floor=room_data.floor,
        building=room_data.building,
        capacity=room_data.capacity,
        type=room_data.type,
        amenities=list(room_data.amenities),
        price=room_data.price,
        occupied_count=0,
        status=room_data.status or RoomStatus.AVAILABLE,
    )
    db.add(room)
    await db.flush()

    beds = await bed_service.create_beds(db, room.id, room_data.capacity, starting_number=1)
    await db.refresh(room)

    logger.info(
        "room_created",
        room_id=room.id,
        room_number=room.room_number,
        capacity=room.capacity,
    )
    return room, beds


async def update_room(db: AsyncSession, room_id: int, room_data: RoomUpdate) -> Room:
    """
    Apply a partial room update.
    Shrinking below the occupied-bed count raises CapacityConflictError and
    writes nothing.
    """
    changes = {
        field: value
        for field, value in room_data.model_dump(exclude_unset=True).items()
        if value is not None or field in NULLABLE_FIELDS
    }

    for attempt in range(1, settings.MAX_RETRY_ATTEMPTS + 1):
        await lock_room(db, room_id)
        room = await get_room(db, room_id)
        old_capacity = room.capacity
        old_room_number = room.room_number
        new_capacity = changes.get("capacity", old_capacity)

        if "room_number" in changes and changes["room_number"] != old_room_number:
            await _ensure_room_number_free(db, changes["room_number"], room_id)

        if new_capacity < old_capacity:
            occupied = await bed_service.count_by_status(db, room_id, BedStatus.OCCUPIED)
            if occupied > new_capacity:
                logger.warning(
                    "room_shrink_rejected",
                    room_id=room_id,
                    requested=new_capacity,
                    occupied=occupied,
                )
                raise CapacityConflictError(
                    f"Cannot reduce capacity below current occupancy. "
                    f"There are {occupied} beds occupied."
                )

        # Optimistic lock - update only if nobody touched the room since we read it
        values = dict(changes)
        if "amenities" in values:
            values["amenities"] = list(values["amenities"])
        values["version"] = Room.version + 1

        update_result = await db.execute(
            update(Room)
            .where(Room.id == room_id, Room.version == room.version)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        if update_result.rowcount == 0:
            db_retries.inc()
            logger.info(
                "room_update_retry",
                room_id=room_id,
                attempt=attempt,
                reason="version_conflict",
            )
            if attempt == settings.MAX_RETRY_ATTEMPTS:
                raise ConflictError("Room was modified concurrently. Please try again.")
            continue

        if new_capacity != old_capacity:
            await _resize_beds(db, room_id, new_capacity)
            # A status sent with the resize wins over the recomputed one
            await refresh_occupancy(db, room_id, keep_status="status" in changes)

        new_room_number = changes.get("room_number", old_room_number)
        if new_room_number != old_room_number:
            await _cascade_room_number(db, room_id, new_room_number)

        room = await get_room(db, room_id)
        logger.info(
            "room_updated",
            room_id=room_id,
            fields=sorted(changes),
            capacity=room.capacity,
            attempt=attempt,
        )
        return room

    # Should not reach here, but just in case
    raise ConflictError("Room update failed unexpectedly")


async def _resize_beds(db: AsyncSession, room_id: int, capacity: int) -> None:
    """Bring the room's bed count in line with its capacity."""
    bed_count = await bed_service.count_beds(db, room_id)

    if capacity > bed_count:
        next_number = await bed_service.max_bed_number(db, room_id) + 1
        await bed_service.create_beds(db, room_id, capacity - bed_count, starting_number=next_number)
    elif capacity < bed_count:
        await bed_service.remove_surplus_beds(db, room_id, bed_count - capacity)


async def _cascade_room_number(db: AsyncSession, room_id: int, room_number: str) -> None:
    """Rewrite the cached room number of every student living in the room."""
    residents = select(Allocation.student_id).where(
        Allocation.room_id == room_id,
        Allocation.active.is_(True),
    )
    result = await db.execute(
        update(User)
        .where(User.id.in_(residents))
        .values(room_number=room_number)
        .execution_options(synchronize_session=False)
    )
    logger.info("room_number_cascaded", room_id=room_id, students=result.rowcount)


async def delete_room(db: AsyncSession, room_id: int) -> None:
    """Delete a room and its beds. Refused while any bed is occupied."""
    await lock_room(db, room_id)
    room = await get_room(db, room_id)

    occupied = await bed_service.count_by_status(db, room_id, BedStatus.OCCUPIED)
    if occupied > 0:
        raise ConflictError(
            "Cannot delete room with active occupants. Please relocate students first."
        )

    beds_deleted = await bed_service.delete_room_beds(db, room_id)
    await db.execute(
        delete(Room).where(Room.id == room_id).execution_options(synchronize_session=False)
    )
    db.expunge(room)

    logger.info("room_deleted", room_id=room_id, beds_deleted=beds_deleted)


async def derive_availability(db: AsyncSession, room_id: int) -> int:
    """Number of available beds, computed at read time."""
    return await bed_service.count_by_status(db, room_id, BedStatus.AVAILABLE)


async def list_available_rooms(db: AsyncSession) -> list[tuple[Room, int]]:
    """
    Rooms with status 'available' and at least one available bed,
    each paired with its available-bed count.
    """
    available_beds = func.count(Bed.id).label("available_beds")
    result = await db.execute(
        select(Room, available_beds)
        .join(Bed, Bed.room_id == Room.id)
        .where(Room.status == RoomStatus.AVAILABLE, Bed.status == BedStatus.AVAILABLE)
        .group_by(Room.id)
        .having(available_beds > 0)
        .order_by(Room.room_number.asc())
        .execution_options(populate_existing=True)
    )
    return [(room, count) for room, count in result.all()]


async def refresh_occupancy(db: AsyncSession, room_id: int, keep_status: bool = False) -> Room:
    """
    Recompute occupied_count and status from the room's beds.
    With keep_status the stored status is left as it is (an explicit
    status sent together with a resize).
    """
    await lock_room(db, room_id)
    room = await get_room(db, room_id)
    occupied = await bed_service.count_by_status(db, room_id, BedStatus.OCCUPIED)
    available = await bed_service.count_by_status(db, room_id, BedStatus.AVAILABLE)

    status = room.status
    if status != RoomStatus.MAINTENANCE and not keep_status:
        if available == 0 and occupied > 0:
            status = RoomStatus.OCCUPIED
        elif available > 0:
            status = RoomStatus.AVAILABLE

    if occupied == room.occupied_count and status == room.status:
        return room

    await db.execute(
        update(Room)
        .where(Room.id == room_id)
        .values(
            occupied_count=occupied,
            status=status,
            version=Room.version + 1,
        )
        .execution_options(synchronize_session=False)
    )

    if status != room.status:
        logger.info(
            "room_status_changed",
            room_id=room_id,
            old_status=room.status,
            new_status=status,
            occupied=occupied,
            available=available,
        )
    return await get_room(db, room_id)
