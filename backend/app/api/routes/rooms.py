"""
Room and bed endpoints with Redis caching on list operations.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.models.user import User
from app.schemas.room import (
    RoomCreate, RoomUpdate, RoomResponse, AvailableRoomResponse,
    BedResponse, BedStatusUpdate, RoomWithBedsResponse, RoomDeleteResponse,
)
from app.services import bed_service, room_service
from app.services.cache_service import get_cached_rooms, set_cached_rooms, invalidate_room_cache
from app.core.security import require_staff
from app.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/rooms", tags=["Rooms"])


@router.get("/", response_model=list[RoomResponse])
async def list_rooms_endpoint(db: AsyncSession = Depends(get_db)):
    """List every room. Cached in Redis until the next room or bed change."""
    cached = await get_cached_rooms("all")
    if cached is not None:
        logger.info("rooms_list_cache_hit", kind="all")
        return cached

    rooms = await room_service.list_rooms(db)
    response_data = [RoomResponse.model_validate(r).model_dump(mode="json") for r in rooms]
    await set_cached_rooms("all", response_data)
    return response_data


@router.get("/available", response_model=list[AvailableRoomResponse])
async def list_available_rooms_endpoint(db: AsyncSession = Depends(get_db)):
    """
    Rooms open for allocation: status 'available' and at least one free bed.
    Cache is invalidated on every allocation, release and room change.
    """
    cached = await get_cached_rooms("available")
    if cached is not None:
        logger.info("rooms_list_cache_hit", kind="available")
        return cached

    rooms = await room_service.list_available_rooms(db)
    response_data = [
        AvailableRoomResponse(
            **RoomResponse.model_validate(room).model_dump(),
            available_beds=available_beds,
        ).model_dump(mode="json")
        for room, available_beds in rooms
    ]
    await set_cached_rooms("available", response_data)
    return response_data


@router.get("/{room_id}", response_model=RoomResponse)
async def get_room_endpoint(room_id: int, db: AsyncSession = Depends(get_db)):
    """Get a single room by ID. Not cached (needs real-time occupancy)."""
    return await room_service.get_room(db, room_id)


@router.get("/{room_id}/beds", response_model=list[BedResponse])
async def list_beds_endpoint(room_id: int, db: AsyncSession = Depends(get_db)):
    """All beds of a room, any status."""
    return await bed_service.list_beds(db, room_id)


@router.post("/", response_model=RoomWithBedsResponse, status_code=status.HTTP_201_CREATED)
async def create_room_endpoint(
    room_data: RoomCreate,
    staff: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    """Create a room and one available bed per unit of capacity. Staff only."""
    room, beds = await room_service.create_room(db, room_data)
    # Commit first so a concurrent read cannot re-cache the old listing
    await db.commit()
    await invalidate_room_cache()
    return RoomWithBedsResponse(
        room=RoomResponse.model_validate(room),
        beds=[BedResponse.model_validate(b) for b in beds],
    )


@router.put("/{room_id}", response_model=RoomResponse)
async def update_room_endpoint(
    room_id: int,
    room_data: RoomUpdate,
    staff: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    """
    Update room attributes. Staff only.

    Capacity can grow (beds are appended) or shrink down to the number of
    occupied beds (free beds are removed, highest number first).
    """
    room = await room_service.update_room(db, room_id, room_data)
    await db.commit()
    await invalidate_room_cache()
    return room


@router.delete("/{room_id}", response_model=RoomDeleteResponse)
async def delete_room_endpoint(
    room_id: int,
    staff: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    """Delete a room and its beds. Refused while anyone lives there. Staff only."""
    await room_service.delete_room(db, room_id)
    await db.commit()
    await invalidate_room_cache()
    return RoomDeleteResponse(message="Room removed", room_id=room_id)


@router.patch("/{room_id}/beds/{bed_id}", response_model=BedResponse)
async def update_bed_status_endpoint(
    room_id: int,
    bed_id: int,
    bed_data: BedStatusUpdate,
    staff: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    """Take a free bed out of service or put it back. Staff only."""
    bed = await bed_service.set_maintenance(db, room_id, bed_id, bed_data.status)
    await room_service.refresh_occupancy(db, room_id)
    await db.commit()
    await invalidate_room_cache()
    return bed
