"""
Maintenance request service: filing and triage listing.
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.maintenance_request import MaintenanceRequest, MaintenanceStatus
from app.models.room import Room
from app.schemas.maintenance import MaintenanceRequestCreate
from app.services import room_service
from app.core.config import get_settings
from app.core.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()


async def create_request(
    db: AsyncSession,
    request_data: MaintenanceRequestCreate,
    reported_by: int,
) -> MaintenanceRequest:
    """File a maintenance request against an existing room."""
    await room_service.get_room(db, request_data.room_id)

    request = MaintenanceRequest(
        room_id=request_data.room_id,
        reported_by=reported_by,
        issue=request_data.issue_type,
        description=request_data.description,
        status=MaintenanceStatus.PENDING,
        priority=request_data.priority,
        estimated_completion_date=request_data.estimated_completion_date,
        notes=request_data.notes,
    )
    db.add(request)
    await db.flush()
    await db.refresh(request)

    logger.info(
        "maintenance_requested",
        request_id=request.id,
        room_id=request.room_id,
        priority=request.priority,
        reported_by=reported_by,
    )
    return request


async def list_pending(db: AsyncSession, limit: Optional[int] = None) -> list[dict]:
    """Open requests (pending or in progress), newest first."""
    limit = limit or settings.RECENT_ALLOCATIONS_LIMIT

    result = await db.execute(
        select(MaintenanceRequest, Room.room_number)
        .outerjoin(Room, Room.id == MaintenanceRequest.room_id)
        .where(MaintenanceRequest.status.in_(MaintenanceStatus.OPEN))
        .order_by(MaintenanceRequest.created_at.desc(), MaintenanceRequest.id.desc())
        .limit(limit)
    )

    return [
        {
            "id": request.id,
            "room_number": room_number or "Unknown",
            "issue": request.issue,
            "status": "Pending" if request.status == MaintenanceStatus.PENDING else "In Progress",
            "reported_on": request.created_at,
        }
        for request, room_number in result.all()
    ]
