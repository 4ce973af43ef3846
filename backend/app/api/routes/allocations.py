"""
Allocation endpoints: allocate, edit, end and look up bed allocations.
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.models.user import User, UserRole
from app.schemas.allocation import (
    AllocationCreate, AllocationUpdate, AllocationResponse, AllocationDetailResponse,
    AllocationEndResponse, RecentAllocationResponse,
)
from app.services import allocation_service
from app.services.cache_service import invalidate_room_cache
from app.core.exceptions import ForbiddenError
from app.core.security import get_current_user, require_staff
from app.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/allocations", tags=["Allocations"])


@router.post("/", response_model=AllocationResponse, status_code=status.HTTP_201_CREATED)
async def allocate_endpoint(
    allocation_data: AllocationCreate,
    staff: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    """
    Allocate a bed to a student. Staff only.

    The bed is claimed with a conditional update before the allocation is
    recorded, so concurrent requests for one bed yield exactly one 201 and
    409 for the rest.
    """
    allocation = await allocation_service.allocate(db, allocation_data)
    # Commit first so a concurrent read cannot re-cache the old listing
    await db.commit()
    await invalidate_room_cache()
    return allocation


@router.get("/recent", response_model=list[RecentAllocationResponse])
async def recent_allocations_endpoint(
    limit: int = Query(5, ge=1, le=100),
    staff: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    """Most recent allocations with student and room display fields. Staff only."""
    return await allocation_service.list_recent_allocations(db, limit)


@router.get("/students/{student_id}", response_model=AllocationDetailResponse)
async def student_allocation_endpoint(
    student_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """The student's active allocation with room and bed. Self or staff."""
    if user.role != UserRole.STAFF and user.id != student_id:
        raise ForbiddenError("Not authorized to view this allocation")
    return await allocation_service.get_student_allocation(db, student_id)


@router.put("/{allocation_id}", response_model=AllocationResponse)
async def update_allocation_endpoint(
    allocation_id: int,
    allocation_data: AllocationUpdate,
    staff: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    """Edit end date or payment status without ending the stay. Staff only."""
    return await allocation_service.update_allocation(db, allocation_id, allocation_data)


@router.delete("/{allocation_id}", response_model=AllocationEndResponse)
async def end_allocation_endpoint(
    allocation_id: int,
    staff: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    """End an allocation and free its bed. The record is kept as history. Staff only."""
    allocation = await allocation_service.end_allocation(db, allocation_id)
    await db.commit()
    await invalidate_room_cache()
    return AllocationEndResponse(
        message="Allocation ended successfully",
        allocation_id=allocation.id,
        active=allocation.active,
        end_date=allocation.end_date,
    )
