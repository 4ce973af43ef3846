"""
Maintenance request endpoints.
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.models.user import User
from app.schemas.maintenance import (
    MaintenanceRequestCreate, MaintenanceRequestResponse, PendingMaintenanceResponse,
)
from app.services import maintenance_service
from app.core.security import get_current_user, require_staff

router = APIRouter(prefix="/maintenance", tags=["Maintenance"])


@router.post("/", response_model=MaintenanceRequestResponse, status_code=status.HTTP_201_CREATED)
async def create_maintenance_request_endpoint(
    request_data: MaintenanceRequestCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Report a problem with a room. Any signed-in user."""
    return await maintenance_service.create_request(db, request_data, reported_by=user.id)


@router.get("/pending", response_model=list[PendingMaintenanceResponse])
async def pending_maintenance_endpoint(
    limit: int = Query(5, ge=1, le=100),
    staff: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    """Open maintenance requests, newest first. Staff only."""
    return await maintenance_service.list_pending(db, limit)
