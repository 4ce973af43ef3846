from app.schemas.user import UserCreate, UserResponse, UserLogin, Token
from app.schemas.room import (
    RoomCreate, RoomUpdate, RoomResponse, AvailableRoomResponse,
    BedResponse, BedStatusUpdate, RoomWithBedsResponse, RoomDeleteResponse,
)
from app.schemas.allocation import (
    AllocationCreate, AllocationUpdate, AllocationResponse, AllocationDetailResponse,
    AllocationEndResponse, RecentAllocationResponse,
)
from app.schemas.maintenance import (
    MaintenanceRequestCreate, MaintenanceRequestResponse, PendingMaintenanceResponse,
)

__all__ = [
    "UserCreate", "UserResponse", "UserLogin", "Token",
    "RoomCreate", "RoomUpdate", "RoomResponse", "AvailableRoomResponse",
    "BedResponse", "BedStatusUpdate", "RoomWithBedsResponse", "RoomDeleteResponse",
    "AllocationCreate", "AllocationUpdate", "AllocationResponse", "AllocationDetailResponse",
    "AllocationEndResponse", "RecentAllocationResponse",
    "MaintenanceRequestCreate", "MaintenanceRequestResponse", "PendingMaintenanceResponse",
]
