from app.models.user import User, UserRole
from app.models.room import Room, RoomStatus
from app.models.bed import Bed, BedStatus
from app.models.allocation import Allocation, PaymentStatus
from app.models.maintenance_request import MaintenanceRequest, MaintenanceStatus, MaintenancePriority

__all__ = [
    "User", "UserRole",
    "Room", "RoomStatus",
    "Bed", "BedStatus",
    "Allocation", "PaymentStatus",
    "MaintenanceRequest", "MaintenanceStatus", "MaintenancePriority",
]
