"""
Pydantic schemas for maintenance requests.
"""

from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel, Field


class MaintenanceRequestCreate(BaseModel):
    room_id: int
    issue_type: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=2000)
    priority: Literal["low", "medium", "high", "urgent"] = "medium"
    estimated_completion_date: Optional[datetime] = None
    notes: Optional[str] = Field(None, max_length=2000)


class MaintenanceRequestResponse(BaseModel):
    id: int
    room_id: int
    reported_by: int
    issue: str
    description: str
    status: str
    priority: str
    estimated_completion_date: Optional[datetime]
    notes: Optional[str]
    created_at: datetime

    model_config = {"from_attributes": True}


class PendingMaintenanceResponse(BaseModel):
    id: int
    room_number: str
    issue: str
    status: Literal["Pending", "In Progress"]
    reported_on: datetime
