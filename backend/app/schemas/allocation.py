"""
Pydantic schemas for allocation request/response validation.
"""

from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel

from app.schemas.room import BedResponse, RoomResponse

PaymentStatusLiteral = Literal["pending", "paid", "overdue", "refunded"]


class AllocationCreate(BaseModel):
    student_id: int
    room_id: int
    bed_id: int
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    payment_status: Optional[PaymentStatusLiteral] = None


class AllocationUpdate(BaseModel):
    end_date: Optional[datetime] = None
    payment_status: Optional[PaymentStatusLiteral] = None


class AllocationResponse(BaseModel):
    id: int
    student_id: int
    room_id: Optional[int]
    bed_id: Optional[int]
    start_date: datetime
    end_date: Optional[datetime]
    payment_status: str
    active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class AllocationDetailResponse(AllocationResponse):
    room: Optional[RoomResponse]
    bed: Optional[BedResponse]


class AllocationEndResponse(BaseModel):
    message: str
    allocation_id: int
    active: bool
    end_date: datetime


class RecentAllocationResponse(BaseModel):
    id: int
    room_number: str
    type: str
    student_name: str
    date: datetime
    start_date: datetime
    end_date: Optional[datetime]
    status: Literal["Active", "Ended"]
