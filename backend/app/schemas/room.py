"""
Pydantic schemas for room and bed request/response validation.
"""

from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional
from pydantic import BaseModel, Field

RoomStatusLiteral = Literal["available", "occupied", "maintenance", "full"]


class RoomCreate(BaseModel):
    room_number: str = Field(..., min_length=1, max_length=50)
    floor: int
    building: Optional[str] = Field(None, max_length=100)
    capacity: int = Field(..., gt=0, le=100)
    type: str = Field(..., min_length=1, max_length=50)
    amenities: list[str] = Field(default_factory=list)
    price: Optional[Decimal] = Field(None, ge=0)
    status: Optional[RoomStatusLiteral] = None


class RoomUpdate(BaseModel):
    """All fields optional; only the ones sent are applied."""

    room_number: Optional[str] = Field(None, min_length=1, max_length=50)
    floor: Optional[int] = None
    building: Optional[str] = Field(None, max_length=100)
    capacity: Optional[int] = Field(None, gt=0, le=100)
    type: Optional[str] = Field(None, min_length=1, max_length=50)
    amenities: Optional[list[str]] = None
    price: Optional[Decimal] = Field(None, ge=0)
    status: Optional[RoomStatusLiteral] = None


class RoomResponse(BaseModel):
    id: int
    room_number: str
    floor: int
    building: Optional[str]
    capacity: int
    type: str
    amenities: list[str]
    price: Optional[Decimal]
    occupied_count: int
    status: str
    created_at: datetime

    model_config = {"from_attributes": True}


class AvailableRoomResponse(RoomResponse):
    available_beds: int


class BedResponse(BaseModel):
    id: int
    room_id: int
    bed_number: int
    status: str
    occupied_by: Optional[int]

    model_config = {"from_attributes": True}


class BedStatusUpdate(BaseModel):
    # occupied is reserved for the allocation ledger
    status: Literal["available", "maintenance"]


class RoomWithBedsResponse(BaseModel):
    room: RoomResponse
    beds: list[BedResponse]


class RoomDeleteResponse(BaseModel):
    message: str
    room_id: int
