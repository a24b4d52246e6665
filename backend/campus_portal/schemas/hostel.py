from pydantic import BaseModel, Field, ConfigDict
from typing import List, Optional
from datetime import datetime

from campus_portal.models.hostel import (
    AllocationStatus, MaintenanceStatus, RoomType,
    ServiceRequestPriority, ServiceRequestStatus, ServiceRequestType,
)
from campus_portal.schemas.common import UTCDatetime


# ============================================================================
# Rooms
# ============================================================================

class RoomCreate(BaseModel):
    room_number: str = Field(..., min_length=1, max_length=20)
    block: str = Field(..., min_length=1, max_length=10)
    floor: int = Field(..., ge=0, le=50)
    room_type: RoomType
    capacity: int = Field(..., ge=1, le=4)
    amenities: List[str] = Field(default_factory=list)
    monthly_rent: float = Field(0.0, ge=0)
    security_deposit: float = Field(0.0, ge=0)
    description: Optional[str] = Field(None, max_length=1000)
    is_active: bool = True
    maintenance_status: MaintenanceStatus = MaintenanceStatus.GOOD


class RoomUpdate(BaseModel):
    block: Optional[str] = Field(None, min_length=1, max_length=10)
    floor: Optional[int] = Field(None, ge=0, le=50)
    room_type: Optional[RoomType] = None
    capacity: Optional[int] = Field(None, ge=1, le=4)
    amenities: Optional[List[str]] = None
    monthly_rent: Optional[float] = Field(None, ge=0)
    security_deposit: Optional[float] = Field(None, ge=0)
    description: Optional[str] = Field(None, max_length=1000)
    is_active: Optional[bool] = None
    maintenance_status: Optional[MaintenanceStatus] = None


class RoomResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    room_number: str
    block: str
    floor: int
    room_type: RoomType
    capacity: int
    current_occupancy: int
    available_spots: int
    is_available: bool
    amenities: List[str] = Field(default_factory=list)
    monthly_rent: float
    security_deposit: float
    description: Optional[str] = None
    is_active: bool
    maintenance_status: MaintenanceStatus


# ============================================================================
# Allocations
# ============================================================================

class AllocationCreate(BaseModel):
    room_id: str
    academic_year: Optional[str] = Field(None, max_length=20)
    semester: Optional[str] = Field(None, max_length=20)
    notes: Optional[str] = Field(None, max_length=500)


class AllocationStatusUpdate(BaseModel):
    # Kept as a plain string so an unknown value is reported as an invalid status
    status: str
    check_in_date: Optional[UTCDatetime] = None
    check_out_date: Optional[UTCDatetime] = None
    notes: Optional[str] = Field(None, max_length=500)


class ReassignRequest(BaseModel):
    allocation_id: str
    new_room_id: str
    reason: Optional[str] = Field(None, max_length=500)


class AllocationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    room_id: str
    room: Optional[RoomResponse] = None
    academic_year: Optional[str] = None
    semester: Optional[str] = None
    status: AllocationStatus
    allocated_date: datetime
    check_in_date: Optional[datetime] = None
    check_out_date: Optional[datetime] = None
    bed_number: Optional[int] = None
    deposit_paid: float
    deposit_refunded: float
    remaining_deposit: float
    rent_paid: float
    is_active: bool
    notes: Optional[str] = None

    @classmethod
    def from_allocation(cls, allocation, include_room: bool = True) -> "AllocationResponse":
        room = None
        if include_room and "room" in allocation.__dict__ and allocation.room is not None:
            room = RoomResponse.model_validate(allocation.room)
        return cls(
            id=allocation.id,
            user_id=allocation.user_id,
            room_id=allocation.room_id,
            room=room,
            academic_year=allocation.academic_year,
            semester=allocation.semester,
            status=allocation.status,
            allocated_date=allocation.allocated_date,
            check_in_date=allocation.check_in_date,
            check_out_date=allocation.check_out_date,
            bed_number=allocation.bed_number,
            deposit_paid=allocation.deposit_paid,
            deposit_refunded=allocation.deposit_refunded,
            remaining_deposit=allocation.remaining_deposit,
            rent_paid=allocation.rent_paid,
            is_active=allocation.is_active,
            notes=allocation.notes,
        )


# ============================================================================
# Service requests
# ============================================================================

class ServiceRequestCreate(BaseModel):
    request_type: ServiceRequestType
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=1000)
    priority: ServiceRequestPriority = ServiceRequestPriority.MEDIUM
    scheduled_date: Optional[UTCDatetime] = None
    room_id: Optional[str] = None  # admins may file against any room


class ChangeRequestCreate(BaseModel):
    reason: str = Field(..., min_length=1, max_length=1000)
    requested_room_id: Optional[str] = None
    priority: ServiceRequestPriority = ServiceRequestPriority.MEDIUM


class ServiceRequestUpdate(BaseModel):
    status: Optional[ServiceRequestStatus] = None
    priority: Optional[ServiceRequestPriority] = None
    assigned_to: Optional[str] = Field(None, max_length=100)
    estimated_cost: Optional[float] = Field(None, ge=0)
    actual_cost: Optional[float] = Field(None, ge=0)
    scheduled_date: Optional[UTCDatetime] = None
    admin_notes: Optional[str] = Field(None, max_length=1000)


class FeedbackCreate(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=500)


class ServiceRequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    room_id: str
    requested_room_id: Optional[str] = None
    request_type: ServiceRequestType
    title: str
    description: str
    priority: ServiceRequestPriority
    status: ServiceRequestStatus
    assigned_to: Optional[str] = None
    estimated_cost: Optional[float] = None
    actual_cost: Optional[float] = None
    scheduled_date: Optional[datetime] = None
    completed_date: Optional[datetime] = None
    feedback_rating: Optional[int] = None
    feedback_comment: Optional[str] = None
    feedback_submitted_at: Optional[datetime] = None
    admin_notes: Optional[str] = None
    can_cancel: bool
    can_assign: bool
    resolution_time_hours: Optional[float] = None
    created_at: datetime

