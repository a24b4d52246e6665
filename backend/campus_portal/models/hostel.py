"""
Hostel Models
- HostelRoom with capacity / occupancy counters
- HostelAllocation lifecycle (allocated -> checked_in -> checked_out, or cancelled)
- HostelServiceRequest tickets (maintenance, cleaning, room change, ...)
"""

from sqlalchemy import (
    Column, String, Boolean, DateTime, Enum as SQLEnum, Integer, Text, ForeignKey, Float, JSON,
    CheckConstraint, event,
)
from sqlalchemy.orm import relationship, validates
from datetime import datetime
from typing import Optional
import enum

from campus_portal.core.database import Base
from campus_portal.core.types import GUID, generate_uuid


class RoomType(str, enum.Enum):
    SINGLE = "single"
    DOUBLE = "double"
    TRIPLE = "triple"
    QUAD = "quad"


class MaintenanceStatus(str, enum.Enum):
    GOOD = "good"
    NEEDS_REPAIR = "needs_repair"
    UNDER_MAINTENANCE = "under_maintenance"
    OUT_OF_ORDER = "out_of_order"


class AllocationStatus(str, enum.Enum):
    ALLOCATED = "allocated"
    CHECKED_IN = "checked_in"
    CHECKED_OUT = "checked_out"
    CANCELLED = "cancelled"


ACTIVE_ALLOCATION_STATUSES = (AllocationStatus.ALLOCATED, AllocationStatus.CHECKED_IN)

# Transitions a student may make on their own allocation
STUDENT_ALLOCATION_TRANSITIONS = {
    AllocationStatus.ALLOCATED: {AllocationStatus.CHECKED_IN, AllocationStatus.CANCELLED},
    AllocationStatus.CHECKED_IN: {AllocationStatus.CHECKED_OUT},
}


class ServiceRequestType(str, enum.Enum):
    MAINTENANCE = "maintenance"
    CLEANING = "cleaning"
    PEST_CONTROL = "pest_control"
    ELECTRICAL = "electrical"
    PLUMBING = "plumbing"
    FURNITURE = "furniture"
    ROOM_CHANGE = "room_change"
    OTHER = "other"


class ServiceRequestPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class ServiceRequestStatus(str, enum.Enum):
    SUBMITTED = "submitted"
    ACKNOWLEDGED = "acknowledged"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CANCELLED = "cancelled"


SERVICE_REQUEST_TRANSITIONS = {
    ServiceRequestStatus.SUBMITTED: {
        ServiceRequestStatus.ACKNOWLEDGED, ServiceRequestStatus.IN_PROGRESS,
        ServiceRequestStatus.RESOLVED, ServiceRequestStatus.CANCELLED,
    },
    ServiceRequestStatus.ACKNOWLEDGED: {
        ServiceRequestStatus.IN_PROGRESS, ServiceRequestStatus.RESOLVED, ServiceRequestStatus.CANCELLED,
    },
    ServiceRequestStatus.IN_PROGRESS: {ServiceRequestStatus.RESOLVED},
    ServiceRequestStatus.RESOLVED: set(),
    ServiceRequestStatus.CANCELLED: set(),
}

OPEN_SERVICE_REQUEST_STATUSES = (
    ServiceRequestStatus.SUBMITTED,
    ServiceRequestStatus.ACKNOWLEDGED,
    ServiceRequestStatus.IN_PROGRESS,
)


class HostelRoom(Base):
    """Hostel room"""
    __tablename__ = "hostel_rooms"
    __table_args__ = (
        CheckConstraint("capacity >= 1 AND capacity <= 4", name="ck_rooms_capacity"),
        CheckConstraint(
            "current_occupancy >= 0 AND current_occupancy <= capacity",
            name="ck_rooms_occupancy",
        ),
        CheckConstraint("floor >= 0 AND floor <= 50", name="ck_rooms_floor"),
    )

    id = Column(GUID, primary_key=True, default=generate_uuid)
    room_number = Column(String(20), unique=True, nullable=False, index=True)
    block = Column(String(10), nullable=False, index=True)
    floor = Column(Integer, nullable=False)
    room_type = Column(SQLEnum(RoomType), nullable=False)
    capacity = Column(Integer, nullable=False)
    current_occupancy = Column(Integer, default=0, nullable=False)

    amenities = Column(JSON, default=list)  # ["wifi", "ac", "attached_bathroom"]
    monthly_rent = Column(Float, default=0.0, nullable=False)
    security_deposit = Column(Float, default=0.0, nullable=False)
    description = Column(Text, nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)
    maintenance_status = Column(SQLEnum(MaintenanceStatus), default=MaintenanceStatus.GOOD, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    allocations = relationship("HostelAllocation", back_populates="room", foreign_keys="HostelAllocation.room_id")

    @validates("block")
    def normalize_block(self, key, value):
        return value.strip().upper() if value else value

    @property
    def is_available(self) -> bool:
        return (
            bool(self.is_active)
            and self.maintenance_status == MaintenanceStatus.GOOD
            and self.current_occupancy < self.capacity
        )

    @property
    def available_spots(self) -> int:
        return max(0, self.capacity - self.current_occupancy)

    def can_accommodate(self, count: int = 1) -> bool:
        return self.is_available and self.available_spots >= count

    def __repr__(self):
        return f"<HostelRoom {self.room_number} {self.current_occupancy}/{self.capacity}>"


class HostelAllocation(Base):
    """Assignment of a room to a user"""
    __tablename__ = "hostel_allocations"
    __table_args__ = (
        CheckConstraint("bed_number IS NULL OR (bed_number >= 1 AND bed_number <= 4)", name="ck_alloc_bed"),
        CheckConstraint("deposit_refunded <= deposit_paid", name="ck_alloc_deposit"),
    )

    id = Column(GUID, primary_key=True, default=generate_uuid)
    user_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    room_id = Column(GUID, ForeignKey("hostel_rooms.id", ondelete="CASCADE"), nullable=False, index=True)

    academic_year = Column(String(20), nullable=True)  # e.g., "2024-2025"
    semester = Column(String(20), nullable=True)
    status = Column(SQLEnum(AllocationStatus), default=AllocationStatus.ALLOCATED, nullable=False, index=True)

    allocated_date = Column(DateTime, default=datetime.utcnow, nullable=False)
    check_in_date = Column(DateTime, nullable=True)
    check_out_date = Column(DateTime, nullable=True)
    bed_number = Column(Integer, nullable=True)

    deposit_paid = Column(Float, default=0.0, nullable=False)
    deposit_refunded = Column(Float, default=0.0, nullable=False)
    rent_paid = Column(Float, default=0.0, nullable=False)
    notes = Column(String(500), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="allocations")
    room = relationship("HostelRoom", back_populates="allocations", foreign_keys=[room_id])

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_ALLOCATION_STATUSES

    @property
    def remaining_deposit(self) -> float:
        return (self.deposit_paid or 0.0) - (self.deposit_refunded or 0.0)

    def stay_duration_days(self, now: Optional[datetime] = None) -> int:
        if not self.check_in_date:
            return 0
        end = self.check_out_date or now or datetime.utcnow()
        return max(0, (end - self.check_in_date).days)

    def stamp_dates(self, now: Optional[datetime] = None) -> None:
        """Stamp check-in/check-out dates when entering those states"""
        now = now or datetime.utcnow()
        if self.status == AllocationStatus.CHECKED_IN and self.check_in_date is None:
            self.check_in_date = now
        if self.status == AllocationStatus.CHECKED_OUT:
            if self.check_in_date is None:
                self.check_in_date = self.allocated_date or now
            if self.check_out_date is None:
                self.check_out_date = now

    def validate_dates(self) -> None:
        if self.check_in_date and self.allocated_date and self.check_in_date < self.allocated_date:
            raise ValueError("Check-in date cannot be before the allocation date")
        if self.check_out_date and self.check_in_date and self.check_out_date < self.check_in_date:
            raise ValueError("Check-out date cannot be before the check-in date")

    def __repr__(self):
        return f"<HostelAllocation {self.user_id} -> {self.room_id} {self.status}>"


@event.listens_for(HostelAllocation, "before_insert")
@event.listens_for(HostelAllocation, "before_update")
def _allocation_before_flush(mapper, connection, target: HostelAllocation):
    target.stamp_dates()


class HostelServiceRequest(Base):
    """Maintenance / service ticket against a room"""
    __tablename__ = "hostel_service_requests"
    __table_args__ = (
        CheckConstraint(
            "feedback_rating IS NULL OR (feedback_rating >= 1 AND feedback_rating <= 5)",
            name="ck_service_feedback_rating",
        ),
    )

    id = Column(GUID, primary_key=True, default=generate_uuid)
    user_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    room_id = Column(GUID, ForeignKey("hostel_rooms.id", ondelete="CASCADE"), nullable=False, index=True)
    requested_room_id = Column(GUID, ForeignKey("hostel_rooms.id", ondelete="SET NULL"), nullable=True)

    request_type = Column(SQLEnum(ServiceRequestType), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(String(1000), nullable=False)
    priority = Column(SQLEnum(ServiceRequestPriority), default=ServiceRequestPriority.MEDIUM, nullable=False)
    status = Column(SQLEnum(ServiceRequestStatus), default=ServiceRequestStatus.SUBMITTED, nullable=False, index=True)

    assigned_to = Column(String(100), nullable=True)
    estimated_cost = Column(Float, nullable=True)
    actual_cost = Column(Float, nullable=True)
    scheduled_date = Column(DateTime, nullable=True)
    completed_date = Column(DateTime, nullable=True)

    feedback_rating = Column(Integer, nullable=True)
    feedback_comment = Column(String(500), nullable=True)
    feedback_submitted_at = Column(DateTime, nullable=True)
    admin_notes = Column(String(1000), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User")
    room = relationship("HostelRoom", foreign_keys=[room_id])
    requested_room = relationship("HostelRoom", foreign_keys=[requested_room_id])

    @property
    def can_cancel(self) -> bool:
        return self.status in (ServiceRequestStatus.SUBMITTED, ServiceRequestStatus.ACKNOWLEDGED)

    @property
    def can_assign(self) -> bool:
        return self.status not in (ServiceRequestStatus.RESOLVED, ServiceRequestStatus.CANCELLED)

    @property
    def resolution_time_hours(self) -> Optional[float]:
        if self.status != ServiceRequestStatus.RESOLVED or not self.completed_date or not self.created_at:
            return None
        return round((self.completed_date - self.created_at).total_seconds() / 3600, 2)

    def can_transition_to(self, new_status: ServiceRequestStatus) -> bool:
        if new_status == self.status:
            return True
        return new_status in SERVICE_REQUEST_TRANSITIONS.get(self.status, set())

    def __repr__(self):
        return f"<HostelServiceRequest {self.request_type} {self.status}>"


@event.listens_for(HostelServiceRequest, "before_insert")
@event.listens_for(HostelServiceRequest, "before_update")
def _service_request_before_flush(mapper, connection, target: HostelServiceRequest):
    if target.status == ServiceRequestStatus.RESOLVED and target.completed_date is None:
        target.completed_date = datetime.utcnow()
