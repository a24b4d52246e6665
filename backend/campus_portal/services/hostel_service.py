"""
Hostel Service - rooms, allocations and service requests

Room occupancy moves only through conditional UPDATEs
(``current_occupancy < capacity`` to take a bed, ``> 0`` to free one),
committed together with the allocation change that caused them.
"""

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func, desc
from sqlalchemy.orm import selectinload
from datetime import datetime
from typing import Optional, Dict, Any

from campus_portal.core.exceptions import (
    ResourceNotFoundError, AuthorizationError, BusinessRuleError, DuplicateResourceError,
    ValidationError, InvalidStatusError, AlreadyAllocatedError, RoomFullError,
    RoomUnavailableError, NoActiveAllocationError, DuplicateRequestError,
)
from campus_portal.core.logging_config import logger
from campus_portal.core.permissions import Capability, ensure_owner_or_capability, has_capability
from campus_portal.models.user import User
from campus_portal.models.hostel import (
    HostelRoom, HostelAllocation, HostelServiceRequest, AllocationStatus, MaintenanceStatus,
    ServiceRequestStatus, ServiceRequestType, ServiceRequestPriority,
    ACTIVE_ALLOCATION_STATUSES, STUDENT_ALLOCATION_TRANSITIONS, OPEN_SERVICE_REQUEST_STATUSES,
)
from campus_portal.schemas.hostel import (
    RoomCreate, RoomUpdate, AllocationCreate, AllocationStatusUpdate, ReassignRequest,
    ServiceRequestCreate, ChangeRequestCreate, ServiceRequestUpdate, FeedbackCreate,
)
from campus_portal.utils.pagination import paginate


class HostelService:
    """Service for hostel rooms, allocations and service tickets"""

    # ==================== OCCUPANCY ====================

    async def _take_bed(self, db: AsyncSession, room_id: str) -> bool:
        result = await db.execute(
            update(HostelRoom)
            .where(HostelRoom.id == room_id, HostelRoom.current_occupancy < HostelRoom.capacity)
            .values(current_occupancy=HostelRoom.current_occupancy + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def _free_bed(self, db: AsyncSession, room_id: str) -> bool:
        result = await db.execute(
            update(HostelRoom)
            .where(HostelRoom.id == room_id, HostelRoom.current_occupancy > 0)
            .values(current_occupancy=HostelRoom.current_occupancy - 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def _lowest_free_bed(self, db: AsyncSession, room: HostelRoom, exclude_id: Optional[str] = None) -> int:
        """Lowest bed number in 1..capacity not held by an active allocation in ``room``"""
        query = select(HostelAllocation.bed_number).where(
            HostelAllocation.room_id == room.id,
            HostelAllocation.status.in_(ACTIVE_ALLOCATION_STATUSES),
            HostelAllocation.bed_number.is_not(None),
        )
        if exclude_id is not None:
            query = query.where(HostelAllocation.id != exclude_id)
        taken = set((await db.execute(query)).scalars().all())
        for bed in range(1, room.capacity + 1):
            if bed not in taken:
                return bed
        return room.capacity

    async def _active_allocation(self, db: AsyncSession, user_id: str) -> Optional[HostelAllocation]:
        result = await db.execute(
            select(HostelAllocation)
            .options(selectinload(HostelAllocation.room))
            .where(
                HostelAllocation.user_id == user_id,
                HostelAllocation.status.in_(ACTIVE_ALLOCATION_STATUSES),
            )
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    # ==================== ROOMS ====================

    async def list_rooms(
        self,
        db: AsyncSession,
        block: Optional[str] = None,
        floor: Optional[int] = None,
        room_type=None,
        availability: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Dict[str, Any]:
        query = select(HostelRoom)
        if block:
            query = query.where(HostelRoom.block == block.strip().upper())
        if floor is not None:
            query = query.where(HostelRoom.floor == floor)
        if room_type:
            query = query.where(HostelRoom.room_type == room_type)
        if availability == "available":
            query = query.where(
                HostelRoom.is_active.is_(True),
                HostelRoom.maintenance_status == MaintenanceStatus.GOOD,
                HostelRoom.current_occupancy < HostelRoom.capacity,
            )
        elif availability == "full":
            query = query.where(HostelRoom.current_occupancy >= HostelRoom.capacity)

        query = query.order_by(HostelRoom.block, HostelRoom.floor, HostelRoom.room_number)
        return await paginate(db, query, page, limit)

    async def get_room(self, db: AsyncSession, room_id: str) -> HostelRoom:
        room = await db.get(HostelRoom, room_id, populate_existing=True)
        if room is None:
            raise ResourceNotFoundError("Room", room_id)
        return room

    async def create_room(self, db: AsyncSession, data: RoomCreate) -> HostelRoom:
        existing = await db.execute(select(HostelRoom.id).where(HostelRoom.room_number == data.room_number))
        if existing.scalar_one_or_none():
            raise DuplicateResourceError("Room number already exists", field="room_number")

        room = HostelRoom(**data.model_dump(), current_occupancy=0)
        db.add(room)
        await db.commit()
        await db.refresh(room)
        logger.log_domain_event("hostel", "room_created", room=room.room_number, capacity=room.capacity)
        return room

    async def update_room(self, db: AsyncSession, room_id: str, data: RoomUpdate) -> HostelRoom:
        room = await self.get_room(db, room_id)
        changes = data.model_dump(exclude_unset=True)

        if changes.get("capacity") is not None and changes["capacity"] < room.current_occupancy:
            raise BusinessRuleError(
                "Capacity cannot be less than current occupancy",
                details={"current_occupancy": room.current_occupancy},
            )

        for field, value in changes.items():
            if value is None and field != "description":
                continue
            setattr(room, field, value)

        await db.commit()
        await db.refresh(room)
        return room

    async def delete_room(self, db: AsyncSession, room_id: str) -> None:
        room = await self.get_room(db, room_id)
        active = await db.execute(
            select(func.count(HostelAllocation.id)).where(
                HostelAllocation.room_id == room.id,
                HostelAllocation.status.in_(ACTIVE_ALLOCATION_STATUSES),
            )
        )
        if room.current_occupancy > 0 or active.scalar():
            raise BusinessRuleError("Cannot delete a room with active allocations")

        await db.delete(room)
        await db.commit()
        logger.log_domain_event("hostel", "room_deleted", room=str(room_id))

    # ==================== ALLOCATIONS ====================

    async def request_allocation(self, db: AsyncSession, user: User, data: AllocationCreate) -> HostelAllocation:
        """
        Allocate a bed in ``data.room_id`` to ``user``.

        Raises:
            AlreadyAllocatedError: user already holds an active allocation
            ResourceNotFoundError: room does not exist
            RoomUnavailableError: room inactive or not in good repair
            RoomFullError: the conditional increment matched no row
        """
        if await self._active_allocation(db, user.id) is not None:
            raise AlreadyAllocatedError()

        room = await self.get_room(db, data.room_id)
        if not room.is_active:
            raise RoomUnavailableError("Room is not active")
        if room.maintenance_status != MaintenanceStatus.GOOD:
            raise RoomUnavailableError(f"Room is {room.maintenance_status.value}")

        if not await self._take_bed(db, room.id):
            raise RoomFullError()

        allocation = HostelAllocation(
            user_id=user.id,
            room_id=room.id,
            academic_year=data.academic_year,
            semester=data.semester,
            notes=data.notes,
            status=AllocationStatus.ALLOCATED,
            allocated_date=datetime.utcnow(),
            bed_number=await self._lowest_free_bed(db, room),
        )
        db.add(allocation)
        await db.commit()

        await db.refresh(room)
        logger.log_domain_event(
            "hostel", "room_allocated",
            user=str(user.id), room=room.room_number, occupancy=room.current_occupancy,
        )
        return await self.get_allocation(db, allocation.id)

    async def get_allocation(self, db: AsyncSession, allocation_id: str) -> HostelAllocation:
        result = await db.execute(
            select(HostelAllocation)
            .options(selectinload(HostelAllocation.room))
            .where(HostelAllocation.id == allocation_id)
            .execution_options(populate_existing=True)
        )
        allocation = result.scalar_one_or_none()
        if allocation is None:
            raise ResourceNotFoundError("Allocation", allocation_id)
        return allocation

    async def list_allocations(
        self,
        db: AsyncSession,
        user: User,
        status: Optional[AllocationStatus] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Dict[str, Any]:
        query = select(HostelAllocation).options(selectinload(HostelAllocation.room))
        if not has_capability(user.role, Capability.VIEW_ALL_ALLOCATIONS):
            query = query.where(HostelAllocation.user_id == user.id)
        if status:
            query = query.where(HostelAllocation.status == status)
        query = query.order_by(desc(HostelAllocation.allocated_date))
        return await paginate(db, query, page, limit)

    async def update_allocation_status(
        self,
        db: AsyncSession,
        allocation_id: str,
        user: User,
        data: AllocationStatusUpdate,
    ) -> HostelAllocation:
        try:
            new_status = AllocationStatus(data.status)
        except ValueError:
            raise InvalidStatusError("Invalid status", status=data.status)

        allocation = await self.get_allocation(db, allocation_id)
        is_manager = has_capability(user.role, Capability.MANAGE_ALLOCATIONS)
        if not is_manager and str(allocation.user_id) != str(user.id):
            raise AuthorizationError("You can only update your own allocation")

        old_status = allocation.status
        if new_status != old_status and not is_manager:
            if new_status not in STUDENT_ALLOCATION_TRANSITIONS.get(old_status, set()):
                raise InvalidStatusError("Invalid status transition", status=new_status.value)

        was_active = old_status in ACTIVE_ALLOCATION_STATUSES
        now_active = new_status in ACTIVE_ALLOCATION_STATUSES

        if was_active and not now_active:
            await self._free_bed(db, allocation.room_id)
        elif now_active and not was_active:
            other = await self._active_allocation(db, allocation.user_id)
            if other is not None and other.id != allocation.id:
                raise AlreadyAllocatedError()
            if not await self._take_bed(db, allocation.room_id):
                raise RoomFullError()
            allocation.bed_number = await self._lowest_free_bed(db, allocation.room, exclude_id=allocation.id)

        allocation.status = new_status
        if data.check_in_date is not None:
            allocation.check_in_date = data.check_in_date
        if data.check_out_date is not None:
            allocation.check_out_date = data.check_out_date
        if data.notes is not None:
            allocation.notes = data.notes
        allocation.stamp_dates()
        try:
            allocation.validate_dates()
        except ValueError as e:
            await db.rollback()
            raise ValidationError(str(e))

        await db.commit()
        logger.log_domain_event(
            "hostel", "allocation_status_changed",
            allocation=str(allocation.id), old=old_status.value, new=new_status.value,
        )
        return await self.get_allocation(db, allocation.id)

    async def delete_allocation(self, db: AsyncSession, allocation_id: str) -> None:
        allocation = await self.get_allocation(db, allocation_id)
        if allocation.is_active:
            await self._free_bed(db, allocation.room_id)
        await db.delete(allocation)
        await db.commit()
        logger.log_domain_event("hostel", "allocation_deleted", allocation=str(allocation_id))

    async def reassign_room(self, db: AsyncSession, data: ReassignRequest) -> HostelAllocation:
        allocation = await self.get_allocation(db, data.allocation_id)
        new_room = await self.get_room(db, data.new_room_id)

        if not allocation.is_active:
            raise BusinessRuleError("Allocation is not active")
        if str(allocation.room_id) == str(new_room.id):
            raise BusinessRuleError("Allocation is already in this room")
        if not new_room.is_active or new_room.maintenance_status != MaintenanceStatus.GOOD:
            raise RoomUnavailableError("New room is not available")

        if not await self._take_bed(db, new_room.id):
            raise RoomFullError("New room is at full capacity")
        await self._free_bed(db, allocation.room_id)

        old_room_id = allocation.room_id
        allocation.room_id = new_room.id
        allocation.bed_number = await self._lowest_free_bed(db, new_room, exclude_id=allocation.id)
        if data.reason:
            allocation.notes = data.reason

        await db.commit()
        logger.log_domain_event(
            "hostel", "room_reassigned",
            allocation=str(allocation.id), old_room=str(old_room_id), new_room=str(new_room.id),
        )
        return await self.get_allocation(db, allocation.id)

    async def get_my_room(self, db: AsyncSession, user: User) -> Dict[str, Any]:
        allocation = await self._active_allocation(db, user.id)
        if allocation is None:
            raise ResourceNotFoundError("Allocation", message="No room allocation found")

        roommates = await db.execute(
            select(User.id, User.full_name, User.student_id, HostelAllocation.bed_number)
            .join(HostelAllocation, HostelAllocation.user_id == User.id)
            .where(
                HostelAllocation.room_id == allocation.room_id,
                HostelAllocation.status.in_(ACTIVE_ALLOCATION_STATUSES),
                HostelAllocation.user_id != user.id,
            )
        )
        return {
            "allocation": allocation,
            "roommates": [
                {"id": r.id, "name": r.full_name, "student_id": r.student_id, "bed_number": r.bed_number}
                for r in roommates.all()
            ],
        }

    async def stats(self, db: AsyncSession) -> Dict[str, Any]:
        rooms = (await db.execute(
            select(
                func.count(HostelRoom.id),
                func.coalesce(func.sum(HostelRoom.capacity), 0),
                func.coalesce(func.sum(HostelRoom.current_occupancy), 0),
            )
        )).one()
        occupied = await db.execute(select(func.count(HostelRoom.id)).where(HostelRoom.current_occupancy > 0))

        async def count_allocations(status):
            r = await db.execute(select(func.count(HostelAllocation.id)).where(HostelAllocation.status == status))
            return r.scalar() or 0

        async def count_requests(*statuses):
            r = await db.execute(
                select(func.count(HostelServiceRequest.id)).where(HostelServiceRequest.status.in_(statuses))
            )
            return r.scalar() or 0

        total_rooms, capacity, occupancy = rooms[0], int(rooms[1]), int(rooms[2])
        occupied_rooms = occupied.scalar() or 0
        return {
            "total_rooms": total_rooms,
            "occupied_rooms": occupied_rooms,
            "available_rooms": total_rooms - occupied_rooms,
            "total_capacity": capacity,
            "current_occupancy": occupancy,
            "occupancy_rate": round(occupancy / capacity * 100, 2) if capacity else 0,
            "pending_allocations": await count_allocations(AllocationStatus.ALLOCATED),
            "active_allocations": await count_allocations(AllocationStatus.CHECKED_IN),
            "pending_service_requests": await count_requests(
                ServiceRequestStatus.SUBMITTED, ServiceRequestStatus.ACKNOWLEDGED,
            ),
            "in_progress_service_requests": await count_requests(ServiceRequestStatus.IN_PROGRESS),
        }

    # ==================== SERVICE REQUESTS ====================

    async def get_service_request(self, db: AsyncSession, request_id: str) -> HostelServiceRequest:
        request = await db.get(HostelServiceRequest, request_id)
        if request is None:
            raise ResourceNotFoundError("Service request", request_id)
        return request

    async def create_change_request(self, db: AsyncSession, user: User, data: ChangeRequestCreate) -> HostelServiceRequest:
        allocation = await self._active_allocation(db, user.id)
        if allocation is None:
            raise NoActiveAllocationError()

        pending = await db.execute(
            select(HostelServiceRequest.id).where(
                HostelServiceRequest.user_id == user.id,
                HostelServiceRequest.request_type == ServiceRequestType.ROOM_CHANGE,
                HostelServiceRequest.status.in_(OPEN_SERVICE_REQUEST_STATUSES),
            ).limit(1)
        )
        if pending.scalar_one_or_none():
            raise DuplicateRequestError()

        if data.requested_room_id:
            await self.get_room(db, data.requested_room_id)

        request = HostelServiceRequest(
            user_id=user.id,
            room_id=allocation.room_id,
            requested_room_id=data.requested_room_id,
            request_type=ServiceRequestType.ROOM_CHANGE,
            title="Room change request",
            description=data.reason,
            priority=data.priority,
            status=ServiceRequestStatus.SUBMITTED,
        )
        db.add(request)
        await db.commit()
        await db.refresh(request)
        logger.log_domain_event("hostel", "room_change_requested", user=str(user.id), request=str(request.id))
        return request

    async def create_service_request(self, db: AsyncSession, user: User, data: ServiceRequestCreate) -> HostelServiceRequest:
        if data.room_id and has_capability(user.role, Capability.MANAGE_SERVICE_REQUESTS):
            room_id = (await self.get_room(db, data.room_id)).id
        else:
            allocation = await self._active_allocation(db, user.id)
            if allocation is None:
                raise NoActiveAllocationError()
            room_id = allocation.room_id

        if data.scheduled_date is not None and data.scheduled_date < datetime.utcnow():
            raise ValidationError("Scheduled date cannot be in the past", field="scheduled_date")

        request = HostelServiceRequest(
            user_id=user.id,
            room_id=room_id,
            request_type=data.request_type,
            title=data.title,
            description=data.description,
            priority=data.priority,
            scheduled_date=data.scheduled_date,
            status=ServiceRequestStatus.SUBMITTED,
        )
        db.add(request)
        await db.commit()
        await db.refresh(request)
        logger.log_domain_event(
            "hostel", "service_request_created",
            request=str(request.id), type=request.request_type.value, priority=request.priority.value,
        )
        return request

    async def list_service_requests(
        self,
        db: AsyncSession,
        user: User,
        status: Optional[ServiceRequestStatus] = None,
        request_type: Optional[ServiceRequestType] = None,
        priority: Optional[ServiceRequestPriority] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Dict[str, Any]:
        query = select(HostelServiceRequest)
        if not has_capability(user.role, Capability.MANAGE_SERVICE_REQUESTS):
            query = query.where(HostelServiceRequest.user_id == user.id)
        if status:
            query = query.where(HostelServiceRequest.status == status)
        if request_type:
            query = query.where(HostelServiceRequest.request_type == request_type)
        if priority:
            query = query.where(HostelServiceRequest.priority == priority)
        query = query.order_by(desc(HostelServiceRequest.created_at))
        return await paginate(db, query, page, limit)

    async def update_service_request(self, db: AsyncSession, request_id: str,
                                     data: ServiceRequestUpdate) -> HostelServiceRequest:
        request = await self.get_service_request(db, request_id)
        changes = data.model_dump(exclude_unset=True)

        new_status = changes.pop("status", None)
        if new_status is not None:
            if not request.can_transition_to(new_status):
                raise InvalidStatusError("Invalid status transition", status=new_status.value)
            request.status = new_status

        if changes.get("assigned_to") and not request.can_assign:
            raise BusinessRuleError("Cannot assign a closed service request")

        for field, value in changes.items():
            if value is not None:
                setattr(request, field, value)

        await db.commit()
        await db.refresh(request)
        logger.log_domain_event("hostel", "service_request_updated", request=str(request.id),
                                status=request.status.value)
        return request

    async def cancel_service_request(self, db: AsyncSession, request_id: str, user: User) -> HostelServiceRequest:
        request = await self.get_service_request(db, request_id)
        ensure_owner_or_capability(
            user, request.user_id, Capability.MANAGE_SERVICE_REQUESTS,
            "You can only cancel your own service requests",
        )
        if not request.can_cancel:
            raise BusinessRuleError("Service request cannot be cancelled in its current status")

        request.status = ServiceRequestStatus.CANCELLED
        await db.commit()
        await db.refresh(request)
        return request

    async def submit_feedback(self, db: AsyncSession, request_id: str, user: User,
                              data: FeedbackCreate) -> HostelServiceRequest:
        request = await self.get_service_request(db, request_id)
        if str(request.user_id) != str(user.id):
            raise AuthorizationError("You can only give feedback on your own service requests")
        if request.status != ServiceRequestStatus.RESOLVED:
            raise BusinessRuleError("Feedback can only be given on resolved service requests")
        if request.feedback_rating is not None:
            raise DuplicateResourceError("Feedback already submitted")

        request.feedback_rating = data.rating
        request.feedback_comment = data.comment
        request.feedback_submitted_at = datetime.utcnow()
        await db.commit()
        await db.refresh(request)
        return request

    async def delete_service_request(self, db: AsyncSession, request_id: str) -> None:
        request = await self.get_service_request(db, request_id)
        await db.delete(request)
        await db.commit()


# Singleton instance
hostel_service = HostelService()
