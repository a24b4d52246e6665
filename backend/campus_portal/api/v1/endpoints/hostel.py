"""
Hostel API Endpoints

Rooms:
- GET/POST /hostel/rooms, GET/PUT/DELETE /hostel/rooms/{id}
Allocations:
- GET/POST /hostel/allocations, PUT/DELETE /hostel/allocations/{id}
- PUT /hostel/reassign-room, POST /hostel/change-request, GET /hostel/my-room
Service requests:
- GET/POST /hostel/service-requests, PUT/DELETE /hostel/service-requests/{id}
- POST /hostel/service-requests/{id}/cancel, POST /hostel/service-requests/{id}/feedback
Reports:
- GET /hostel/stats
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Literal, Optional

from campus_portal.core.database import get_db
from campus_portal.core.permissions import Capability
from campus_portal.models.user import User
from campus_portal.models.hostel import (
    AllocationStatus, RoomType, ServiceRequestPriority, ServiceRequestStatus, ServiceRequestType,
)
from campus_portal.modules.auth.dependencies import get_current_user, require_capability
from campus_portal.schemas.common import success_response
from campus_portal.schemas.hostel import (
    RoomCreate, RoomUpdate, RoomResponse,
    AllocationCreate, AllocationStatusUpdate, ReassignRequest, AllocationResponse,
    ServiceRequestCreate, ChangeRequestCreate, ServiceRequestUpdate, FeedbackCreate, ServiceRequestResponse,
)
from campus_portal.services.hostel_service import hostel_service

router = APIRouter(prefix="/hostel", tags=["Hostel"])


# ==================== ROOMS ====================

@router.get("/rooms")
async def list_rooms(
    block: Optional[str] = None,
    floor: Optional[int] = Query(None, ge=0),
    room_type: Optional[RoomType] = None,
    availability: Optional[Literal["available", "full"]] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    result = await hostel_service.list_rooms(db, block, floor, room_type, availability, page, limit)
    return success_response(data={
        "rooms": [RoomResponse.model_validate(r) for r in result["items"]],
        "pagination": result["pagination"],
    })


@router.post("/rooms", status_code=status.HTTP_201_CREATED)
async def create_room(
    data: RoomCreate,
    current_user: User = Depends(require_capability(Capability.MANAGE_ROOMS)),
    db: AsyncSession = Depends(get_db)
):
    room = await hostel_service.create_room(db, data)
    return success_response("Room created successfully", RoomResponse.model_validate(room))


@router.get("/rooms/{room_id}")
async def get_room(
    room_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    room = await hostel_service.get_room(db, room_id)
    return success_response(data=RoomResponse.model_validate(room))


@router.put("/rooms/{room_id}")
async def update_room(
    room_id: str,
    data: RoomUpdate,
    current_user: User = Depends(require_capability(Capability.MANAGE_ROOMS)),
    db: AsyncSession = Depends(get_db)
):
    room = await hostel_service.update_room(db, room_id, data)
    return success_response("Room updated successfully", RoomResponse.model_validate(room))


@router.delete("/rooms/{room_id}")
async def delete_room(
    room_id: str,
    current_user: User = Depends(require_capability(Capability.MANAGE_ROOMS)),
    db: AsyncSession = Depends(get_db)
):
    await hostel_service.delete_room(db, room_id)
    return success_response("Room deleted successfully")


# ==================== ALLOCATIONS ====================

@router.get("/allocations")
async def list_allocations(
    status_filter: Optional[AllocationStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    result = await hostel_service.list_allocations(db, current_user, status_filter, page, limit)
    return success_response(data={
        "allocations": [AllocationResponse.from_allocation(a) for a in result["items"]],
        "pagination": result["pagination"],
    })


@router.post("/allocations", status_code=status.HTTP_201_CREATED)
async def request_allocation(
    data: AllocationCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Take a bed in a room; one active allocation per student"""
    allocation = await hostel_service.request_allocation(db, current_user, data)
    return success_response("Room allocated successfully", AllocationResponse.from_allocation(allocation))


@router.put("/allocations/{allocation_id}")
async def update_allocation_status(
    allocation_id: str,
    data: AllocationStatusUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    allocation = await hostel_service.update_allocation_status(db, allocation_id, current_user, data)
    return success_response("Allocation updated successfully", AllocationResponse.from_allocation(allocation))


@router.delete("/allocations/{allocation_id}")
async def delete_allocation(
    allocation_id: str,
    current_user: User = Depends(require_capability(Capability.MANAGE_ALLOCATIONS)),
    db: AsyncSession = Depends(get_db)
):
    await hostel_service.delete_allocation(db, allocation_id)
    return success_response("Allocation deleted successfully")


@router.put("/reassign-room")
async def reassign_room(
    data: ReassignRequest,
    current_user: User = Depends(require_capability(Capability.MANAGE_ALLOCATIONS)),
    db: AsyncSession = Depends(get_db)
):
    allocation = await hostel_service.reassign_room(db, data)
    return success_response("Room reassigned successfully", AllocationResponse.from_allocation(allocation))


@router.post("/change-request", status_code=status.HTTP_201_CREATED)
async def create_change_request(
    data: ChangeRequestCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    request = await hostel_service.create_change_request(db, current_user, data)
    return success_response("Room change request submitted", ServiceRequestResponse.model_validate(request))


@router.get("/my-room")
async def my_room(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    result = await hostel_service.get_my_room(db, current_user)
    return success_response(data={
        "allocation": AllocationResponse.from_allocation(result["allocation"]),
        "roommates": result["roommates"],
    })


@router.get("/stats")
async def hostel_stats(
    current_user: User = Depends(require_capability(Capability.VIEW_REPORTS)),
    db: AsyncSession = Depends(get_db)
):
    return success_response(data=await hostel_service.stats(db))


# ==================== SERVICE REQUESTS ====================

@router.get("/service-requests")
async def list_service_requests(
    status_filter: Optional[ServiceRequestStatus] = Query(None, alias="status"),
    request_type: Optional[ServiceRequestType] = Query(None, alias="type"),
    priority: Optional[ServiceRequestPriority] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    result = await hostel_service.list_service_requests(
        db, current_user, status_filter, request_type, priority, page, limit,
    )
    return success_response(data={
        "requests": [ServiceRequestResponse.model_validate(r) for r in result["items"]],
        "pagination": result["pagination"],
    })


@router.post("/service-requests", status_code=status.HTTP_201_CREATED)
async def create_service_request(
    data: ServiceRequestCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    request = await hostel_service.create_service_request(db, current_user, data)
    return success_response("Service request submitted", ServiceRequestResponse.model_validate(request))


@router.put("/service-requests/{request_id}")
async def update_service_request(
    request_id: str,
    data: ServiceRequestUpdate,
    current_user: User = Depends(require_capability(Capability.MANAGE_SERVICE_REQUESTS)),
    db: AsyncSession = Depends(get_db)
):
    request = await hostel_service.update_service_request(db, request_id, data)
    return success_response("Service request updated", ServiceRequestResponse.model_validate(request))


@router.delete("/service-requests/{request_id}")
async def delete_service_request(
    request_id: str,
    current_user: User = Depends(require_capability(Capability.MANAGE_SERVICE_REQUESTS)),
    db: AsyncSession = Depends(get_db)
):
    await hostel_service.delete_service_request(db, request_id)
    return success_response("Service request deleted")


@router.post("/service-requests/{request_id}/cancel")
async def cancel_service_request(
    request_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    request = await hostel_service.cancel_service_request(db, request_id, current_user)
    return success_response("Service request cancelled", ServiceRequestResponse.model_validate(request))


@router.post("/service-requests/{request_id}/feedback")
async def submit_feedback(
    request_id: str,
    data: FeedbackCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    request = await hostel_service.submit_feedback(db, request_id, current_user, data)
    return success_response("Feedback submitted", ServiceRequestResponse.model_validate(request))
