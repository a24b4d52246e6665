from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Literal, Optional

from campus_portal.core.database import get_db
from campus_portal.core.permissions import Capability
from campus_portal.models.user import User
from campus_portal.models.gamification import BadgeCategory, BadgeRarity
from campus_portal.modules.auth.dependencies import get_current_user, require_capability
from campus_portal.schemas.common import success_response
from campus_portal.schemas.gamification import (
    BadgeCreate, BadgeResponse, AwardBadgeRequest, AddPointsRequest, PointResponse,
)
from campus_portal.services.gamification_service import gamification_service

router = APIRouter(prefix="/gamification", tags=["Gamification"])


@router.get("/points")
async def my_points(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Total points, level, badges and recent activity"""
    profile = await gamification_service.get_profile(db, current_user.id)
    return success_response(data={
        **profile,
        "badges": [
            {"badge": BadgeResponse.model_validate(b["badge"]), "earned_at": b["earned_at"]}
            for b in profile["badges"]
        ],
        "recent_points": [PointResponse.model_validate(p) for p in profile["recent_points"]],
    })


@router.get("/badges")
async def list_badges(
    category: Optional[BadgeCategory] = None,
    rarity: Optional[BadgeRarity] = None,
    active_only: bool = True,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    badges = await gamification_service.list_badges(db, category, rarity, active_only)
    return success_response(data=[BadgeResponse.model_validate(b) for b in badges])


@router.post("/badges", status_code=status.HTTP_201_CREATED)
async def create_badge(
    data: BadgeCreate,
    current_user: User = Depends(require_capability(Capability.MANAGE_GAMIFICATION)),
    db: AsyncSession = Depends(get_db)
):
    badge = await gamification_service.create_badge(db, data, created_by=current_user.id)
    return success_response("Badge created successfully", BadgeResponse.model_validate(badge))


@router.post("/award-badge")
async def award_badge(
    data: AwardBadgeRequest,
    current_user: User = Depends(require_capability(Capability.MANAGE_GAMIFICATION)),
    db: AsyncSession = Depends(get_db)
):
    user_badge = await gamification_service.award_badge(db, data.user_id, data.badge_id, awarded_by=current_user.id)
    return success_response("Badge awarded successfully", {
        "id": user_badge.id,
        "user_id": user_badge.user_id,
        "badge_id": user_badge.badge_id,
        "earned_at": user_badge.earned_at,
    })


@router.post("/add-points")
async def add_points(
    data: AddPointsRequest,
    current_user: User = Depends(require_capability(Capability.MANAGE_GAMIFICATION)),
    db: AsyncSession = Depends(get_db)
):
    entry = await gamification_service.award_points(
        db, data.user_id, data.points, data.point_type, data.description,
        multiplier=data.multiplier, awarded_by=current_user.id,
    )
    return success_response("Points added successfully", PointResponse.model_validate(entry))


@router.get("/leaderboard")
async def leaderboard(
    period: Literal["all", "week", "month", "year"] = "all",
    limit: int = Query(10, ge=1, le=100),
    department: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Users ranked by points earned in the period"""
    board = await gamification_service.leaderboard(db, period, limit, department)
    return success_response(data={"leaderboard": board, "period": period, "total": len(board)})
