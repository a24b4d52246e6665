from pydantic import BaseModel, Field, ConfigDict
from typing import Optional
from datetime import datetime

from campus_portal.models.gamification import BadgeCategory, BadgeRarity, PointType


class BadgeCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=500)
    icon: Optional[str] = Field(None, max_length=255)
    criteria: Optional[str] = Field(None, max_length=500)
    points: int = Field(10, ge=1)
    category: BadgeCategory = BadgeCategory.ACHIEVEMENT
    rarity: BadgeRarity = BadgeRarity.COMMON


class BadgeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str
    icon: Optional[str] = None
    criteria: Optional[str] = None
    points: int
    category: BadgeCategory
    rarity: BadgeRarity
    is_active: bool
    created_at: datetime


class AwardBadgeRequest(BaseModel):
    user_id: str
    badge_id: str


class AddPointsRequest(BaseModel):
    user_id: str
    points: int = Field(..., ge=1)
    point_type: PointType = PointType.MANUAL_AWARD
    description: str = Field(..., min_length=1, max_length=500)
    multiplier: float = Field(1.0, ge=0.1, le=10)


class PointResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    point_type: PointType
    points: int
    multiplier: float
    effective_points: float
    description: str
    reference_id: Optional[str] = None
    created_at: datetime
