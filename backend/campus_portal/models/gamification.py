"""
Gamification Models
- Badge definitions
- GamificationPoint: append-only points ledger
- UserBadge: badge earned by a user (once per badge)
"""

from sqlalchemy import (
    Column, String, Boolean, DateTime, Enum as SQLEnum, Integer, Float, ForeignKey,
    UniqueConstraint, CheckConstraint,
)
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from campus_portal.core.database import Base
from campus_portal.core.types import GUID, generate_uuid


class BadgeCategory(str, enum.Enum):
    ACADEMIC = "academic"
    SOCIAL = "social"
    ACHIEVEMENT = "achievement"
    PARTICIPATION = "participation"
    MILESTONE = "milestone"


class BadgeRarity(str, enum.Enum):
    COMMON = "common"
    UNCOMMON = "uncommon"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"


class PointType(str, enum.Enum):
    BADGE_EARNED = "badge_earned"
    EXAM_SCORE = "exam_score"
    LIBRARY_ACTIVITY = "library_activity"
    PLACEMENT_ACTIVITY = "placement_activity"
    FEE_PAYMENT = "fee_payment"
    EVENT_PARTICIPATION = "event_participation"
    MANUAL_AWARD = "manual_award"


class Badge(Base):
    """Badge definition"""
    __tablename__ = "badges"
    __table_args__ = (
        CheckConstraint("points >= 1", name="ck_badges_points"),
    )

    id = Column(GUID, primary_key=True, default=generate_uuid)
    name = Column(String(100), unique=True, nullable=False)
    description = Column(String(500), nullable=False)
    icon = Column(String(255), nullable=True)
    criteria = Column(String(500), nullable=True)
    points = Column(Integer, default=10, nullable=False)
    category = Column(SQLEnum(BadgeCategory), default=BadgeCategory.ACHIEVEMENT, nullable=False)
    rarity = Column(SQLEnum(BadgeRarity), default=BadgeRarity.COMMON, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_by = Column(GUID, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    awards = relationship("UserBadge", back_populates="badge", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Badge {self.name}>"


class GamificationPoint(Base):
    """One point-earning event"""
    __tablename__ = "gamification_points"
    __table_args__ = (
        CheckConstraint("points >= 1", name="ck_points_points"),
        CheckConstraint("multiplier >= 0.1 AND multiplier <= 10", name="ck_points_multiplier"),
    )

    id = Column(GUID, primary_key=True, default=generate_uuid)
    user_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    point_type = Column(SQLEnum(PointType), nullable=False, index=True)
    points = Column(Integer, nullable=False)
    multiplier = Column(Float, default=1.0, nullable=False)
    description = Column(String(500), nullable=False)
    reference_id = Column(String(36), nullable=True)  # borrow record, fee, badge ...
    awarded_by = Column(GUID, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    user = relationship("User", back_populates="points", foreign_keys=[user_id])

    @property
    def effective_points(self) -> float:
        return self.points * (self.multiplier or 1.0)

    def __repr__(self):
        return f"<GamificationPoint {self.point_type} {self.points}x{self.multiplier}>"


class UserBadge(Base):
    """Badge earned by a user"""
    __tablename__ = "user_badges"
    __table_args__ = (
        UniqueConstraint("user_id", "badge_id", name="uq_user_badges_user_badge"),
    )

    id = Column(GUID, primary_key=True, default=generate_uuid)
    user_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    badge_id = Column(GUID, ForeignKey("badges.id", ondelete="CASCADE"), nullable=False)
    awarded_by = Column(GUID, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    earned_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="badges", foreign_keys=[user_id])
    badge = relationship("Badge", back_populates="awards")

    def __repr__(self):
        return f"<UserBadge {self.user_id}:{self.badge_id}>"


def level_for(total_points: float, points_per_level: int = 100) -> dict:
    """Level = floor(total / per_level) + 1"""
    total = int(total_points)
    return {
        "total_points": round(total_points, 2),
        "level": total // points_per_level + 1,
        "points_to_next_level": points_per_level - (total % points_per_level),
    }
