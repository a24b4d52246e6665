"""
Gamification Service - points ledger, badges, levels and leaderboard

Points are an append-only ledger; a user's total is the sum of
points x multiplier over every entry, and the level follows from the total.
"""

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, desc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload
from datetime import datetime, timedelta
from typing import Optional, List, Dict, Any

from campus_portal.core.config import settings
from campus_portal.core.exceptions import ResourceNotFoundError, DuplicateResourceError
from campus_portal.core.logging_config import logger
from campus_portal.models.user import User
from campus_portal.models.gamification import (
    Badge, BadgeCategory, BadgeRarity, GamificationPoint, PointType, UserBadge, level_for,
)
from campus_portal.schemas.gamification import BadgeCreate


def period_start(period: str, now: Optional[datetime] = None) -> Optional[datetime]:
    """Start of a leaderboard window; None means all time"""
    now = now or datetime.utcnow()
    if period == "week":
        return now - timedelta(days=7)
    if period == "month":
        return datetime(now.year, now.month, 1)
    if period == "year":
        return datetime(now.year, 1, 1)
    return None


class GamificationService:
    """Service for points, badges and rankings"""

    # ==================== POINTS ====================

    async def add_points(
        self,
        db: AsyncSession,
        user_id: str,
        points: int,
        point_type: PointType,
        description: str,
        multiplier: float = 1.0,
        reference_id: Optional[str] = None,
        awarded_by: Optional[str] = None,
    ) -> GamificationPoint:
        """
        Append a ledger entry. Does not commit: callers award points as part
        of their own unit of work.
        """
        entry = GamificationPoint(
            user_id=user_id,
            point_type=point_type,
            points=points,
            multiplier=multiplier,
            description=description,
            reference_id=reference_id,
            awarded_by=awarded_by,
            created_at=datetime.utcnow(),
        )
        db.add(entry)
        logger.log_domain_event(
            "gamification", "points_added",
            user=str(user_id), points=points, multiplier=multiplier, point_type=point_type.value,
        )
        return entry

    async def award_points(
        self,
        db: AsyncSession,
        user_id: str,
        points: int,
        point_type: PointType,
        description: str,
        multiplier: float = 1.0,
        awarded_by: Optional[str] = None,
    ) -> GamificationPoint:
        """Admin manual award"""
        if await db.get(User, user_id) is None:
            raise ResourceNotFoundError("User", user_id)

        entry = await self.add_points(
            db, user_id, points, point_type, description,
            multiplier=multiplier, awarded_by=awarded_by,
        )
        await db.commit()
        await db.refresh(entry)
        return entry

    async def get_total_points(self, db: AsyncSession, user_id: str) -> float:
        result = await db.execute(
            select(func.coalesce(func.sum(GamificationPoint.points * GamificationPoint.multiplier), 0.0))
            .where(GamificationPoint.user_id == user_id)
        )
        return float(result.scalar() or 0.0)

    async def get_profile(self, db: AsyncSession, user_id: str, history_limit: int = 10) -> Dict[str, Any]:
        """Total points, level, badges and recent activity for a user"""
        total = await self.get_total_points(db, user_id)

        badges_result = await db.execute(
            select(UserBadge)
            .options(selectinload(UserBadge.badge))
            .where(UserBadge.user_id == user_id)
            .order_by(desc(UserBadge.earned_at))
        )
        user_badges = badges_result.scalars().all()

        history_result = await db.execute(
            select(GamificationPoint)
            .where(GamificationPoint.user_id == user_id)
            .order_by(desc(GamificationPoint.created_at))
            .limit(history_limit)
        )

        by_type_result = await db.execute(
            select(
                GamificationPoint.point_type,
                func.sum(GamificationPoint.points * GamificationPoint.multiplier),
            )
            .where(GamificationPoint.user_id == user_id)
            .group_by(GamificationPoint.point_type)
        )

        return {
            **level_for(total, settings.POINTS_PER_LEVEL),
            "badges": [
                {"badge": ub.badge, "earned_at": ub.earned_at}
                for ub in user_badges
            ],
            "recent_points": history_result.scalars().all(),
            "points_by_type": {
                point_type.value: round(float(value or 0), 2)
                for point_type, value in by_type_result.all()
            },
        }

    # ==================== BADGES ====================

    async def list_badges(
        self,
        db: AsyncSession,
        category: Optional[BadgeCategory] = None,
        rarity: Optional[BadgeRarity] = None,
        active_only: bool = True,
    ) -> List[Badge]:
        query = select(Badge)
        if category:
            query = query.where(Badge.category == category)
        if rarity:
            query = query.where(Badge.rarity == rarity)
        if active_only:
            query = query.where(Badge.is_active.is_(True))
        result = await db.execute(query.order_by(Badge.category, Badge.points))
        return list(result.scalars().all())

    async def create_badge(self, db: AsyncSession, data: BadgeCreate, created_by: str) -> Badge:
        existing = await db.execute(select(Badge).where(Badge.name == data.name))
        if existing.scalar_one_or_none():
            raise DuplicateResourceError("Badge with this name already exists", field="name")

        badge = Badge(**data.model_dump(), created_by=created_by, is_active=True)
        db.add(badge)
        await db.commit()
        await db.refresh(badge)
        return badge

    async def award_badge(
        self,
        db: AsyncSession,
        user_id: str,
        badge_id: str,
        awarded_by: Optional[str] = None,
    ) -> UserBadge:
        """
        Award a badge once per user and credit its points.

        The (user, badge) unique constraint backs the explicit check, so two
        concurrent awards still produce a single row.
        """
        if await db.get(User, user_id) is None:
            raise ResourceNotFoundError("User", user_id)
        badge = await db.get(Badge, badge_id)
        if badge is None:
            raise ResourceNotFoundError("Badge", badge_id)

        existing = await db.execute(
            select(UserBadge).where(UserBadge.user_id == user_id, UserBadge.badge_id == badge_id)
        )
        if existing.scalar_one_or_none():
            raise DuplicateResourceError("Badge already awarded to this user")

        user_badge = UserBadge(
            user_id=user_id,
            badge_id=badge_id,
            awarded_by=awarded_by,
            earned_at=datetime.utcnow(),
        )
        db.add(user_badge)
        await self.add_points(
            db, user_id, badge.points, PointType.BADGE_EARNED,
            f"Earned badge: {badge.name}", reference_id=str(badge.id), awarded_by=awarded_by,
        )

        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise DuplicateResourceError("Badge already awarded to this user")

        await db.refresh(user_badge)
        logger.log_domain_event("gamification", "badge_awarded", user=str(user_id), badge=badge.name)
        return user_badge

    # ==================== LEADERBOARD ====================

    async def leaderboard(
        self,
        db: AsyncSession,
        period: str = "all",
        limit: int = 10,
        department: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Users ranked by points earned in ``period``"""
        total_expr = func.sum(GamificationPoint.points * GamificationPoint.multiplier)

        query = (
            select(
                User.id,
                User.full_name,
                User.student_id,
                User.department,
                total_expr.label("total_points"),
                func.count(GamificationPoint.id).label("activity_count"),
                func.max(GamificationPoint.created_at).label("last_activity"),
            )
            .join(GamificationPoint, GamificationPoint.user_id == User.id)
            .where(User.is_active.is_(True))
            .group_by(User.id, User.full_name, User.student_id, User.department)
            .order_by(desc("total_points"))
            .limit(limit)
        )

        start = period_start(period)
        if start is not None:
            query = query.where(GamificationPoint.created_at >= start)
        if department:
            query = query.where(User.department == department)

        rows = (await db.execute(query)).all()

        badge_counts: Dict[str, int] = {}
        if rows:
            counts = await db.execute(
                select(UserBadge.user_id, func.count(UserBadge.id))
                .where(UserBadge.user_id.in_([row.id for row in rows]))
                .group_by(UserBadge.user_id)
            )
            badge_counts = {user_id: count for user_id, count in counts.all()}

        leaderboard = []
        for rank, row in enumerate(rows, start=1):
            total = float(row.total_points or 0)
            leaderboard.append({
                "rank": rank,
                "user_id": row.id,
                "name": row.full_name,
                "student_id": row.student_id,
                "department": row.department,
                "total_points": round(total, 2),
                "level": level_for(total, settings.POINTS_PER_LEVEL)["level"],
                "badge_count": badge_counts.get(row.id, 0),
                "activity_count": row.activity_count,
                "last_activity": row.last_activity,
            })
        return leaderboard


# Singleton instance
gamification_service = GamificationService()
