"""
Reconciliation Service - persists time-driven status changes

Reads already compute effective statuses (a borrowed record past due reads
as overdue, a pending fee past due reads as overdue). This background task
writes those flips back periodically so stored data, reports and raw SQL
agree with what the API returns:
- borrowed records past their due date become overdue and accrue fines
- pending fees past their due date become overdue
"""

import asyncio
from datetime import datetime, timedelta
from typing import Dict, Optional, Callable

from sqlalchemy import select, update, or_, and_
from sqlalchemy.ext.asyncio import AsyncSession

from campus_portal.core.config import settings
from campus_portal.core.database import get_session_local
from campus_portal.core.logging_config import logger
from campus_portal.models.fee import Fee, FeeStatus
from campus_portal.models.library import BorrowRecord, BorrowStatus


class ReconciliationService:
    """Periodic background pass over stale borrow records and fees"""

    def __init__(
        self,
        interval_seconds: int = 900,
        session_factory: Optional[Callable[[], AsyncSession]] = None,
    ):
        self.interval = timedelta(seconds=interval_seconds)
        self._session_factory = session_factory

        self.running = False
        self._task: Optional[asyncio.Task] = None

        self.stats = {
            "runs": 0,
            "borrows_flagged": 0,
            "fees_flagged": 0,
            "last_run": None,
        }

    async def start(self):
        """Start the background reconciliation loop"""
        if self.running:
            logger.warning("[Reconciliation] Service already running")
            return

        self.running = True
        self._task = asyncio.create_task(self._reconcile_loop())
        logger.info(f"[Reconciliation] Started - Interval: {self.interval}")

    async def stop(self):
        """Stop the reconciliation loop"""
        self.running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        logger.info("[Reconciliation] Stopped")

    async def _reconcile_loop(self):
        while self.running:
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"[Reconciliation] Error in reconcile loop: {e}", exc_info=True)

            await asyncio.sleep(self.interval.total_seconds())

    async def run_once(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """One pass in its own session"""
        factory = self._session_factory or get_session_local()
        async with factory() as db:
            results = await self.reconcile(db, now)

        self.stats["runs"] += 1
        self.stats["borrows_flagged"] += results["borrows"]
        self.stats["fees_flagged"] += results["fees"]
        self.stats["last_run"] = datetime.utcnow().isoformat()
        return results

    async def reconcile(self, db: AsyncSession, now: Optional[datetime] = None) -> Dict[str, int]:
        """
        Flip stale statuses using ``db`` and commit.

        Returns:
            Counts of borrow records and fees whose stored status changed
        """
        now = now or datetime.utcnow()

        # Fines depend on the day count, so borrow records go through the model
        result = await db.execute(
            select(BorrowRecord).where(or_(
                and_(BorrowRecord.status == BorrowStatus.BORROWED, BorrowRecord.due_date < now),
                BorrowRecord.status == BorrowStatus.OVERDUE,
            ))
        )
        flipped_borrows = 0
        for record in result.scalars().all():
            was_borrowed = record.status == BorrowStatus.BORROWED
            record.apply_lifecycle_rules(now)
            if was_borrowed and record.status == BorrowStatus.OVERDUE:
                flipped_borrows += 1

        fees = await db.execute(
            update(Fee)
            .where(Fee.status == FeeStatus.PENDING, Fee.due_date < now)
            .values(status=FeeStatus.OVERDUE)
            .execution_options(synchronize_session=False)
        )
        flipped_fees = fees.rowcount or 0

        await db.commit()

        if flipped_borrows or flipped_fees:
            logger.log_domain_event(
                "reconciliation", "statuses_flipped",
                borrows=flipped_borrows, fees=flipped_fees,
            )
        return {"borrows": flipped_borrows, "fees": flipped_fees}


# Singleton instance
reconciliation_service = ReconciliationService(interval_seconds=settings.RECONCILE_INTERVAL_SECONDS)
