"""
Library Service - catalogue, borrow/return/renew lifecycle, digital reading

Copy counters are only ever changed by conditional UPDATE statements whose
rowcount decides success, and the counter change commits together with the
borrow record it belongs to.
"""

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func, desc, asc, or_, and_, String, Integer, cast
from sqlalchemy.orm import selectinload
from datetime import datetime, timedelta
from typing import Optional, List, Dict, Any

from campus_portal.core.config import settings
from campus_portal.core.exceptions import (
    ResourceNotFoundError, BusinessRuleError, DuplicateResourceError,
    BookNotAvailableError, AlreadyBorrowedError, RenewalNotAllowedError,
)
from campus_portal.core.logging_config import logger
from campus_portal.core.permissions import Capability, ensure_owner_or_capability, has_capability
from campus_portal.models.user import User
from campus_portal.models.library import (
    Book, BookCondition, BorrowRecord, BorrowStatus, ReadingProgress, OUTSTANDING_BORROW_STATUSES,
)
from campus_portal.models.gamification import PointType
from campus_portal.schemas.library import BookCreate, BookUpdate, BookFilters
from campus_portal.services.gamification_service import gamification_service
from campus_portal.utils.pagination import paginate

SORT_COLUMNS = {
    "title": Book.title,
    "author": Book.author,
    "published_year": Book.published_year,
    "rating": Book.rating_average,
    "popularity": Book.times_borrowed,
    "created_at": Book.created_at,
}

REQUIRED_BOOK_FIELDS = {"title", "author", "isbn", "category", "language", "is_digital", "tags"}


def _overdue_clause(now: datetime):
    """SQL for records whose effective status is overdue"""
    return or_(
        BorrowRecord.status == BorrowStatus.OVERDUE,
        and_(BorrowRecord.status == BorrowStatus.BORROWED, BorrowRecord.due_date < now),
    )


class LibraryService:
    """Service for the book catalogue, loans and reading progress"""

    # ==================== CATALOGUE ====================

    async def list_books(self, db: AsyncSession, filters: BookFilters, page: int = 1, limit: int = 10) -> Dict[str, Any]:
        query = select(Book)

        if filters.search:
            term = f"%{filters.search.strip()}%"
            query = query.where(or_(
                Book.title.ilike(term),
                Book.author.ilike(term),
                Book.isbn.ilike(term),
                Book.description.ilike(term),
            ))
        if filters.category:
            query = query.where(Book.category == filters.category)
        if filters.author:
            query = query.where(Book.author.ilike(f"%{filters.author}%"))
        if filters.availability == "available":
            query = query.where(Book.available_copies > 0)
        elif filters.availability == "unavailable":
            query = query.where(Book.available_copies == 0)
        if filters.is_digital is not None:
            query = query.where(Book.is_digital.is_(filters.is_digital))
        if filters.language:
            query = query.where(Book.language.ilike(filters.language))
        if filters.tag:
            # tags is a JSON list; match the quoted element in its text form
            query = query.where(cast(Book.tags, String).like(f'%"{filters.tag}"%'))
        if filters.publisher:
            query = query.where(Book.publisher.ilike(f"%{filters.publisher}%"))
        if filters.min_rating is not None:
            query = query.where(Book.rating_average >= filters.min_rating)
        if filters.max_rating is not None:
            query = query.where(Book.rating_average <= filters.max_rating)
        if filters.published_from is not None:
            query = query.where(Book.published_year >= filters.published_from)
        if filters.published_to is not None:
            query = query.where(Book.published_year <= filters.published_to)

        column = SORT_COLUMNS[filters.sort_by]
        direction = desc if filters.sort_order == "desc" else asc
        query = query.order_by(direction(column), Book.id)

        return await paginate(db, query, page, limit)

    async def get_book(self, db: AsyncSession, book_id: str) -> Book:
        book = await db.get(Book, book_id, populate_existing=True)
        if book is None:
            raise ResourceNotFoundError("Book", book_id)
        return book

    async def create_book(self, db: AsyncSession, data: BookCreate) -> Book:
        existing = await db.execute(select(Book.id).where(Book.isbn == data.isbn))
        if existing.scalar_one_or_none():
            raise DuplicateResourceError("Book with this ISBN already exists", field="isbn")

        book = Book(**data.model_dump(), available_copies=data.total_copies)
        db.add(book)
        await db.commit()
        await db.refresh(book)

        logger.log_domain_event("library", "book_created", book=str(book.id), isbn=book.isbn)
        return book

    async def update_book(self, db: AsyncSession, book_id: str, data: BookUpdate) -> Book:
        book = await self.get_book(db, book_id)
        changes = data.model_dump(exclude_unset=True)

        if "isbn" in changes and changes["isbn"] != book.isbn:
            existing = await db.execute(select(Book.id).where(Book.isbn == changes["isbn"], Book.id != book.id))
            if existing.scalar_one_or_none():
                raise DuplicateResourceError("Book with this ISBN already exists", field="isbn")

        if changes.get("total_copies") is not None:
            new_total = changes.pop("total_copies")
            copies_out = book.copies_out
            if new_total < copies_out:
                raise BusinessRuleError(
                    f"Total copies cannot be less than the {copies_out} copies currently borrowed",
                    details={"copies_out": copies_out},
                )
            book.total_copies = new_total
            book.available_copies = new_total - copies_out

        for field, value in changes.items():
            if value is None and field in REQUIRED_BOOK_FIELDS:
                continue
            setattr(book, field, value)

        await db.commit()
        await db.refresh(book)
        return book

    async def delete_book(self, db: AsyncSession, book_id: str) -> None:
        book = await self.get_book(db, book_id)
        outstanding = await db.execute(
            select(func.count(BorrowRecord.id)).where(
                BorrowRecord.book_id == book.id,
                BorrowRecord.status.in_(OUTSTANDING_BORROW_STATUSES),
            )
        )
        if outstanding.scalar():
            raise BusinessRuleError("Cannot delete a book with copies currently borrowed")

        await db.delete(book)
        await db.commit()
        logger.log_domain_event("library", "book_deleted", book=str(book_id))

    # ==================== BORROWING ====================

    async def _get_record(self, db: AsyncSession, record_id: str) -> BorrowRecord:
        result = await db.execute(
            select(BorrowRecord).options(selectinload(BorrowRecord.book)).where(BorrowRecord.id == record_id)
            .execution_options(populate_existing=True)
        )
        record = result.scalar_one_or_none()
        if record is None:
            raise ResourceNotFoundError("Borrow record", record_id)
        return record

    async def _release_copy(self, db: AsyncSession, book_id: str) -> bool:
        """Put one copy back on the shelf, never above total_copies"""
        result = await db.execute(
            update(Book)
            .where(Book.id == book_id, Book.available_copies < Book.total_copies)
            .values(available_copies=Book.available_copies + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def borrow_book(
        self,
        db: AsyncSession,
        book_id: str,
        user: User,
        notes: Optional[str] = None,
    ) -> BorrowRecord:
        """
        Check out one copy of a book.

        Raises:
            ResourceNotFoundError: book does not exist
            AlreadyBorrowedError: the user still holds a copy of this book
            BookNotAvailableError: no copy left (the conditional decrement matched nothing)
        """
        book = await self.get_book(db, book_id)

        held = await db.execute(
            select(BorrowRecord.id).where(
                BorrowRecord.user_id == user.id,
                BorrowRecord.book_id == book.id,
                BorrowRecord.status.in_(OUTSTANDING_BORROW_STATUSES),
            ).limit(1)
        )
        if held.scalar_one_or_none():
            raise AlreadyBorrowedError()

        taken = await db.execute(
            update(Book)
            .where(Book.id == book.id, Book.available_copies > 0)
            .values(
                available_copies=Book.available_copies - 1,
                times_borrowed=Book.times_borrowed + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if taken.rowcount != 1:
            raise BookNotAvailableError()

        now = datetime.utcnow()
        record = BorrowRecord(
            user_id=user.id,
            book_id=book.id,
            borrow_date=now,
            due_date=now + timedelta(days=settings.LIBRARY_LOAN_DAYS),
            status=BorrowStatus.BORROWED,
            max_renewals=settings.LIBRARY_MAX_RENEWALS,
            notes=notes,
        )
        db.add(record)
        await db.commit()

        await db.refresh(book)
        record = await self._get_record(db, record.id)
        logger.log_domain_event(
            "library", "book_borrowed",
            user=str(user.id), book=str(book.id), available=book.available_copies,
        )
        return record

    async def return_book(
        self,
        db: AsyncSession,
        record_id: str,
        user: User,
        condition: BookCondition = BookCondition.GOOD,
        notes: Optional[str] = None,
    ) -> BorrowRecord:
        record = await db.get(BorrowRecord, record_id)
        if record is None or record.status not in OUTSTANDING_BORROW_STATUSES:
            raise ResourceNotFoundError(
                "Borrow record", record_id,
                message="Borrow record not found or book already returned",
            )
        ensure_owner_or_capability(
            user, record.user_id, Capability.MANAGE_BORROWS,
            "You can only return your own books",
        )

        now = datetime.utcnow()
        on_time = record.due_date >= now
        record.return_book(condition, now)
        if notes:
            record.notes = notes
        if str(record.user_id) != str(user.id):
            record.librarian_id = user.id

        await self._release_copy(db, record.book_id)

        if on_time and settings.LIBRARY_RETURN_POINTS > 0:
            await gamification_service.add_points(
                db, record.user_id, settings.LIBRARY_RETURN_POINTS, PointType.LIBRARY_ACTIVITY,
                "Returned a book on time", reference_id=str(record.id),
            )

        await db.commit()
        logger.log_domain_event(
            "library", "book_returned",
            record=str(record.id), fine=record.fine_amount, condition=record.condition.value,
        )
        return await self._get_record(db, record.id)

    async def renew_book(self, db: AsyncSession, record_id: str, user: User, days: Optional[int] = None) -> BorrowRecord:
        record = await self._get_record(db, record_id)
        ensure_owner_or_capability(
            user, record.user_id, Capability.MANAGE_BORROWS,
            "You can only renew your own books",
        )

        now = datetime.utcnow()
        if not record.renew(days or settings.LIBRARY_RENEWAL_DAYS, now):
            if record.effective_status(now) != BorrowStatus.BORROWED:
                reason = f"Record is {record.effective_status(now).value}"
            elif record.renewal_count >= record.max_renewals:
                reason = "Maximum renewals reached"
            else:
                reason = "Outstanding fine must be cleared first"
            raise RenewalNotAllowedError(reason)

        await db.commit()
        logger.log_domain_event("library", "book_renewed", record=str(record.id), renewals=record.renewal_count)
        return record

    async def mark_lost_or_damaged(
        self,
        db: AsyncSession,
        record_id: str,
        status: str,
        notes: Optional[str] = None,
        librarian: Optional[User] = None,
    ) -> BorrowRecord:
        """Terminal statuses; the copy does not go back into stock"""
        record = await self._get_record(db, record_id)
        if record.status not in OUTSTANDING_BORROW_STATUSES:
            raise BusinessRuleError("Only borrowed or overdue records can be marked lost or damaged")

        new_status = BorrowStatus(status)
        now = datetime.utcnow()
        record.fine_amount = record.accrued_fine(now)
        record.status = new_status
        record.return_date = now
        if new_status == BorrowStatus.DAMAGED:
            record.condition = BookCondition.DAMAGED
        if notes:
            record.notes = notes
        if librarian is not None:
            record.librarian_id = librarian.id

        await db.commit()
        logger.log_domain_event("library", f"book_{new_status.value}", record=str(record.id))
        return record

    async def delete_borrow_record(self, db: AsyncSession, record_id: str) -> None:
        record = await db.get(BorrowRecord, record_id)
        if record is None:
            raise ResourceNotFoundError("Borrow record", record_id)

        if record.status in OUTSTANDING_BORROW_STATUSES:
            await self._release_copy(db, record.book_id)
        await db.delete(record)
        await db.commit()
        logger.log_domain_event("library", "borrow_record_deleted", record=str(record_id))

    async def borrow_history(
        self,
        db: AsyncSession,
        user: User,
        status: Optional[BorrowStatus] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Dict[str, Any]:
        query = select(BorrowRecord).options(selectinload(BorrowRecord.book))
        if not has_capability(user.role, Capability.VIEW_ALL_BORROWS):
            query = query.where(BorrowRecord.user_id == user.id)

        if status == BorrowStatus.OVERDUE:
            query = query.where(_overdue_clause(datetime.utcnow()))
        elif status == BorrowStatus.BORROWED:
            query = query.where(
                BorrowRecord.status == BorrowStatus.BORROWED,
                BorrowRecord.due_date >= datetime.utcnow(),
            )
        elif status is not None:
            query = query.where(BorrowRecord.status == status)

        query = query.order_by(desc(BorrowRecord.borrow_date))
        return await paginate(db, query, page, limit)

    async def stats(self, db: AsyncSession) -> Dict[str, Any]:
        now = datetime.utcnow()
        totals = (await db.execute(
            select(
                func.count(Book.id),
                func.coalesce(func.sum(Book.total_copies), 0),
                func.coalesce(func.sum(Book.available_copies), 0),
            )
        )).one()

        borrowed = await db.execute(
            select(func.count(BorrowRecord.id)).where(BorrowRecord.status.in_(OUTSTANDING_BORROW_STATUSES))
        )
        overdue = await db.execute(select(func.count(BorrowRecord.id)).where(_overdue_clause(now)))
        fines = await db.execute(
            select(func.coalesce(func.sum(BorrowRecord.fine_amount), 0.0)).where(BorrowRecord.fine_paid.is_(False))
        )
        popular = await db.execute(
            select(Book).where(Book.times_borrowed > 0).order_by(desc(Book.times_borrowed)).limit(5)
        )

        return {
            "total_books": totals[0],
            "total_copies": int(totals[1]),
            "available_copies": int(totals[2]),
            "borrowed_count": borrowed.scalar() or 0,
            "overdue_count": overdue.scalar() or 0,
            "unpaid_fines": round(float(fines.scalar() or 0), 2),
            "popular_books": [
                {"id": b.id, "title": b.title, "author": b.author, "times_borrowed": b.times_borrowed}
                for b in popular.scalars().all()
            ],
        }

    # ==================== DIGITAL READING ====================

    async def get_progress(self, db: AsyncSession, user: User, book_id: str) -> ReadingProgress:
        result = await db.execute(
            select(ReadingProgress).where(
                ReadingProgress.user_id == user.id,
                ReadingProgress.book_id == book_id,
            )
        )
        progress = result.scalar_one_or_none()
        if progress is None:
            raise ResourceNotFoundError("Reading progress", book_id, message="Reading progress not found")
        return progress

    async def start_reading(self, db: AsyncSession, user: User, book_id: str) -> ReadingProgress:
        """Open a digital book; returns the existing progress when already started"""
        book = await db.get(Book, book_id)
        if book is None or not book.is_digital:
            raise ResourceNotFoundError("Digital book", book_id, message="Digital book not found")

        result = await db.execute(
            select(ReadingProgress).where(
                ReadingProgress.user_id == user.id,
                ReadingProgress.book_id == book.id,
            )
        )
        progress = result.scalar_one_or_none()
        if progress is not None:
            return progress

        now = datetime.utcnow()
        progress = ReadingProgress(
            user_id=user.id,
            book_id=book.id,
            current_page=0,
            total_pages=book.total_pages or 0,
            progress_percentage=0,
            reading_time=0,
            started_at=now,
            last_read_at=now,
            bookmarks=[],
        )
        db.add(progress)
        await db.commit()
        await db.refresh(progress)
        logger.log_domain_event("library", "reading_started", user=str(user.id), book=str(book.id))
        return progress

    async def update_progress(
        self, db: AsyncSession, user: User, book_id: str, current_page: int, reading_time: int = 0
    ) -> ReadingProgress:
        progress = await self.get_progress(db, user, book_id)
        was_completed = progress.is_completed
        progress.set_page(current_page)
        progress.reading_time = (progress.reading_time or 0) + reading_time

        if progress.is_completed and not was_completed:
            logger.log_domain_event("library", "reading_completed", user=str(user.id), book=str(book_id))

        await db.commit()
        await db.refresh(progress)
        return progress

    async def add_bookmark(self, db: AsyncSession, user: User, book_id: str, page: int,
                           note: Optional[str] = None) -> ReadingProgress:
        progress = await self.get_progress(db, user, book_id)
        if progress.total_pages and page > progress.total_pages:
            raise BusinessRuleError(f"Page must be between 1 and {progress.total_pages}")
        progress.upsert_bookmark(page, note)
        await db.commit()
        await db.refresh(progress)
        return progress

    async def remove_bookmark(self, db: AsyncSession, user: User, book_id: str, page: int) -> ReadingProgress:
        progress = await self.get_progress(db, user, book_id)
        if not progress.remove_bookmark(page):
            raise ResourceNotFoundError("Bookmark", str(page))
        await db.commit()
        await db.refresh(progress)
        return progress

    async def rate_book(self, db: AsyncSession, user: User, book_id: str, rating: int,
                        review: Optional[str] = None) -> ReadingProgress:
        progress = await self.get_progress(db, user, book_id)
        progress.rating = rating
        if review is not None:
            progress.review = review
        await db.flush()

        aggregate = (await db.execute(
            select(func.avg(ReadingProgress.rating), func.count(ReadingProgress.rating))
            .where(ReadingProgress.book_id == book_id, ReadingProgress.rating.is_not(None))
        )).one()
        book = await self.get_book(db, book_id)
        book.rating_average = round(float(aggregate[0] or 0), 1)
        book.rating_count = aggregate[1] or 0

        await db.commit()
        await db.refresh(progress)
        return progress

    async def reading_history(self, db: AsyncSession, user: User, completed_only: bool = False,
                              page: int = 1, limit: int = 10) -> Dict[str, Any]:
        query = (
            select(ReadingProgress)
            .options(selectinload(ReadingProgress.book))
            .where(ReadingProgress.user_id == user.id)
        )
        if completed_only:
            query = query.where(ReadingProgress.is_completed.is_(True))
        query = query.order_by(desc(ReadingProgress.last_read_at))
        return await paginate(db, query, page, limit)

    async def reading_stats(self, db: AsyncSession, user: User) -> Dict[str, Any]:
        row = (await db.execute(
            select(
                func.count(ReadingProgress.id),
                func.coalesce(func.sum(cast(ReadingProgress.is_completed, Integer)), 0),
                func.coalesce(func.sum(ReadingProgress.current_page), 0),
                func.coalesce(func.sum(ReadingProgress.reading_time), 0),
                func.avg(ReadingProgress.rating),
            ).where(ReadingProgress.user_id == user.id)
        )).one()

        started, completed = row[0] or 0, int(row[1] or 0)
        return {
            "books_started": started,
            "books_completed": completed,
            "books_in_progress": started - completed,
            "total_pages_read": int(row[2] or 0),
            "total_reading_minutes": int(row[3] or 0),
            "average_rating_given": round(float(row[4]), 2) if row[4] is not None else None,
        }

    async def recommendations(self, db: AsyncSession, user: User, limit: int = 5) -> List[Book]:
        """Digital books the user has not opened, matching their categories/authors or rated 4+"""
        read = await db.execute(
            select(Book.id, Book.category, Book.author)
            .join(ReadingProgress, ReadingProgress.book_id == Book.id)
            .where(ReadingProgress.user_id == user.id)
        )
        rows = read.all()
        read_ids = [r.id for r in rows]
        categories = {r.category for r in rows}
        authors = {r.author for r in rows}

        preference = [Book.rating_average >= 4]
        if categories:
            preference.append(Book.category.in_(categories))
        if authors:
            preference.append(Book.author.in_(authors))

        query = select(Book).where(Book.is_digital.is_(True), or_(*preference))
        if read_ids:
            query = query.where(Book.id.not_in(read_ids))
        query = query.order_by(desc(Book.rating_average), desc(Book.times_borrowed)).limit(limit)

        result = await db.execute(query)
        return list(result.scalars().all())


# Singleton instance
library_service = LibraryService()
