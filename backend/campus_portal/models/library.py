"""
Library Models
- Book catalogue with copy counters
- BorrowRecord lifecycle (borrow / renew / return / overdue fines)
- ReadingProgress for digital books
"""

from sqlalchemy import (
    Column, String, Boolean, DateTime, Enum as SQLEnum, Integer, Text, ForeignKey, Float, JSON,
    UniqueConstraint, CheckConstraint, event,
)
from sqlalchemy.orm import relationship, validates
from datetime import datetime, timedelta
from typing import Optional
import enum
import math
import re

from campus_portal.core.config import settings
from campus_portal.core.database import Base
from campus_portal.core.types import GUID, generate_uuid

ISBN_PATTERN = re.compile(r"^(?:\d{9}[\dX]|\d{13})$")
SECONDS_PER_DAY = 86400
PAGES_PER_MINUTE = 2


class BookCategory(str, enum.Enum):
    FICTION = "fiction"
    NON_FICTION = "non_fiction"
    SCIENCE = "science"
    TECHNOLOGY = "technology"
    ENGINEERING = "engineering"
    MATHEMATICS = "mathematics"
    HISTORY = "history"
    BIOGRAPHY = "biography"
    REFERENCE = "reference"
    TEXTBOOK = "textbook"
    OTHER = "other"


class BorrowStatus(str, enum.Enum):
    BORROWED = "borrowed"
    RETURNED = "returned"
    OVERDUE = "overdue"
    LOST = "lost"
    DAMAGED = "damaged"


class BookCondition(str, enum.Enum):
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    DAMAGED = "damaged"


OUTSTANDING_BORROW_STATUSES = (BorrowStatus.BORROWED, BorrowStatus.OVERDUE)


def ceil_days(start: datetime, end: datetime) -> int:
    """Whole days from start to end, rounded up; never negative"""
    seconds = (end - start).total_seconds()
    if seconds <= 0:
        return 0
    return math.ceil(seconds / SECONDS_PER_DAY)


def effective_borrow_status(status: BorrowStatus, due_date: datetime, now: Optional[datetime] = None) -> BorrowStatus:
    """Status as of ``now``: a borrowed record past its due date reads as overdue"""
    now = now or datetime.utcnow()
    status = BorrowStatus(status)
    if status == BorrowStatus.BORROWED and due_date is not None and due_date < now:
        return BorrowStatus.OVERDUE
    return status


class Book(Base):
    """Catalogue entry"""
    __tablename__ = "books"
    __table_args__ = (
        CheckConstraint("total_copies >= 1", name="ck_books_total_copies"),
        CheckConstraint(
            "available_copies >= 0 AND available_copies <= total_copies",
            name="ck_books_available_copies",
        ),
    )

    id = Column(GUID, primary_key=True, default=generate_uuid)
    title = Column(String(200), nullable=False, index=True)
    author = Column(String(100), nullable=False, index=True)
    isbn = Column(String(13), unique=True, nullable=False)
    category = Column(SQLEnum(BookCategory), default=BookCategory.OTHER, nullable=False)
    description = Column(String(1000), nullable=True)

    total_copies = Column(Integer, default=1, nullable=False)
    available_copies = Column(Integer, default=1, nullable=False)
    times_borrowed = Column(Integer, default=0, nullable=False)

    location = Column(String(100), nullable=True)  # e.g., "Shelf A-12"
    published_year = Column(Integer, nullable=True)
    publisher = Column(String(200), nullable=True)
    edition = Column(String(50), nullable=True)
    language = Column(String(50), default="English", nullable=False)
    tags = Column(JSON, default=list)
    cover_image = Column(Text, nullable=True)

    # Digital copy
    is_digital = Column(Boolean, default=False, nullable=False)
    total_pages = Column(Integer, nullable=True)

    # Running aggregate of ReadingProgress ratings
    rating_average = Column(Float, default=0.0, nullable=False)
    rating_count = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    borrow_records = relationship("BorrowRecord", back_populates="book", cascade="all, delete-orphan")
    reading_progress = relationship("ReadingProgress", back_populates="book", cascade="all, delete-orphan")

    @validates("isbn")
    def validate_isbn(self, key, value):
        value = (value or "").replace("-", "").strip().upper()
        if not ISBN_PATTERN.match(value):
            raise ValueError("Please enter a valid ISBN")
        return value

    @property
    def is_available(self) -> bool:
        return self.available_copies > 0

    @property
    def copies_out(self) -> int:
        return self.total_copies - self.available_copies

    def __repr__(self):
        return f"<Book {self.isbn} {self.title!r}>"


class BorrowRecord(Base):
    """One checkout of one copy of a book by one user"""
    __tablename__ = "borrow_records"
    __table_args__ = (
        CheckConstraint("renewal_count >= 0", name="ck_borrow_renewal_count"),
        CheckConstraint("fine_amount >= 0", name="ck_borrow_fine_amount"),
    )

    id = Column(GUID, primary_key=True, default=generate_uuid)
    user_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    book_id = Column(GUID, ForeignKey("books.id", ondelete="CASCADE"), nullable=False, index=True)

    borrow_date = Column(DateTime, default=datetime.utcnow, nullable=False)
    due_date = Column(DateTime, nullable=False)
    return_date = Column(DateTime, nullable=True)

    status = Column(SQLEnum(BorrowStatus), default=BorrowStatus.BORROWED, nullable=False, index=True)
    renewal_count = Column(Integer, default=0, nullable=False)
    max_renewals = Column(Integer, default=2, nullable=False)

    fine_amount = Column(Float, default=0.0, nullable=False)
    fine_paid = Column(Boolean, default=False, nullable=False)
    condition = Column(SQLEnum(BookCondition), default=BookCondition.GOOD, nullable=False)
    notes = Column(String(1000), nullable=True)

    librarian_id = Column(GUID, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="borrow_records", foreign_keys=[user_id])
    book = relationship("Book", back_populates="borrow_records")

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    def effective_status(self, now: Optional[datetime] = None) -> BorrowStatus:
        return effective_borrow_status(self.status, self.due_date, now)

    def is_outstanding(self, now: Optional[datetime] = None) -> bool:
        return self.effective_status(now) in OUTSTANDING_BORROW_STATUSES

    def days_borrowed(self, now: Optional[datetime] = None) -> int:
        end = self.return_date or now or datetime.utcnow()
        return ceil_days(self.borrow_date, end)

    def days_overdue(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.utcnow()
        status = self.effective_status(now)
        returned_late = (
            status == BorrowStatus.RETURNED
            and self.return_date is not None
            and self.return_date > self.due_date
        )
        if status != BorrowStatus.OVERDUE and not returned_late:
            return 0
        return ceil_days(self.due_date, self.return_date or now)

    def accrued_fine(self, now: Optional[datetime] = None, rate: Optional[float] = None) -> float:
        """Fine as of ``now``; only ever grows from the stored amount"""
        rate = settings.LIBRARY_FINE_PER_DAY if rate is None else rate
        computed = self.days_overdue(now) * rate
        return max(self.fine_amount or 0.0, computed)

    def can_renew(self, now: Optional[datetime] = None) -> bool:
        return (
            self.effective_status(now) == BorrowStatus.BORROWED
            and self.renewal_count < self.max_renewals
            and self.accrued_fine(now) == 0
        )

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def apply_lifecycle_rules(self, now: Optional[datetime] = None) -> None:
        """
        Bring persisted fields in line with the clock.

        Runs before every insert/update flush:
        - borrowed past due becomes overdue
        - returned without a return date gets stamped
        - overdue (or returned late) records accrue the per-day fine
        """
        now = now or datetime.utcnow()
        if self.status is None:
            self.status = BorrowStatus.BORROWED
        if self.fine_amount is None:
            self.fine_amount = 0.0

        if self.status == BorrowStatus.RETURNED and self.return_date is None:
            self.return_date = now

        self.status = effective_borrow_status(self.status, self.due_date, now)
        self.fine_amount = self.accrued_fine(now)

    def renew(self, days: int = 14, now: Optional[datetime] = None) -> bool:
        """Extend the due date; False (record untouched) when not renewable"""
        if not self.can_renew(now):
            return False
        self.due_date = self.due_date + timedelta(days=days)
        self.renewal_count += 1
        return True

    def return_book(self, condition: BookCondition = BookCondition.GOOD, now: Optional[datetime] = None) -> None:
        now = now or datetime.utcnow()
        self.return_date = now
        self.status = BorrowStatus.RETURNED
        self.condition = BookCondition(condition)
        self.apply_lifecycle_rules(now)

    def __repr__(self):
        return f"<BorrowRecord {self.id} {self.status}>"


@event.listens_for(BorrowRecord, "before_insert")
@event.listens_for(BorrowRecord, "before_update")
def _borrow_record_before_flush(mapper, connection, target: BorrowRecord):
    target.apply_lifecycle_rules()


class ReadingProgress(Base):
    """Per user/book progress through a digital book"""
    __tablename__ = "reading_progress"
    __table_args__ = (
        UniqueConstraint("user_id", "book_id", name="uq_reading_progress_user_book"),
    )

    id = Column(GUID, primary_key=True, default=generate_uuid)
    user_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    book_id = Column(GUID, ForeignKey("books.id", ondelete="CASCADE"), nullable=False, index=True)

    current_page = Column(Integer, default=0, nullable=False)
    total_pages = Column(Integer, nullable=False)
    progress_percentage = Column(Integer, default=0, nullable=False)
    reading_time = Column(Integer, default=0, nullable=False)  # minutes, cumulative

    started_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    last_read_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)
    is_completed = Column(Boolean, default=False, nullable=False)

    # [{"page": int, "note": str, "created_at": iso}]
    bookmarks = Column(JSON, default=list)

    rating = Column(Integer, nullable=True)  # 1-5
    review = Column(String(1000), nullable=True)

    user = relationship("User", back_populates="reading_progress")
    book = relationship("Book", back_populates="reading_progress")

    @property
    def remaining_pages(self) -> int:
        return max(0, (self.total_pages or 0) - (self.current_page or 0))

    @property
    def estimated_minutes_to_complete(self) -> int:
        return math.ceil(self.remaining_pages / PAGES_PER_MINUTE)

    def set_page(self, page: int, now: Optional[datetime] = None) -> None:
        """Move to ``page`` (clamped to the book) and refresh completion"""
        now = now or datetime.utcnow()
        total = self.total_pages or 0
        self.current_page = max(0, min(page, total))
        self.progress_percentage = round(self.current_page / total * 100) if total else 0
        self.last_read_at = now
        if total and self.current_page >= total:
            self.is_completed = True
            if self.completed_at is None:
                self.completed_at = now

    def upsert_bookmark(self, page: int, note: Optional[str] = None) -> list:
        """Add a bookmark, replacing any existing one on the same page"""
        bookmarks = [b for b in (self.bookmarks or []) if b.get("page") != page]
        bookmarks.append({"page": page, "note": note, "created_at": datetime.utcnow().isoformat()})
        bookmarks.sort(key=lambda b: b["page"])
        # Reassign so the JSON column is flagged dirty
        self.bookmarks = bookmarks
        return bookmarks

    def remove_bookmark(self, page: int) -> bool:
        bookmarks = self.bookmarks or []
        remaining = [b for b in bookmarks if b.get("page") != page]
        if len(remaining) == len(bookmarks):
            return False
        self.bookmarks = remaining
        return True

    def __repr__(self):
        return f"<ReadingProgress {self.user_id}:{self.book_id} {self.progress_percentage}%>"
