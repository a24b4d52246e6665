from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import List, Literal, Optional
from datetime import datetime
import re

from campus_portal.models.library import (
    BookCategory, BookCondition, BorrowRecord, BorrowStatus, ReadingProgress, ISBN_PATTERN,
)


def _normalize_isbn(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    value = re.sub(r"[\s-]", "", value).upper()
    if not ISBN_PATTERN.match(value):
        raise ValueError("Please enter a valid ISBN")
    return value


# ============================================================================
# Books
# ============================================================================

class BookBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    author: str = Field(..., min_length=1, max_length=100)
    category: BookCategory = BookCategory.OTHER
    description: Optional[str] = Field(None, max_length=1000)
    location: Optional[str] = Field(None, max_length=100)
    published_year: Optional[int] = Field(None, ge=1000, le=2100)
    publisher: Optional[str] = Field(None, max_length=200)
    edition: Optional[str] = Field(None, max_length=50)
    language: str = Field("English", max_length=50)
    tags: List[str] = Field(default_factory=list)
    cover_image: Optional[str] = None
    is_digital: bool = False
    total_pages: Optional[int] = Field(None, ge=1)


class BookCreate(BookBase):
    isbn: str
    total_copies: int = Field(1, ge=1)

    @field_validator("isbn")
    @classmethod
    def validate_isbn(cls, v: Optional[str]) -> Optional[str]:
        return _normalize_isbn(v)


class BookUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    author: Optional[str] = Field(None, min_length=1, max_length=100)
    isbn: Optional[str] = None
    category: Optional[BookCategory] = None
    description: Optional[str] = Field(None, max_length=1000)
    total_copies: Optional[int] = Field(None, ge=1)
    location: Optional[str] = Field(None, max_length=100)
    published_year: Optional[int] = Field(None, ge=1000, le=2100)
    publisher: Optional[str] = Field(None, max_length=200)
    edition: Optional[str] = Field(None, max_length=50)
    language: Optional[str] = Field(None, max_length=50)
    tags: Optional[List[str]] = None
    cover_image: Optional[str] = None
    is_digital: Optional[bool] = None
    total_pages: Optional[int] = Field(None, ge=1)

    @field_validator("isbn")
    @classmethod
    def validate_isbn(cls, v: Optional[str]) -> Optional[str]:
        return _normalize_isbn(v)


class BookResponse(BookBase):
    model_config = ConfigDict(from_attributes=True)

    id: str
    isbn: str
    total_copies: int
    available_copies: int
    times_borrowed: int
    rating_average: float
    rating_count: int
    is_available: bool
    created_at: datetime


class BookSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    author: str
    isbn: str
    cover_image: Optional[str] = None


# ============================================================================
# Borrowing
# ============================================================================

class BorrowRequest(BaseModel):
    notes: Optional[str] = Field(None, max_length=1000)


class ReturnRequest(BaseModel):
    condition: BookCondition = BookCondition.GOOD
    notes: Optional[str] = Field(None, max_length=1000)


class RenewRequest(BaseModel):
    days: int = Field(14, ge=1, le=60)


class LossReport(BaseModel):
    status: Literal["lost", "damaged"] = "lost"
    notes: Optional[str] = Field(None, max_length=1000)


class BorrowRecordResponse(BaseModel):
    id: str
    user_id: str
    book_id: str
    book: Optional[BookSummary] = None
    borrow_date: datetime
    due_date: datetime
    return_date: Optional[datetime] = None
    status: BorrowStatus
    renewal_count: int
    max_renewals: int
    fine_amount: float
    fine_paid: bool
    condition: BookCondition
    notes: Optional[str] = None
    days_borrowed: int
    days_overdue: int
    can_renew: bool

    @classmethod
    def from_record(cls, record: BorrowRecord, now: Optional[datetime] = None,
                    include_book: bool = True) -> "BorrowRecordResponse":
        """Serialize with status and fine as of ``now``, not as last persisted"""
        now = now or datetime.utcnow()
        book = None
        if include_book and "book" in record.__dict__ and record.book is not None:
            book = BookSummary.model_validate(record.book)
        return cls(
            id=record.id,
            user_id=record.user_id,
            book_id=record.book_id,
            book=book,
            borrow_date=record.borrow_date,
            due_date=record.due_date,
            return_date=record.return_date,
            status=record.effective_status(now),
            renewal_count=record.renewal_count,
            max_renewals=record.max_renewals,
            fine_amount=record.accrued_fine(now),
            fine_paid=record.fine_paid,
            condition=record.condition,
            notes=record.notes,
            days_borrowed=record.days_borrowed(now),
            days_overdue=record.days_overdue(now),
            can_renew=record.can_renew(now),
        )


# ============================================================================
# Reading progress
# ============================================================================

class ProgressUpdate(BaseModel):
    current_page: int = Field(..., ge=0)
    reading_time: int = Field(0, ge=0, description="Minutes spent in this session")


class BookmarkCreate(BaseModel):
    page: int = Field(..., ge=1)
    note: Optional[str] = Field(None, max_length=500)


class RatingCreate(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    review: Optional[str] = Field(None, max_length=1000)


class Bookmark(BaseModel):
    page: int
    note: Optional[str] = None
    created_at: Optional[str] = None


class ReadingProgressResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    book_id: str
    current_page: int
    total_pages: int
    progress_percentage: int
    reading_time: int
    started_at: datetime
    last_read_at: datetime
    completed_at: Optional[datetime] = None
    is_completed: bool
    bookmarks: List[Bookmark] = Field(default_factory=list)
    rating: Optional[int] = None
    review: Optional[str] = None
    remaining_pages: int
    estimated_minutes_to_complete: int

    @classmethod
    def from_progress(cls, progress: ReadingProgress) -> "ReadingProgressResponse":
        return cls.model_validate(progress)


class BookFilters(BaseModel):
    """Catalogue query parameters"""
    search: Optional[str] = None
    category: Optional[BookCategory] = None
    author: Optional[str] = None
    availability: Optional[Literal["available", "unavailable"]] = None
    is_digital: Optional[bool] = None
    language: Optional[str] = None
    tag: Optional[str] = None
    publisher: Optional[str] = None
    min_rating: Optional[float] = Field(None, ge=0, le=5)
    max_rating: Optional[float] = Field(None, ge=0, le=5)
    published_from: Optional[int] = None
    published_to: Optional[int] = None
    sort_by: Literal["title", "author", "published_year", "rating", "popularity", "created_at"] = "title"
    sort_order: Literal["asc", "desc"] = "asc"

