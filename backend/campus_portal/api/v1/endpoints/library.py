"""
Library API Endpoints

Catalogue:
- GET/POST /library/books, GET/PUT/DELETE /library/books/{id}
Loans:
- POST /library/books/{id}/borrow
- POST /library/borrow/{id}/return | renew | lost, DELETE /library/borrow/{id}
- GET /library/history, GET /library/stats
Digital reading:
- POST /library/books/{id}/read, GET/PUT /library/books/{id}/progress
- POST /library/books/{id}/bookmarks, DELETE /library/books/{id}/bookmarks/{page}
- POST /library/books/{id}/rate
- GET /library/reading-history, GET /library/reading-stats, GET /library/recommendations
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from campus_portal.core.database import get_db
from campus_portal.core.permissions import Capability
from campus_portal.models.user import User
from campus_portal.models.library import BorrowStatus
from campus_portal.modules.auth.dependencies import get_current_user, require_capability
from campus_portal.schemas.common import success_response
from campus_portal.schemas.library import (
    BookCreate, BookUpdate, BookResponse, BookFilters,
    BorrowRequest, ReturnRequest, RenewRequest, LossReport, BorrowRecordResponse,
    ProgressUpdate, BookmarkCreate, RatingCreate, ReadingProgressResponse,
)
from campus_portal.services.library_service import library_service

router = APIRouter(prefix="/library", tags=["Library"])


# ==================== CATALOGUE ====================

@router.get("/books")
async def list_books(
    filters: BookFilters = Depends(),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Search and browse the catalogue"""
    result = await library_service.list_books(db, filters, page, limit)
    return success_response(data={
        "books": [BookResponse.model_validate(b) for b in result["items"]],
        "pagination": result["pagination"],
    })


@router.post("/books", status_code=status.HTTP_201_CREATED)
async def create_book(
    data: BookCreate,
    current_user: User = Depends(require_capability(Capability.MANAGE_CATALOGUE)),
    db: AsyncSession = Depends(get_db)
):
    book = await library_service.create_book(db, data)
    return success_response("Book created successfully", BookResponse.model_validate(book))


@router.get("/books/{book_id}")
async def get_book(
    book_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    book = await library_service.get_book(db, book_id)
    return success_response(data=BookResponse.model_validate(book))


@router.put("/books/{book_id}")
async def update_book(
    book_id: str,
    data: BookUpdate,
    current_user: User = Depends(require_capability(Capability.MANAGE_CATALOGUE)),
    db: AsyncSession = Depends(get_db)
):
    book = await library_service.update_book(db, book_id, data)
    return success_response("Book updated successfully", BookResponse.model_validate(book))


@router.delete("/books/{book_id}")
async def delete_book(
    book_id: str,
    current_user: User = Depends(require_capability(Capability.MANAGE_CATALOGUE)),
    db: AsyncSession = Depends(get_db)
):
    await library_service.delete_book(db, book_id)
    return success_response("Book deleted successfully")


# ==================== LOANS ====================

@router.post("/books/{book_id}/borrow", status_code=status.HTTP_201_CREATED)
async def borrow_book(
    book_id: str,
    data: Optional[BorrowRequest] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Borrow one copy; due in LIBRARY_LOAN_DAYS days"""
    record = await library_service.borrow_book(db, book_id, current_user, notes=data.notes if data else None)
    return success_response("Book borrowed successfully", BorrowRecordResponse.from_record(record))


@router.post("/borrow/{record_id}/return")
async def return_book(
    record_id: str,
    data: Optional[ReturnRequest] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    data = data or ReturnRequest()
    record = await library_service.return_book(db, record_id, current_user, data.condition, data.notes)
    return success_response("Book returned successfully", BorrowRecordResponse.from_record(record))


@router.post("/borrow/{record_id}/renew")
async def renew_book(
    record_id: str,
    data: Optional[RenewRequest] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    days = data.days if data else None
    record = await library_service.renew_book(db, record_id, current_user, days)
    return success_response("Book renewed successfully", BorrowRecordResponse.from_record(record))


@router.post("/borrow/{record_id}/lost")
async def report_lost_or_damaged(
    record_id: str,
    data: Optional[LossReport] = None,
    current_user: User = Depends(require_capability(Capability.MANAGE_BORROWS)),
    db: AsyncSession = Depends(get_db)
):
    """Mark a loan lost (default) or damaged"""
    data = data or LossReport()
    record = await library_service.mark_lost_or_damaged(db, record_id, data.status, data.notes, current_user)
    return success_response(f"Book marked as {data.status}", BorrowRecordResponse.from_record(record))


@router.delete("/borrow/{record_id}")
async def delete_borrow_record(
    record_id: str,
    current_user: User = Depends(require_capability(Capability.DELETE_BORROW_RECORDS)),
    db: AsyncSession = Depends(get_db)
):
    await library_service.delete_borrow_record(db, record_id)
    return success_response("Borrow record deleted successfully")


@router.get("/history")
async def borrow_history(
    status_filter: Optional[BorrowStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Own loans; every loan for staff who can view all borrows"""
    result = await library_service.borrow_history(db, current_user, status_filter, page, limit)
    return success_response(data={
        "records": [BorrowRecordResponse.from_record(r) for r in result["items"]],
        "pagination": result["pagination"],
    })


@router.get("/stats")
async def library_stats(
    current_user: User = Depends(require_capability(Capability.VIEW_REPORTS)),
    db: AsyncSession = Depends(get_db)
):
    return success_response(data=await library_service.stats(db))


# ==================== DIGITAL READING ====================

@router.post("/books/{book_id}/read")
async def start_reading(
    book_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    progress = await library_service.start_reading(db, current_user, book_id)
    return success_response("Reading session started", ReadingProgressResponse.from_progress(progress))


@router.get("/books/{book_id}/progress")
async def get_progress(
    book_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    progress = await library_service.get_progress(db, current_user, book_id)
    return success_response(data=ReadingProgressResponse.from_progress(progress))


@router.put("/books/{book_id}/progress")
async def update_progress(
    book_id: str,
    data: ProgressUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    progress = await library_service.update_progress(db, current_user, book_id, data.current_page, data.reading_time)
    return success_response("Reading progress updated", ReadingProgressResponse.from_progress(progress))


@router.post("/books/{book_id}/bookmarks")
async def add_bookmark(
    book_id: str,
    data: BookmarkCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    progress = await library_service.add_bookmark(db, current_user, book_id, data.page, data.note)
    return success_response("Bookmark added", ReadingProgressResponse.from_progress(progress))


@router.delete("/books/{book_id}/bookmarks/{page}")
async def remove_bookmark(
    book_id: str,
    page: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    progress = await library_service.remove_bookmark(db, current_user, book_id, page)
    return success_response("Bookmark removed", ReadingProgressResponse.from_progress(progress))


@router.post("/books/{book_id}/rate")
async def rate_book(
    book_id: str,
    data: RatingCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    progress = await library_service.rate_book(db, current_user, book_id, data.rating, data.review)
    return success_response("Rating saved", ReadingProgressResponse.from_progress(progress))


@router.get("/reading-history")
async def reading_history(
    completed: bool = False,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    result = await library_service.reading_history(db, current_user, completed, page, limit)
    return success_response(data={
        "history": [
            {
                "progress": ReadingProgressResponse.from_progress(p),
                "book": BookResponse.model_validate(p.book),
            }
            for p in result["items"]
        ],
        "pagination": result["pagination"],
    })


@router.get("/reading-stats")
async def reading_stats(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return success_response(data=await library_service.reading_stats(db, current_user))


@router.get("/recommendations")
async def recommendations(
    limit: int = Query(5, ge=1, le=20),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    books = await library_service.recommendations(db, current_user, limit)
    return success_response(data=[BookResponse.model_validate(b) for b in books])
