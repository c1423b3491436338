"""
Kuzu Reading Progress Service

Keeps exactly one READING_PROGRESS relationship per (user, book). Each save
discards the previous entry and inserts a fresh one, and the very first save
for a pair bumps the book's read counter.
"""

import logging
from typing import Any, Callable, List, Optional
from datetime import datetime

from ..domain.errors import NotFoundError, ValidationError
from ..domain.models import ReadingProgress, now_utc
from ..infrastructure.kuzu_repositories import (
    KuzuBookRepository, KuzuProgressRepository, KuzuUserRepository
)
from ..utils.safe_kuzu_manager import SafeKuzuManager, get_safe_kuzu_manager

logger = logging.getLogger(__name__)


def _page_number(value: Any, field_name: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a non-negative whole number.")
    try:
        as_float = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be a non-negative whole number.")
    if not as_float.is_integer() or as_float < 0:
        raise ValidationError(f"{field_name} must be a non-negative whole number.")
    return int(as_float)


class KuzuReadingProgressService:
    """Service for managing per-book resume positions."""

    def __init__(self, safe_manager: Optional[SafeKuzuManager] = None,
                 clock: Callable[[], datetime] = now_utc):
        self._safe_manager = safe_manager
        self._clock = clock
        self.progress_repo = KuzuProgressRepository(safe_manager)
        self.book_repo = KuzuBookRepository(safe_manager)
        self.user_repo = KuzuUserRepository(safe_manager)

    @property
    def safe_manager(self) -> SafeKuzuManager:
        if self._safe_manager is None:
            self._safe_manager = get_safe_kuzu_manager()
        return self._safe_manager

    def record_progress(self, user_id: str, book_id: str, current_page: Any, total_pages: Any) -> ReadingProgress:
        """
        Replace the user's progress entry for a book.

        Positions are not checked against the book's length; a current page
        beyond total pages is stored as given.

        Returns:
            The entry now stored for the pair
        """
        if not book_id:
            raise ValidationError("bookId is required.")
        current = _page_number(current_page, 'currentPage')
        total = _page_number(total_pages, 'totalPages')

        with self.safe_manager.transaction(user_id=user_id, operation="record_progress") as conn:
            if self.book_repo.get_by_id(book_id, conn=conn) is None:
                raise NotFoundError("Book not found")
            if self.user_repo.get_by_id(user_id, conn=conn) is None:
                raise NotFoundError("User not found")

            already_started = self.progress_repo.find(user_id, book_id, conn=conn) is not None
            if not already_started:
                self.book_repo.increment_read_count(book_id, conn=conn)

            self.progress_repo.delete(user_id, book_id, conn=conn)
            progress = ReadingProgress(
                user_id=user_id,
                book_id=book_id,
                current_page=current,
                total_pages=total,
                last_read=self._clock(),
            )
            self.progress_repo.create(progress, conn=conn)

        if not already_started:
            logger.info(f"User {user_id} started reading book {book_id}")
        logger.debug(f"Progress saved for user {user_id} book {book_id}: page {current}/{total}")
        return progress

    def get_progress(self, user_id: str, book_id: str) -> Optional[ReadingProgress]:
        return self.progress_repo.find(user_id, book_id)

    def list_progress(self, user_id: str) -> List[ReadingProgress]:
        """Most recently read first, each with its book summary."""
        return self.progress_repo.list_for_user(user_id)

    def count_entries(self, user_id: str, book_id: str) -> int:
        return self.progress_repo.count_entries(user_id, book_id)
