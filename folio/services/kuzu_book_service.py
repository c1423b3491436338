"""
Kuzu Book Service

Catalogue operations: list, fetch with reviews, create and delete.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple
from datetime import datetime

from ..domain.errors import NotFoundError, RoleForbiddenError, ValidationError
from ..domain.models import Book, Review, User, now_utc
from ..infrastructure.kuzu_repositories import KuzuBookRepository, KuzuReviewRepository
from ..utils.safe_kuzu_manager import SafeKuzuManager, get_safe_kuzu_manager

logger = logging.getLogger(__name__)


def _clean(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ''


class KuzuBookService:
    """Book catalogue backed by Kuzu."""

    def __init__(self, safe_manager: Optional[SafeKuzuManager] = None,
                 clock: Callable[[], datetime] = now_utc):
        self._safe_manager = safe_manager
        self._clock = clock
        self.book_repo = KuzuBookRepository(safe_manager)
        self.review_repo = KuzuReviewRepository(safe_manager)

    @property
    def safe_manager(self) -> SafeKuzuManager:
        if self._safe_manager is None:
            self._safe_manager = get_safe_kuzu_manager()
        return self._safe_manager

    def list_books(self) -> List[Book]:
        """Newest first."""
        return self.book_repo.get_all()

    def get_book(self, book_id: str) -> Book:
        book = self.book_repo.get_by_id(book_id)
        if book is None:
            raise NotFoundError("Book not found")
        return book

    def get_book_with_reviews(self, book_id: str) -> Tuple[Book, List[Review]]:
        book = self.get_book(book_id)
        return book, self.review_repo.list_for_book(book_id)

    def create_book(self, actor: User, data: Dict[str, Any]) -> Book:
        """Create a catalogue entry owned by ``actor``.

        ``data`` uses the API's keys: title, author, category, description,
        coverImage, pdfUrl, pages.
        """
        title = _clean(data.get('title'))
        author = _clean(data.get('author'))
        category = _clean(data.get('category'))
        missing = [name for name, value in (('title', title), ('author', author), ('category', category)) if not value]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        pages = data.get('pages') or 0
        try:
            page_count = int(pages)
        except (TypeError, ValueError):
            raise ValidationError("pages must be a whole number.")
        if isinstance(pages, bool) or page_count < 0:
            raise ValidationError("pages must be a whole number.")

        book = Book(
            title=title,
            author=author,
            category=category,
            description=_clean(data.get('description')) or None,
            cover_image=_clean(data.get('coverImage')) or None,
            pdf_url=_clean(data.get('pdfUrl')) or None,
            page_count=page_count,
            created_by=actor.id,
            created_at=self._clock(),
        )
        with self.safe_manager.transaction(user_id=actor.id, operation="create_book") as conn:
            self.book_repo.create(book, conn=conn)
        return book

    def delete_book(self, book_id: str, actor: User) -> None:
        """Delete a book; only its creator or an admin may do so.

        Reviews, progress entries and favorites go with it.
        """
        with self.safe_manager.transaction(user_id=actor.id, operation="delete_book") as conn:
            book = self.book_repo.get_by_id(book_id, conn=conn)
            if book is None:
                raise NotFoundError("Book not found")
            if not actor.is_admin and book.created_by != actor.id:
                raise RoleForbiddenError("Not authorized to delete this book")
            self.book_repo.delete(book_id, conn=conn)
