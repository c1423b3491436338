"""
Kuzu Favorites Service

A user's favorites are a set of FAVORITED relationships; toggling flips
membership of one book.
"""

import logging
from typing import List, Optional, Tuple

from ..domain.errors import NotFoundError
from ..domain.models import Book
from ..infrastructure.kuzu_repositories import KuzuBookRepository, KuzuFavoriteRepository
from ..utils.safe_kuzu_manager import SafeKuzuManager, get_safe_kuzu_manager

logger = logging.getLogger(__name__)

ADDED_MESSAGE = "Added to favorites"
REMOVED_MESSAGE = "Removed from favorites"


class KuzuFavoritesService:
    """Favorites registry."""

    def __init__(self, safe_manager: Optional[SafeKuzuManager] = None):
        self._safe_manager = safe_manager
        self.favorite_repo = KuzuFavoriteRepository(safe_manager)
        self.book_repo = KuzuBookRepository(safe_manager)

    @property
    def safe_manager(self) -> SafeKuzuManager:
        if self._safe_manager is None:
            self._safe_manager = get_safe_kuzu_manager()
        return self._safe_manager

    def toggle(self, user_id: str, book_id: str) -> Tuple[bool, List[str]]:
        """
        Flip membership of ``book_id`` in the user's favorites.

        Returns:
            (added, favorite book ids after the flip)
        """
        with self.safe_manager.transaction(user_id=user_id, operation="toggle_favorite") as conn:
            if self.book_repo.get_by_id(book_id, conn=conn) is None:
                raise NotFoundError("Book not found")
            if self.favorite_repo.exists(user_id, book_id, conn=conn):
                self.favorite_repo.remove(user_id, book_id, conn=conn)
                added = False
            else:
                self.favorite_repo.add(user_id, book_id, conn=conn)
                added = True
            favorites = self.favorite_repo.book_ids_for_user(user_id, conn=conn)

        logger.info(f"User {user_id} {'added' if added else 'removed'} favorite {book_id}")
        return added, favorites

    def list_favorites(self, user_id: str) -> List[Book]:
        return self.favorite_repo.books_for_user(user_id)

    def favorite_ids(self, user_id: str) -> List[str]:
        return self.favorite_repo.book_ids_for_user(user_id)
