"""
Kuzu Services Package

- KuzuUserService: accounts, login, profiles, admin management
- KuzuBookService: catalogue
- KuzuReadingProgressService: per-book resume positions and read counts
- KuzuReviewService: reviews and rating aggregates
- KuzuFavoritesService: favorites set
- AIService / ReadingCompanion: text generation for the reader
"""

from .kuzu_user_service import KuzuUserService
from .kuzu_book_service import KuzuBookService
from .kuzu_reading_progress_service import KuzuReadingProgressService
from .kuzu_review_service import KuzuReviewService
from .kuzu_favorites_service import KuzuFavoritesService
from .ai_service import AIService
from .reading_companion_service import ReadingCompanion

# Service instances with lazy initialization
_user_service = None
_book_service = None
_progress_service = None
_review_service = None
_favorites_service = None


def _get_user_service():
    """Get user service instance with lazy initialization."""
    global _user_service
    if _user_service is None:
        _user_service = KuzuUserService()
    return _user_service


def _get_book_service():
    """Get book service instance with lazy initialization."""
    global _book_service
    if _book_service is None:
        _book_service = KuzuBookService()
    return _book_service


def _get_progress_service():
    """Get reading progress service instance with lazy initialization."""
    global _progress_service
    if _progress_service is None:
        _progress_service = KuzuReadingProgressService()
    return _progress_service


def _get_review_service():
    """Get review service instance with lazy initialization."""
    global _review_service
    if _review_service is None:
        _review_service = KuzuReviewService()
    return _review_service


def _get_favorites_service():
    """Get favorites service instance with lazy initialization."""
    global _favorites_service
    if _favorites_service is None:
        _favorites_service = KuzuFavoritesService()
    return _favorites_service


class _LazyService:
    """Lazy service that initializes on first access."""
    def __init__(self, service_getter):
        self._service_getter = service_getter
        self._service = None

    def __getattr__(self, name):
        if self._service is None:
            self._service = self._service_getter()
        return getattr(self._service, name)


# Create lazy service instances
user_service = _LazyService(_get_user_service)
book_service = _LazyService(_get_book_service)
progress_service = _LazyService(_get_progress_service)
review_service = _LazyService(_get_review_service)
favorites_service = _LazyService(_get_favorites_service)


def reset_all_services():
    """Drop every service instance so the next access rebuilds against the current manager."""
    global _user_service, _book_service, _progress_service, _review_service, _favorites_service

    _user_service = None
    _book_service = None
    _progress_service = None
    _review_service = None
    _favorites_service = None

    # Wrappers stay in place: blueprints hold references to them
    for wrapper in (user_service, book_service, progress_service, review_service, favorites_service):
        wrapper._service = None

    return True


__all__ = [
    'KuzuUserService',
    'KuzuBookService',
    'KuzuReadingProgressService',
    'KuzuReviewService',
    'KuzuFavoritesService',
    'AIService',
    'ReadingCompanion',
    'user_service',
    'book_service',
    'progress_service',
    'review_service',
    'favorites_service',
    'reset_all_services',
]
