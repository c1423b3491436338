"""
Kuzu Review Service

One review per (user, book). A book's rating and review count are always
recomputed from the full set of live reviews, never adjusted in place.
"""

import logging
from typing import Callable, Dict, List, Optional, Any
from datetime import datetime

from ..domain.errors import ConflictError, NotFoundError, ValidationError
from ..domain.models import Review, now_utc
from ..infrastructure.kuzu_repositories import (
    Connection, KuzuBookRepository, KuzuReviewRepository, KuzuUserRepository
)
from ..utils.safe_kuzu_manager import SafeKuzuManager, get_safe_kuzu_manager

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 5


def parse_rating(value: Any) -> int:
    """Integer 1-5; accepts numeric strings, rejects booleans and fractions."""
    if isinstance(value, bool):
        raise ValidationError(f"Rating must be a whole number between {MIN_RATING} and {MAX_RATING}.")
    try:
        as_float = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Rating must be a whole number between {MIN_RATING} and {MAX_RATING}.")
    if not as_float.is_integer() or not MIN_RATING <= as_float <= MAX_RATING:
        raise ValidationError(f"Rating must be a whole number between {MIN_RATING} and {MAX_RATING}.")
    return int(as_float)


class KuzuReviewService:
    """Review submission and rating aggregation."""

    def __init__(self, safe_manager: Optional[SafeKuzuManager] = None,
                 clock: Callable[[], datetime] = now_utc):
        self._safe_manager = safe_manager
        self._clock = clock
        self.review_repo = KuzuReviewRepository(safe_manager)
        self.book_repo = KuzuBookRepository(safe_manager)
        self.user_repo = KuzuUserRepository(safe_manager)

    @property
    def safe_manager(self) -> SafeKuzuManager:
        if self._safe_manager is None:
            self._safe_manager = get_safe_kuzu_manager()
        return self._safe_manager

    def recompute(self, book_id: str, conn: Connection = None) -> Dict[str, Any]:
        """Rewrite the book's aggregate from its current reviews and return it."""
        aggregate = self.review_repo.aggregate(book_id, conn=conn)
        self.book_repo.set_rating_aggregate(book_id, aggregate['average_rating'],
                                            aggregate['review_count'], conn=conn)
        return aggregate

    def submit_review(self, user_id: str, book_id: str, rating: Any, comment: Optional[str]) -> Review:
        """
        Insert the caller's review and refresh the book's aggregate.

        Raises:
            ValidationError: rating outside 1-5 or empty comment
            NotFoundError: unknown book or user
            ConflictError: the user already reviewed this book
        """
        rating_value = parse_rating(rating)
        comment = (comment or '').strip()
        if not comment:
            raise ValidationError("A review comment is required.")

        with self.safe_manager.transaction(user_id=user_id, operation="submit_review") as conn:
            book = self.book_repo.get_by_id(book_id, conn=conn)
            if book is None:
                raise NotFoundError("Book not found")
            user = self.user_repo.get_by_id(user_id, conn=conn)
            if user is None:
                raise NotFoundError("User not found")
            if self.review_repo.find(user_id, book_id, conn=conn) is not None:
                raise ConflictError("You have already reviewed this book")

            review = Review(
                user_id=user_id,
                book_id=book_id,
                reviewer_name=user.name,
                rating=rating_value,
                comment=comment,
                created_at=self._clock(),
            )
            self.review_repo.create(review, conn=conn)
            aggregate = self.recompute(book_id, conn=conn)

        logger.info(f"Review {review.id} added to book {book_id}; "
                    f"rating={aggregate['average_rating']:.2f} over {aggregate['review_count']}")
        return review

    def delete_review(self, user_id: str, book_id: str) -> Dict[str, Any]:
        """Remove the caller's review of a book and refresh the aggregate."""
        with self.safe_manager.transaction(user_id=user_id, operation="delete_review") as conn:
            if self.review_repo.find(user_id, book_id, conn=conn) is None:
                raise NotFoundError("Review not found")
            self.review_repo.delete(user_id, book_id, conn=conn)
            aggregate = self.recompute(book_id, conn=conn)
        logger.info(f"Review by {user_id} removed from book {book_id}")
        return aggregate

    def list_reviews(self, book_id: str) -> List[Review]:
        return self.review_repo.list_for_book(book_id)

    def count_reviews_by_user(self, user_id: str) -> int:
        return self.review_repo.count_by_user(user_id)
