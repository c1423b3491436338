"""
Kuzu User Service

Handles registration, authentication, profiles and admin user management.
"""

import hmac
import re
import logging
from typing import Any, Callable, Dict, List, Optional
from datetime import datetime

from ..domain.errors import (
    ConflictError, NotFoundError, SuspendedError, UnauthenticatedError, ValidationError
)
from ..domain.models import Role, User, ensure_utc, now_utc
from ..infrastructure.kuzu_repositories import (
    KuzuBookRepository, KuzuFavoriteRepository, KuzuProgressRepository,
    KuzuReviewRepository, KuzuUserRepository
)
from ..utils.password_policy import (
    get_password_requirements, is_password_strong, resolve_min_password_length
)
from ..utils.safe_kuzu_manager import SafeKuzuManager, get_safe_kuzu_manager
from .kuzu_review_service import KuzuReviewService

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')

SUSPENDED_MESSAGE = "Your account has been suspended. Please contact an administrator."
RECENT_ACTIVITY_PER_KIND = 3
RECENT_ACTIVITY_LIMIT = 5


def normalize_email(email: Any) -> str:
    return email.strip().lower() if isinstance(email, str) else ''


class KuzuUserService:
    """User service using the Kuzu repositories."""

    def __init__(self, safe_manager: Optional[SafeKuzuManager] = None,
                 clock: Callable[[], datetime] = now_utc):
        self._safe_manager = safe_manager
        self._clock = clock
        self.user_repo = KuzuUserRepository(safe_manager)
        self.book_repo = KuzuBookRepository(safe_manager)
        self.review_repo = KuzuReviewRepository(safe_manager)
        self.progress_repo = KuzuProgressRepository(safe_manager)
        self.favorite_repo = KuzuFavoriteRepository(safe_manager)
        self.review_service = KuzuReviewService(safe_manager, clock=clock)

    @property
    def safe_manager(self) -> SafeKuzuManager:
        if self._safe_manager is None:
            self._safe_manager = get_safe_kuzu_manager()
        return self._safe_manager

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    def get_user_by_id_sync(self, user_id: str) -> Optional[User]:
        """Get user by ID (used by the request loader on every call)."""
        if not user_id:
            return None
        return self.user_repo.get_by_id(user_id)

    # ------------------------------------------------------------------
    # Registration & login
    # ------------------------------------------------------------------
    def _validate_password(self, password: Any) -> str:
        if not is_password_strong(password if isinstance(password, str) else None):
            min_length, source = resolve_min_password_length(include_source=True)
            logger.debug(f"Rejected weak password (minimum length {min_length} from {source})")
            requirements = "; ".join(get_password_requirements())
            raise ValidationError(f"Password must meet these requirements: {requirements}")
        return password

    def register(self, name: Any, email: Any, password: Any, role: Any = None,
                 admin_secret: Optional[str] = None,
                 required_admin_secret: Optional[str] = None) -> User:
        """
        Create a new account.

        Args:
            role: 'reader' (default) or 'admin'
            admin_secret: secret presented by the caller for an admin account
            required_admin_secret: the configured secret it must match

        Raises:
            ValidationError: missing/malformed fields or unknown role
            UnauthenticatedError: admin role requested with a wrong or missing secret
            ConflictError: the email is already registered
        """
        name = name.strip() if isinstance(name, str) else ''
        email = normalize_email(email)
        if not name or not email or not password:
            raise ValidationError("Name, email and password are required.")
        if not EMAIL_PATTERN.match(email):
            raise ValidationError("Please provide a valid email address.")
        self._validate_password(password)

        parsed_role = Role.parse(role)
        if parsed_role is None:
            raise ValidationError("Role must be 'reader' or 'admin'.")
        if parsed_role is Role.ADMIN:
            if not required_admin_secret or not isinstance(admin_secret, str) or \
                    not hmac.compare_digest(admin_secret.encode(), required_admin_secret.encode()):
                logger.warning(f"Rejected admin registration for {email}: bad admin secret")
                raise UnauthenticatedError("Invalid admin secret")

        now = self._clock()
        user = User(
            name=name,
            email=email,
            is_admin=parsed_role is Role.ADMIN,
            created_at=now,
            updated_at=now,
        )
        user.set_password(password)

        with self.safe_manager.transaction(operation="register_user") as conn:
            if self.user_repo.get_by_email(email, conn=conn) is not None:
                raise ConflictError("User already exists")
            self.user_repo.create(user, conn=conn)

        logger.info(f"Registered {parsed_role.value} account {user.id}")
        return user

    def authenticate(self, email: Any, password: Any) -> User:
        """
        Check credentials and stamp ``last_login``.

        Wrong credentials leave the stored user untouched.
        """
        user = self.user_repo.get_by_email(normalize_email(email))
        if user is None or not isinstance(password, str) or not user.check_password(password):
            raise UnauthenticatedError("Invalid email or password")
        if user.is_blocked:
            raise SuspendedError(SUSPENDED_MESSAGE)

        user.last_login = self._clock()
        with self.safe_manager.transaction(user_id=user.id, operation="stamp_last_login") as conn:
            self.user_repo.update(user.id, {'last_login': user.last_login}, conn=conn)
        return user

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------
    def get_profile(self, user_id: str) -> Dict[str, Any]:
        """User plus favorites, progress list and counts."""
        user = self.user_repo.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        favorites = self.favorite_repo.books_for_user(user_id)
        progress = self.progress_repo.list_for_user(user_id)
        return {
            'user': user,
            'favorites': favorites,
            'progress': progress,
            'reviews_count': self.review_service.count_reviews_by_user(user_id),
        }

    def update_profile(self, user_id: str, name: Any = None, email: Any = None,
                       password: Any = None) -> User:
        updates: Dict[str, Any] = {}
        if name is not None:
            name = name.strip() if isinstance(name, str) else ''
            if not name:
                raise ValidationError("Name cannot be empty.")
            updates['name'] = name
        if email is not None:
            email = normalize_email(email)
            if not EMAIL_PATTERN.match(email):
                raise ValidationError("Please provide a valid email address.")
            updates['email'] = email
        if password:
            scratch = User()
            scratch.set_password(self._validate_password(password))
            updates['password_hash'] = scratch.password_hash

        with self.safe_manager.transaction(user_id=user_id, operation="update_profile") as conn:
            user = self.user_repo.get_by_id(user_id, conn=conn)
            if user is None:
                raise NotFoundError("User not found")
            if 'email' in updates and updates['email'] != user.email:
                if self.user_repo.get_by_email(updates['email'], conn=conn) is not None:
                    raise ConflictError("Email already in use")
            if updates:
                updates['updated_at'] = self._clock()
                self.user_repo.update(user_id, updates, conn=conn)
                for key, value in updates.items():
                    setattr(user, key, value)
        return user

    # ------------------------------------------------------------------
    # Admin
    # ------------------------------------------------------------------
    def toggle_block(self, actor_id: str, target_id: str) -> bool:
        """Flip the target's block flag and return the new value."""
        if actor_id == target_id:
            raise ValidationError("You cannot block yourself.")
        with self.safe_manager.transaction(user_id=actor_id, operation="toggle_block") as conn:
            target = self.user_repo.get_by_id(target_id, conn=conn)
            if target is None:
                raise NotFoundError("User not found")
            blocked = not target.is_blocked
            self.user_repo.update(target_id, {'is_blocked': blocked, 'updated_at': self._clock()}, conn=conn)
        logger.info(f"Admin {actor_id} {'blocked' if blocked else 'unblocked'} user {target_id}")
        return blocked

    def delete_user(self, actor_id: str, target_id: str) -> None:
        """Remove a user with their reviews, progress and favorites.

        Every book the user had reviewed gets its aggregate recomputed in the
        same transaction.
        """
        if actor_id == target_id:
            raise ValidationError("You cannot delete your own admin account.")
        with self.safe_manager.transaction(user_id=actor_id, operation="delete_user") as conn:
            if self.user_repo.get_by_id(target_id, conn=conn) is None:
                raise NotFoundError("User not found")
            reviewed_books = self.review_repo.book_ids_reviewed_by(target_id, conn=conn)
            self.user_repo.delete(target_id, conn=conn)
            for book_id in reviewed_books:
                self.review_service.recompute(book_id, conn=conn)
        logger.info(f"Admin {actor_id} deleted user {target_id} ({len(reviewed_books)} reviewed books recomputed)")

    def list_users_with_stats(self) -> List[Dict[str, Any]]:
        results = []
        for user in self.user_repo.get_all():
            results.append({
                'user': user,
                'stats': {
                    'booksRead': self.progress_repo.count_for_user(user.id),
                    'favorites': self.favorite_repo.count_for_user(user.id),
                    'reviews': self.review_repo.count_by_user(user.id),
                },
            })
        return results

    def system_stats(self) -> Dict[str, Any]:
        """Dashboard counts plus the newest joins and reviews."""
        activity: List[Dict[str, Any]] = []
        for user in self.user_repo.get_newest(RECENT_ACTIVITY_PER_KIND):
            activity.append({
                'id': user.id,
                'user': user.name,
                'content': 'Member',
                'action': 'Joined Library',
                'date': user.created_at,
                'type': 'user',
            })
        for row in self.review_repo.get_newest(RECENT_ACTIVITY_PER_KIND):
            activity.append({
                'id': row.get('id'),
                'user': row.get('user_name') or 'Anonymous',
                'content': row.get('book_title') or 'Deleted Book',
                'action': f"Rated {row.get('rating')} Stars",
                'date': ensure_utc(row.get('created_at')) or now_utc(),
                'type': 'review',
            })
        activity.sort(key=lambda item: item['date'], reverse=True)

        return {
            'counts': {
                'totalBooks': self.book_repo.count_all(),
                'activeReaders': self.progress_repo.count_active_readers(),
                'totalReads': self.book_repo.total_reads(),
                'totalReviews': self.review_repo.count_all(),
            },
            'recentActivity': activity[:RECENT_ACTIVITY_LIMIT],
        }
