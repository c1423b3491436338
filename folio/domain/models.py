"""
Domain models for the Folio library.

These models represent the core business entities independent of persistence concerns.
Row dictionaries coming back from Kuzu are turned into these through the
``from_row`` constructors.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any
from enum import Enum

from flask_login import UserMixin


def now_utc() -> datetime:
    """Timezone-aware UTC now for default timestamps (avoid datetime.utcnow deprecation)."""
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Kuzu hands TIMESTAMP values back naive (UTC); reattach the zone."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def isoformat(value: Optional[datetime]) -> Optional[str]:
    value = ensure_utc(value)
    return value.isoformat() if value else None


class Role(Enum):
    """Account role."""
    READER = "reader"
    ADMIN = "admin"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional['Role']:
        if value is None or value == '':
            return cls.READER
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


@dataclass
class User(UserMixin):
    """User domain model."""
    id: Optional[str] = None
    name: str = ""
    email: str = ""
    password_hash: str = ""

    # Security fields
    is_admin: bool = False
    is_blocked: bool = False
    last_login: Optional[datetime] = None

    # System fields
    created_at: datetime = field(default_factory=now_utc)
    updated_at: datetime = field(default_factory=now_utc)

    @property
    def role(self) -> Role:
        return Role.ADMIN if self.is_admin else Role.READER

    def get_id(self) -> str:
        """Required by Flask-Login."""
        return self.id or ""

    def set_password(self, password: str):
        """Set password hash using werkzeug."""
        from werkzeug.security import generate_password_hash
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        """Check password using werkzeug."""
        from werkzeug.security import check_password_hash
        if not self.password_hash or not password:
            return False
        return check_password_hash(self.password_hash, password)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'User':
        return cls(
            id=row['id'],
            name=row.get('name') or '',
            email=row.get('email') or '',
            password_hash=row.get('password_hash') or '',
            is_admin=bool(row.get('is_admin')),
            is_blocked=bool(row.get('is_blocked')),
            last_login=ensure_utc(row.get('last_login')),
            created_at=ensure_utc(row.get('created_at')) or now_utc(),
            updated_at=ensure_utc(row.get('updated_at')) or now_utc(),
        )

    def to_public_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'role': self.role.value,
            'isBlocked': self.is_blocked,
            'createdAt': isoformat(self.created_at),
        }


@dataclass
class Book:
    """Book with its derived counters.

    ``average_rating`` and ``review_count`` are recomputed from the live
    reviews; ``read_count`` only ever grows.
    """
    id: Optional[str] = None
    title: str = ""
    author: str = ""
    category: str = ""
    description: Optional[str] = None
    cover_image: Optional[str] = None
    pdf_url: Optional[str] = None
    page_count: int = 0
    read_count: int = 0
    average_rating: float = 0.0
    review_count: int = 0
    created_by: Optional[str] = None
    created_at: datetime = field(default_factory=now_utc)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'Book':
        return cls(
            id=row['id'],
            title=row.get('title') or '',
            author=row.get('author') or '',
            category=row.get('category') or '',
            description=row.get('description'),
            cover_image=row.get('cover_image'),
            pdf_url=row.get('pdf_url'),
            page_count=int(row.get('page_count') or 0),
            read_count=int(row.get('read_count') or 0),
            average_rating=float(row.get('average_rating') or 0.0),
            review_count=int(row.get('review_count') or 0),
            created_by=row.get('created_by'),
            created_at=ensure_utc(row.get('created_at')) or now_utc(),
        )

    def to_summary_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'title': self.title,
            'author': self.author,
            'coverImage': self.cover_image,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'title': self.title,
            'author': self.author,
            'category': self.category,
            'description': self.description,
            'coverImage': self.cover_image,
            'pdfUrl': self.pdf_url,
            'pages': self.page_count,
            'reads': self.read_count,
            'rating': self.average_rating,
            'numReviews': self.review_count,
            'createdBy': self.created_by,
            'createdAt': isoformat(self.created_at),
        }


@dataclass
class Review:
    """A reader's rating of a book. At most one per (user, book)."""
    id: Optional[str] = None
    user_id: str = ""
    book_id: str = ""
    reviewer_name: str = ""
    rating: int = 0
    comment: str = ""
    created_at: datetime = field(default_factory=now_utc)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'user': self.user_id,
            'book': self.book_id,
            'name': self.reviewer_name,
            'rating': self.rating,
            'comment': self.comment,
            'createdAt': isoformat(self.created_at),
        }


@dataclass
class ReadingProgress:
    """The single resume position of a user within a book."""
    user_id: str = ""
    book_id: str = ""
    current_page: int = 0
    total_pages: int = 0
    last_read: datetime = field(default_factory=now_utc)
    book: Optional[Book] = None

    @property
    def percent_complete(self) -> float:
        if self.total_pages <= 0:
            return 0.0
        return round(min(100.0, 100.0 * self.current_page / self.total_pages), 1)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'bookId': self.book_id,
            'currentPage': self.current_page,
            'totalPages': self.total_pages,
            'percentComplete': self.percent_complete,
            'lastRead': isoformat(self.last_read),
        }
        if self.book is not None:
            data['book'] = self.book.to_summary_dict()
        return data


@dataclass
class ChatTurn:
    """One prior turn of a companion conversation, as resupplied by the client."""
    role: str
    content: str


@dataclass
class GenerationRequest:
    """Ordered instructions for the downstream text-generation service."""
    messages: List[Dict[str, str]] = field(default_factory=list)
    temperature: float = 0.3
    max_tokens: int = 800
