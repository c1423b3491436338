"""
Kuzu repositories for the Folio graph schema.

Every Cypher statement the application runs lives here. Write methods take
the connection yielded by ``SafeKuzuManager.transaction()`` so that a
service can compose several statements into one atomic unit; read methods
accept one too and otherwise open their own.
"""

import uuid
import logging
from typing import Optional, List, Dict, Any

import kuzu  # type: ignore

from ..domain.models import User, Book, Review, ReadingProgress, ensure_utc, now_utc
from ..utils.safe_kuzu_manager import SafeKuzuManager, get_safe_kuzu_manager

logger = logging.getLogger(__name__)

Connection = Optional[kuzu.Connection]

_USER_UPDATABLE = ('name', 'email', 'password_hash', 'is_admin', 'is_blocked', 'last_login', 'updated_at')


class _KuzuRepository:
    """Shared plumbing: a lazily resolved manager and query helpers."""

    def __init__(self, safe_manager: Optional[SafeKuzuManager] = None):
        # Lazy initialization - don't connect during startup
        self._safe_manager = safe_manager

    @property
    def safe_manager(self) -> SafeKuzuManager:
        if self._safe_manager is None:
            self._safe_manager = get_safe_kuzu_manager()
        return self._safe_manager

    def _rows(self, query: str, params: Optional[Dict[str, Any]] = None,
              conn: Connection = None, operation: str = "query") -> List[Dict[str, Any]]:
        return self.safe_manager.execute_query(query, params, operation=operation, conn=conn)

    def _value(self, query: str, params: Optional[Dict[str, Any]] = None,
               conn: Connection = None, default: Any = 0, operation: str = "query") -> Any:
        return self.safe_manager.query_value(query, params, default=default, operation=operation, conn=conn)


class KuzuUserRepository(_KuzuRepository):
    """User nodes."""

    def create(self, user: User, conn: Connection = None) -> User:
        if not user.id:
            user.id = str(uuid.uuid4())
        self._rows(
            """
            CREATE (u:User {
                id: $id,
                name: $name,
                email: $email,
                password_hash: $password_hash,
                is_admin: $is_admin,
                is_blocked: $is_blocked,
                created_at: $created_at,
                updated_at: $updated_at
            })
            """,
            {
                'id': user.id,
                'name': user.name,
                'email': user.email,
                'password_hash': user.password_hash,
                'is_admin': bool(user.is_admin),
                'is_blocked': bool(user.is_blocked),
                'created_at': user.created_at,
                'updated_at': user.updated_at,
            },
            conn=conn,
            operation="create_user",
        )
        logger.info(f"Created user {user.id}")
        return user

    def get_by_id(self, user_id: str, conn: Connection = None) -> Optional[User]:
        rows = self._rows("MATCH (u:User {id: $user_id}) RETURN u",
                          {'user_id': user_id}, conn=conn, operation="get_user")
        return User.from_row(rows[0]['u']) if rows else None

    def get_by_email(self, email: str, conn: Connection = None) -> Optional[User]:
        rows = self._rows("MATCH (u:User {email: $email}) RETURN u",
                          {'email': email}, conn=conn, operation="get_user_by_email")
        return User.from_row(rows[0]['u']) if rows else None

    def get_all(self) -> List[User]:
        rows = self._rows("MATCH (u:User) RETURN u ORDER BY u.created_at DESC", operation="list_users")
        return [User.from_row(row['u']) for row in rows]

    def get_newest(self, limit: int) -> List[User]:
        rows = self._rows(f"MATCH (u:User) RETURN u ORDER BY u.created_at DESC LIMIT {int(limit)}",
                          operation="newest_users")
        return [User.from_row(row['u']) for row in rows]

    def update(self, user_id: str, updates: Dict[str, Any], conn: Connection = None) -> None:
        fields = {k: v for k, v in updates.items() if k in _USER_UPDATABLE}
        if not fields:
            return
        fields.setdefault('updated_at', now_utc())
        set_clause = ', '.join(f"u.{key} = ${key}" for key in fields)
        self._rows(f"MATCH (u:User {{id: $user_id}}) SET {set_clause}",
                   {**fields, 'user_id': user_id}, conn=conn, operation="update_user")

    def delete(self, user_id: str, conn: Connection = None) -> None:
        """Remove the user and every relationship hanging off it."""
        self._rows("MATCH (u:User {id: $user_id}) DETACH DELETE u",
                   {'user_id': user_id}, conn=conn, operation="delete_user")
        logger.info(f"Deleted user {user_id}")

    def count_all(self) -> int:
        return int(self._value("MATCH (u:User) RETURN count(u)", operation="count_users"))


class KuzuBookRepository(_KuzuRepository):
    """Book nodes and their derived counters."""

    def create(self, book: Book, conn: Connection = None) -> Book:
        if not book.id:
            book.id = str(uuid.uuid4())
        self._rows(
            """
            CREATE (b:Book {
                id: $id,
                title: $title,
                author: $author,
                category: $category,
                description: $description,
                cover_image: $cover_image,
                pdf_url: $pdf_url,
                page_count: $page_count,
                read_count: 0,
                average_rating: 0.0,
                review_count: 0,
                created_by: $created_by,
                created_at: $created_at
            })
            """,
            {
                'id': book.id,
                'title': book.title,
                'author': book.author,
                'category': book.category,
                'description': book.description or '',
                'cover_image': book.cover_image or '',
                'pdf_url': book.pdf_url or '',
                'page_count': int(book.page_count or 0),
                'created_by': book.created_by or '',
                'created_at': book.created_at,
            },
            conn=conn,
            operation="create_book",
        )
        logger.info(f"Created book {book.id}: {book.title}")
        return book

    def get_by_id(self, book_id: str, conn: Connection = None) -> Optional[Book]:
        rows = self._rows("MATCH (b:Book {id: $book_id}) RETURN b",
                          {'book_id': book_id}, conn=conn, operation="get_book")
        return Book.from_row(rows[0]['b']) if rows else None

    def get_all(self) -> List[Book]:
        rows = self._rows("MATCH (b:Book) RETURN b ORDER BY b.created_at DESC", operation="list_books")
        return [Book.from_row(row['b']) for row in rows]

    def increment_read_count(self, book_id: str, conn: Connection = None) -> None:
        self._rows("MATCH (b:Book {id: $book_id}) SET b.read_count = b.read_count + 1",
                   {'book_id': book_id}, conn=conn, operation="increment_read_count")

    def set_rating_aggregate(self, book_id: str, average_rating: float, review_count: int,
                             conn: Connection = None) -> None:
        self._rows(
            "MATCH (b:Book {id: $book_id}) SET b.average_rating = $average_rating, b.review_count = $review_count",
            {'book_id': book_id, 'average_rating': float(average_rating), 'review_count': int(review_count)},
            conn=conn,
            operation="set_rating_aggregate",
        )

    def delete(self, book_id: str, conn: Connection = None) -> None:
        """Remove the book together with its reviews, progress entries and favorites."""
        self._rows("MATCH (b:Book {id: $book_id}) DETACH DELETE b",
                   {'book_id': book_id}, conn=conn, operation="delete_book")
        logger.info(f"Deleted book {book_id}")

    def count_all(self) -> int:
        return int(self._value("MATCH (b:Book) RETURN count(b)", operation="count_books"))

    def total_reads(self) -> int:
        return int(self._value("MATCH (b:Book) RETURN sum(b.read_count)", operation="total_reads"))


class KuzuReviewRepository(_KuzuRepository):
    """REVIEWED relationships (User -> Book)."""

    @staticmethod
    def _to_review(rel: Dict[str, Any], user_id: str, book_id: str) -> Review:
        return Review(
            id=rel.get('id'),
            user_id=user_id,
            book_id=book_id,
            reviewer_name=rel.get('reviewer_name') or '',
            rating=int(rel.get('rating') or 0),
            comment=rel.get('review_text') or '',
            created_at=ensure_utc(rel.get('created_at')) or now_utc(),
        )

    def find(self, user_id: str, book_id: str, conn: Connection = None) -> Optional[Review]:
        rows = self._rows(
            "MATCH (u:User {id: $user_id})-[r:REVIEWED]->(b:Book {id: $book_id}) RETURN r",
            {'user_id': user_id, 'book_id': book_id}, conn=conn, operation="find_review",
        )
        return self._to_review(rows[0]['r'], user_id, book_id) if rows else None

    def create(self, review: Review, conn: Connection = None) -> Review:
        if not review.id:
            review.id = str(uuid.uuid4())
        self._rows(
            """
            MATCH (u:User {id: $user_id}), (b:Book {id: $book_id})
            CREATE (u)-[:REVIEWED {
                id: $id,
                rating: $rating,
                review_text: $review_text,
                reviewer_name: $reviewer_name,
                created_at: $created_at
            }]->(b)
            """,
            {
                'user_id': review.user_id,
                'book_id': review.book_id,
                'id': review.id,
                'rating': int(review.rating),
                'review_text': review.comment,
                'reviewer_name': review.reviewer_name,
                'created_at': review.created_at,
            },
            conn=conn,
            operation="create_review",
        )
        return review

    def delete(self, user_id: str, book_id: str, conn: Connection = None) -> None:
        self._rows(
            "MATCH (u:User {id: $user_id})-[r:REVIEWED]->(b:Book {id: $book_id}) DELETE r",
            {'user_id': user_id, 'book_id': book_id}, conn=conn, operation="delete_review",
        )

    def list_for_book(self, book_id: str) -> List[Review]:
        rows = self._rows(
            """
            MATCH (u:User)-[r:REVIEWED]->(b:Book {id: $book_id})
            RETURN r, u.id AS user_id
            ORDER BY r.created_at DESC
            """,
            {'book_id': book_id}, operation="list_reviews",
        )
        return [self._to_review(row['r'], row['user_id'], book_id) for row in rows]

    def aggregate(self, book_id: str, conn: Connection = None) -> Dict[str, Any]:
        """Mean and cardinality over every live review of the book."""
        rows = self._rows(
            """
            MATCH (b:Book {id: $book_id})
            OPTIONAL MATCH (:User)-[r:REVIEWED]->(b)
            RETURN avg(r.rating) AS avg_rating, count(r) AS review_total
            """,
            {'book_id': book_id}, conn=conn, operation="aggregate_reviews",
        )
        if not rows:
            return {'average_rating': 0.0, 'review_count': 0}
        total = int(rows[0].get('review_total') or 0)
        average = rows[0].get('avg_rating')
        return {
            'average_rating': float(average) if total and average is not None else 0.0,
            'review_count': total,
        }

    def book_ids_reviewed_by(self, user_id: str, conn: Connection = None) -> List[str]:
        rows = self._rows(
            "MATCH (u:User {id: $user_id})-[:REVIEWED]->(b:Book) RETURN b.id AS book_id",
            {'user_id': user_id}, conn=conn, operation="books_reviewed_by",
        )
        return [row['book_id'] for row in rows]

    def count_by_user(self, user_id: str) -> int:
        return int(self._value(
            "MATCH (u:User {id: $user_id})-[r:REVIEWED]->(:Book) RETURN count(r)",
            {'user_id': user_id}, operation="count_user_reviews",
        ))

    def count_all(self) -> int:
        return int(self._value("MATCH (:User)-[r:REVIEWED]->(:Book) RETURN count(r)",
                               operation="count_reviews"))

    def get_newest(self, limit: int) -> List[Dict[str, Any]]:
        return self._rows(
            f"""
            MATCH (u:User)-[r:REVIEWED]->(b:Book)
            RETURN r.id AS id, r.rating AS rating, r.created_at AS created_at,
                   u.name AS user_name, b.title AS book_title
            ORDER BY created_at DESC
            LIMIT {int(limit)}
            """,
            operation="newest_reviews",
        )


class KuzuProgressRepository(_KuzuRepository):
    """READING_PROGRESS relationships (User -> Book)."""

    @staticmethod
    def _to_progress(rel: Dict[str, Any], user_id: str, book_id: str,
                     book: Optional[Book] = None) -> ReadingProgress:
        return ReadingProgress(
            user_id=user_id,
            book_id=book_id,
            current_page=int(rel.get('current_page') or 0),
            total_pages=int(rel.get('total_pages') or 0),
            last_read=ensure_utc(rel.get('last_read')) or now_utc(),
            book=book,
        )

    def find(self, user_id: str, book_id: str, conn: Connection = None) -> Optional[ReadingProgress]:
        rows = self._rows(
            """
            MATCH (u:User {id: $user_id})-[p:READING_PROGRESS]->(b:Book {id: $book_id})
            RETURN p
            ORDER BY p.last_read DESC
            """,
            {'user_id': user_id, 'book_id': book_id}, conn=conn, operation="find_progress",
        )
        return self._to_progress(rows[0]['p'], user_id, book_id) if rows else None

    def count_entries(self, user_id: str, book_id: str, conn: Connection = None) -> int:
        return int(self._value(
            "MATCH (u:User {id: $user_id})-[p:READING_PROGRESS]->(b:Book {id: $book_id}) RETURN count(p)",
            {'user_id': user_id, 'book_id': book_id}, conn=conn, operation="count_progress_entries",
        ))

    def delete(self, user_id: str, book_id: str, conn: Connection = None) -> None:
        self._rows(
            "MATCH (u:User {id: $user_id})-[p:READING_PROGRESS]->(b:Book {id: $book_id}) DELETE p",
            {'user_id': user_id, 'book_id': book_id}, conn=conn, operation="delete_progress",
        )

    def create(self, progress: ReadingProgress, conn: Connection = None) -> ReadingProgress:
        self._rows(
            """
            MATCH (u:User {id: $user_id}), (b:Book {id: $book_id})
            CREATE (u)-[:READING_PROGRESS {
                current_page: $current_page,
                total_pages: $total_pages,
                last_read: $last_read
            }]->(b)
            """,
            {
                'user_id': progress.user_id,
                'book_id': progress.book_id,
                'current_page': int(progress.current_page),
                'total_pages': int(progress.total_pages),
                'last_read': progress.last_read,
            },
            conn=conn,
            operation="create_progress",
        )
        return progress

    def list_for_user(self, user_id: str) -> List[ReadingProgress]:
        rows = self._rows(
            """
            MATCH (u:User {id: $user_id})-[p:READING_PROGRESS]->(b:Book)
            RETURN p, b
            ORDER BY p.last_read DESC
            """,
            {'user_id': user_id}, operation="list_progress",
        )
        results = []
        for row in rows:
            book = Book.from_row(row['b'])
            results.append(self._to_progress(row['p'], user_id, book.id, book))
        return results

    def count_for_user(self, user_id: str) -> int:
        return int(self._value(
            "MATCH (u:User {id: $user_id})-[p:READING_PROGRESS]->(:Book) RETURN count(p)",
            {'user_id': user_id}, operation="count_user_progress",
        ))

    def count_active_readers(self) -> int:
        return int(self._value(
            "MATCH (u:User)-[:READING_PROGRESS]->(:Book) RETURN count(DISTINCT u)",
            operation="count_active_readers",
        ))


class KuzuFavoriteRepository(_KuzuRepository):
    """FAVORITED relationships (User -> Book)."""

    def exists(self, user_id: str, book_id: str, conn: Connection = None) -> bool:
        return int(self._value(
            "MATCH (u:User {id: $user_id})-[f:FAVORITED]->(b:Book {id: $book_id}) RETURN count(f)",
            {'user_id': user_id, 'book_id': book_id}, conn=conn, operation="favorite_exists",
        )) > 0

    def add(self, user_id: str, book_id: str, conn: Connection = None) -> None:
        self._rows(
            """
            MATCH (u:User {id: $user_id}), (b:Book {id: $book_id})
            CREATE (u)-[:FAVORITED {created_at: $created_at}]->(b)
            """,
            {'user_id': user_id, 'book_id': book_id, 'created_at': now_utc()},
            conn=conn, operation="add_favorite",
        )

    def remove(self, user_id: str, book_id: str, conn: Connection = None) -> None:
        self._rows(
            "MATCH (u:User {id: $user_id})-[f:FAVORITED]->(b:Book {id: $book_id}) DELETE f",
            {'user_id': user_id, 'book_id': book_id}, conn=conn, operation="remove_favorite",
        )

    def book_ids_for_user(self, user_id: str, conn: Connection = None) -> List[str]:
        rows = self._rows(
            """
            MATCH (u:User {id: $user_id})-[f:FAVORITED]->(b:Book)
            RETURN b.id AS book_id, f.created_at AS favorited_at
            ORDER BY favorited_at ASC
            """,
            {'user_id': user_id}, conn=conn, operation="favorite_ids",
        )
        return [row['book_id'] for row in rows]

    def books_for_user(self, user_id: str) -> List[Book]:
        rows = self._rows(
            """
            MATCH (u:User {id: $user_id})-[f:FAVORITED]->(b:Book)
            RETURN b, f.created_at AS favorited_at
            ORDER BY favorited_at DESC
            """,
            {'user_id': user_id}, operation="favorite_books",
        )
        return [Book.from_row(row['b']) for row in rows]

    def count_for_user(self, user_id: str) -> int:
        return int(self._value(
            "MATCH (u:User {id: $user_id})-[f:FAVORITED]->(:Book) RETURN count(f)",
            {'user_id': user_id}, operation="count_user_favorites",
        ))
