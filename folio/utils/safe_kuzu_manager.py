"""
Safe KuzuDB Connection Manager

Provides thread-safe access to KuzuDB connections with proper isolation
and concurrency control.

Reads open their own short-lived connection and run concurrently. Writes go
through ``transaction()``, which serialises on a process-wide write lock and
wraps the unit of work in an explicit BEGIN TRANSACTION / COMMIT, rolling back
on any error. Kuzu admits a single write transaction at a time, so every
mutating statement in the application must run inside ``transaction()``.
"""

import threading
import logging
import kuzu  # type: ignore
import os
import time
from typing import Optional, Dict, Any, List, Generator
from contextlib import contextmanager
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

# Logging controls
_QUERY_LOG_ENABLED = os.getenv('KUZU_QUERY_LOG', 'false').lower() in ('1', 'true', 'on', 'yes')
try:
    _SLOW_QUERY_MS = int(os.getenv('KUZU_SLOW_QUERY_MS', '150'))
except ValueError:
    _SLOW_QUERY_MS = 150


NODE_TABLES = [
    """
    CREATE NODE TABLE User(
        id STRING,
        name STRING,
        email STRING,
        password_hash STRING,
        is_admin BOOLEAN,
        is_blocked BOOLEAN,
        last_login TIMESTAMP,
        created_at TIMESTAMP,
        updated_at TIMESTAMP,
        PRIMARY KEY(id)
    )
    """,
    """
    CREATE NODE TABLE Book(
        id STRING,
        title STRING,
        author STRING,
        category STRING,
        description STRING,
        cover_image STRING,
        pdf_url STRING,
        page_count INT64,
        read_count INT64,
        average_rating DOUBLE,
        review_count INT64,
        created_by STRING,
        created_at TIMESTAMP,
        PRIMARY KEY(id)
    )
    """,
]

RELATIONSHIP_TABLES = [
    """
    CREATE REL TABLE REVIEWED(
        FROM User TO Book,
        id STRING,
        rating INT64,
        review_text STRING,
        reviewer_name STRING,
        created_at TIMESTAMP
    )
    """,
    """
    CREATE REL TABLE READING_PROGRESS(
        FROM User TO Book,
        current_page INT64,
        total_pages INT64,
        last_read TIMESTAMP
    )
    """,
    "CREATE REL TABLE FAVORITED(FROM User TO Book, created_at TIMESTAMP)",
]


def _to_kuzu_value(value: Any) -> Any:
    """Kuzu TIMESTAMP columns are stored without zone; bind aware datetimes as naive UTC."""
    if isinstance(value, datetime) and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _sanitize_params(params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if not params:
        return {}
    return {k: _to_kuzu_value(v) for k, v in params.items()}


def strip_internal(record: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Drop Kuzu's bookkeeping keys (_id, _label, _src, _dst) from a node/rel dict."""
    if record is None:
        return None
    return {k: v for k, v in record.items() if not str(k).startswith('_')}


def rows_from_result(result: Any) -> List[Dict[str, Any]]:
    """Materialise a QueryResult as a list of dict rows (column_name -> value)."""
    rows: List[Dict[str, Any]] = []
    if result is None:
        return rows
    if isinstance(result, list):
        result = result[0] if result else None
        if result is None:
            return rows
    col_names = result.get_column_names()
    while result.has_next():
        row = result.get_next()
        record: Dict[str, Any] = {}
        for i, col in enumerate(col_names):
            value = row[i]
            if isinstance(value, dict):
                value = strip_internal(value)
            record[col] = value
        rows.append(record)
    return rows


class SafeKuzuManager:
    """
    Thread-safe KuzuDB connection manager.

    Key Features:
    - Thread-safe lazy initialization with proper locking
    - Connection-per-operation pattern to avoid shared state
    - Serialised write transactions with commit/rollback
    - Idempotent schema bootstrap
    """

    def __init__(self, database_path: Optional[str] = None,
                 buffer_pool_size: int = 0, max_db_size: int = 0):
        """Initialize manager state (no heavy I/O)."""
        if database_path:
            self.database_path = database_path
        else:
            self.database_path = os.getenv('KUZU_DB_PATH') or os.path.join('data', 'kuzu', 'folio.kuzu')
        self.buffer_pool_size = buffer_pool_size
        self.max_db_size = max_db_size

        # Thread safety controls
        self._lock = threading.RLock()  # guards init and connection bookkeeping
        self._write_lock = threading.Lock()  # one write transaction at a time
        self._database: Optional[kuzu.Database] = None
        self._is_initialized = False

        # Connection tracking for debugging
        self._connection_count = 0
        self._total_connections_created = 0
        self._last_access_time: Optional[datetime] = None

        logger.info(f"SafeKuzuManager initialized for database: {self.database_path}")

    def _get_thread_info(self) -> Dict[str, Any]:
        thread = threading.current_thread()
        return {
            'thread_id': threading.get_ident(),
            'thread_name': thread.name,
        }

    def _initialize_database(self) -> None:
        """Open the database and ensure the schema. Caller holds ``self._lock``."""
        if self._is_initialized:
            return

        start_time = time.time()
        thread_info = self._get_thread_info()
        logger.info(f"[THREAD-{thread_info['thread_id']}:{thread_info['thread_name']}] "
                    f"Initializing KuzuDB database...")

        try:
            parent = os.path.dirname(self.database_path)
            if parent:
                os.makedirs(parent, exist_ok=True)

            options: Dict[str, Any] = {}
            if self.buffer_pool_size:
                options['buffer_pool_size'] = self.buffer_pool_size
            if self.max_db_size:
                options['max_db_size'] = self.max_db_size
            self._database = kuzu.Database(self.database_path, **options)

            self._initialize_schema()
            self._is_initialized = True

            logger.info(f"[THREAD-{thread_info['thread_id']}:{thread_info['thread_name']}] "
                        f"KuzuDB database initialized successfully in {time.time() - start_time:.3f}s")
        except Exception as e:
            logger.error(f"[THREAD-{thread_info['thread_id']}:{thread_info['thread_name']}] "
                         f"Failed to initialize KuzuDB database: {e}")
            self._is_initialized = False
            self._database = None
            raise

    def _initialize_schema(self) -> None:
        """Create node and relationship tables, skipping any that already exist."""
        if self._database is None:
            raise RuntimeError("Database not initialized")

        tables_created = 0
        tables_existed = 0
        # Direct connection: get_connection would re-enter initialization
        conn = kuzu.Connection(self._database)
        try:
            for query in NODE_TABLES + RELATIONSHIP_TABLES:
                try:
                    conn.execute(query)
                    tables_created += 1
                except RuntimeError as e:
                    if "already exists" in str(e).lower():
                        tables_existed += 1
                        continue
                    logger.error(f"Failed to create table: {e}")
                    raise
        finally:
            conn.close()

        logger.info(f"Kuzu schema ensured: {tables_created} created, {tables_existed} already existed")

    @contextmanager
    def get_connection(self, user_id: Optional[str] = None,
                       operation: str = "unknown") -> Generator[kuzu.Connection, None, None]:
        """
        Get a KuzuDB connection with automatic cleanup.

        Args:
            user_id: Optional user identifier for tracking
            operation: Description of the operation for debugging

        Example:
            with manager.get_connection(user_id="user123", operation="list_books") as conn:
                result = conn.execute("MATCH (b:Book) RETURN b.title")
        """
        thread_info = self._get_thread_info()

        with self._lock:
            if not self._is_initialized:
                self._initialize_database()
            if self._database is None:
                raise RuntimeError("KuzuDB database not properly initialized")

            connection = kuzu.Connection(self._database)
            self._connection_count += 1
            self._total_connections_created += 1
            connection_id = self._total_connections_created
            self._last_access_time = datetime.now(timezone.utc)

            logger.debug(f"[THREAD-{thread_info['thread_id']}:{thread_info['thread_name']}] "
                         f"Created connection #{connection_id} for operation '{operation}' "
                         f"(user: {user_id or 'anonymous'})")

        # Yield connection for use (outside the lock)
        try:
            yield connection
        except Exception as e:
            logger.debug(f"[THREAD-{thread_info['thread_id']}:{thread_info['thread_name']}] "
                         f"Error during KuzuDB operation '{operation}': {e}")
            raise
        finally:
            with self._lock:
                connection.close()
                self._connection_count -= 1
                logger.debug(f"Closed connection #{connection_id} for operation '{operation}'")

    @contextmanager
    def transaction(self, user_id: Optional[str] = None,
                    operation: str = "write") -> Generator[kuzu.Connection, None, None]:
        """
        Run a unit of work as a single write transaction.

        Holds the process-wide write lock for the duration, so read-check-write
        sequences on the yielded connection cannot interleave with another
        writer. Not reentrant: never open a transaction inside another one.
        """
        lock_start = time.time()
        with self._write_lock:
            waited = time.time() - lock_start
            if waited > 0.1:
                logger.warning(f"Long write lock wait: {waited:.3f}s for operation '{operation}'")
            with self.get_connection(user_id=user_id, operation=operation) as conn:
                conn.execute("BEGIN TRANSACTION")
                try:
                    yield conn
                except BaseException:
                    try:
                        conn.execute("ROLLBACK")
                    except RuntimeError as rollback_error:
                        logger.error(f"Rollback failed for operation '{operation}': {rollback_error}")
                    raise
                conn.execute("COMMIT")

    def execute_query(self, query: str, params: Optional[Dict[str, Any]] = None,
                      user_id: Optional[str] = None, operation: str = "query",
                      conn: Optional[kuzu.Connection] = None) -> List[Dict[str, Any]]:
        """
        Execute a query and return its rows as dicts.

        When ``conn`` is given (typically from ``transaction()``) the query runs
        on it; otherwise a fresh connection is opened for this query alone.
        """
        if _QUERY_LOG_ENABLED:
            q_snippet = ' '.join(query.split())[:120]
            logger.info(f"[KUZU] execute_query op='{operation}' q='{q_snippet}'")

        bound = _sanitize_params(params)
        if conn is not None:
            return self._run(conn, query, bound, operation)
        with self.get_connection(user_id=user_id, operation=operation) as own_conn:
            return self._run(own_conn, query, bound, operation)

    def _run(self, conn: kuzu.Connection, query: str, params: Dict[str, Any],
             operation: str) -> List[Dict[str, Any]]:
        t0 = time.time()
        result = conn.execute(query, params)
        rows = rows_from_result(result)
        elapsed_ms = (time.time() - t0) * 1000
        if _QUERY_LOG_ENABLED or elapsed_ms >= _SLOW_QUERY_MS:
            logger.info(f"[KUZU] '{operation}' done in {elapsed_ms:.1f}ms ({len(rows)} rows)")
        return rows

    def query_value(self, query: str, params: Optional[Dict[str, Any]] = None,
                    default: Any = None, operation: str = "query",
                    conn: Optional[kuzu.Connection] = None) -> Any:
        """First column of the first row, or ``default``."""
        rows = self.execute_query(query, params, operation=operation, conn=conn)
        if not rows:
            return default
        value = next(iter(rows[0].values()), default)
        return default if value is None else value

    def close(self) -> None:
        """Release the database handle; the next access reopens it."""
        with self._lock:
            if self._database is not None:
                self._database.close()
            self._database = None
            self._is_initialized = False
            logger.info(f"SafeKuzuManager closed database: {self.database_path}")


# Global thread-safe instance
_safe_kuzu_manager: Optional[SafeKuzuManager] = None
_manager_lock = threading.Lock()


def get_safe_kuzu_manager() -> SafeKuzuManager:
    """Get the global KuzuDB manager instance, creating it on first use."""
    global _safe_kuzu_manager

    # Double-checked locking pattern for thread-safe singleton
    if _safe_kuzu_manager is None:
        with _manager_lock:
            if _safe_kuzu_manager is None:
                _safe_kuzu_manager = SafeKuzuManager()
                logger.info("Global SafeKuzuManager instance created")

    return _safe_kuzu_manager


def reset_safe_kuzu_manager(database_path: Optional[str] = None, **options: Any) -> Optional[SafeKuzuManager]:
    """
    Close and replace the global SafeKuzuManager instance.

    Used by the application factory and tests to point the process at a
    specific database path. Without a path the next access builds a default
    manager from the environment.
    """
    global _safe_kuzu_manager
    with _manager_lock:
        if _safe_kuzu_manager is not None:
            _safe_kuzu_manager.close()
        _safe_kuzu_manager = SafeKuzuManager(database_path, **options) if database_path else None
        return _safe_kuzu_manager
