import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Sequence

import psycopg2
import psycopg2.errors
import psycopg2.extras
from psycopg2.pool import PoolError, ThreadedConnectionPool

from rewards_api.config import Settings
from rewards_api.errors import AppError, ConflictError, DatabaseError

logger = logging.getLogger(__name__)


def _translate_error(exc: psycopg2.Error) -> AppError:
    """Map a driver error onto the domain taxonomy without leaking the DSN."""
    if isinstance(exc, psycopg2.errors.UniqueViolation):
        return ConflictError("duplicate value violates a unique constraint")
    if isinstance(exc, PoolError):
        return DatabaseError("connection pool exhausted")
    # Only server-side diagnostics are surfaced; client-side messages can echo the host.
    primary = getattr(getattr(exc, "diag", None), "message_primary", None)
    if isinstance(exc, (psycopg2.OperationalError, psycopg2.InterfaceError)) and not primary:
        return DatabaseError("database unavailable")
    return DatabaseError(primary or f"database error ({type(exc).__name__})")


class Database:
    """
    Explicit handle on the PostgreSQL connection pool.

    The pool is created lazily on first use so the service can start before the
    database is reachable, and released by `close()` on shutdown.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._pool: Optional[ThreadedConnectionPool] = None
        self._lock = threading.Lock()
        # psycopg2 pools raise PoolError when empty; borrowers queue on this instead.
        self._slots = threading.BoundedSemaphore(self._maxconn())

    def _maxconn(self) -> int:
        return max(self._settings.DB_POOL_MAX, self._settings.DB_POOL_MIN)

    @property
    def configured(self) -> bool:
        return bool(self._settings.DATABASE_URL)

    def _sslmode(self) -> str:
        if self._settings.DB_SSLMODE:
            return self._settings.DB_SSLMODE
        # DB_SSL encrypts without certificate verification; use DB_SSLMODE=verify-full to verify.
        return "require" if self._settings.DB_SSL else "disable"

    def _connect_kwargs(self) -> Dict[str, Any]:
        return {
            "dsn": self._settings.require("DATABASE_URL"),
            "sslmode": self._sslmode(),
            "connect_timeout": self._settings.DB_CONNECT_TIMEOUT,
        }

    # PUBLIC_INTERFACE
    def init_pool(self) -> ThreadedConnectionPool:
        """Initialize the connection pool if it does not exist yet."""
        if self._pool is not None:
            return self._pool
        kwargs = self._connect_kwargs()
        with self._lock:
            if self._pool is None:
                try:
                    self._pool = ThreadedConnectionPool(
                        minconn=self._settings.DB_POOL_MIN,
                        maxconn=self._maxconn(),
                        **kwargs,
                    )
                except psycopg2.Error as exc:
                    logger.error("Could not open database pool: %s", type(exc).__name__)
                    raise _translate_error(exc) from exc
                logger.info("Database pool ready (sslmode=%s)", kwargs["sslmode"])
        return self._pool

    # PUBLIC_INTERFACE
    def close(self) -> None:
        """Close every pooled connection."""
        with self._lock:
            if self._pool is not None:
                self._pool.closeall()
                self._pool = None

    @contextmanager
    def connection(self) -> Iterator[Any]:
        """
        Borrow a connection, waiting up to DB_POOL_TIMEOUT seconds for a free one.

        Driver errors are re-raised as domain errors.
        """
        pool = self.init_pool()
        if not self._slots.acquire(timeout=self._settings.DB_POOL_TIMEOUT):
            raise DatabaseError("connection pool exhausted")
        try:
            conn = pool.getconn()
        except psycopg2.Error as exc:
            self._slots.release()
            raise _translate_error(exc) from exc
        try:
            yield conn
        except psycopg2.Error as exc:
            if not conn.closed:
                conn.rollback()
            if not isinstance(exc, psycopg2.errors.UniqueViolation):
                logger.error("Database error: %s", type(exc).__name__)
            raise _translate_error(exc) from exc
        finally:
            try:
                pool.putconn(conn, close=bool(conn.closed))
            finally:
                self._slots.release()

    @staticmethod
    def _dict_cursor(conn):
        return conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)

    # PUBLIC_INTERFACE
    def fetch_one(self, query: str, params: Optional[Sequence[Any]] = None) -> Optional[Dict[str, Any]]:
        """Fetch a single row as a dict, or None."""
        with self.connection() as conn:
            with self._dict_cursor(conn) as cur:
                cur.execute(query, params or [])
                row = cur.fetchone()
                conn.commit()
                return dict(row) if row else None

    # PUBLIC_INTERFACE
    def fetch_all(self, query: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        """Fetch all rows as dicts."""
        with self.connection() as conn:
            with self._dict_cursor(conn) as cur:
                cur.execute(query, params or [])
                rows = cur.fetchall()
                conn.commit()
                return [dict(r) for r in rows]

    # PUBLIC_INTERFACE
    def execute(self, query: str, params: Optional[Sequence[Any]] = None) -> int:
        """Execute a statement (DDL/INSERT/UPDATE/DELETE). Returns affected rowcount."""
        with self.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(query, params or [])
                affected = cur.rowcount
                conn.commit()
                return affected

    # PUBLIC_INTERFACE
    def execute_returning_one(self, query: str, params: Optional[Sequence[Any]] = None) -> Optional[Dict[str, Any]]:
        """Execute a statement with RETURNING and return the first row as dict, or None."""
        with self.connection() as conn:
            with self._dict_cursor(conn) as cur:
                cur.execute(query, params or [])
                row = cur.fetchone()
                conn.commit()
                return dict(row) if row else None

    # PUBLIC_INTERFACE
    def now(self) -> Any:
        """Return the database server's current timestamp."""
        row = self.fetch_one("SELECT NOW() AS now")
        return row["now"] if row else None
