"""Relational store access.

Handles engine construction, session and transaction management, driver
error translation, and the user directory and catalog lookups the lending
core consumes.
"""

import logging
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Generator, Optional, TypeVar

from sqlalchemy import create_engine, event, select, text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import get_config
from ..errors import ConflictError, TransientError, ValidationError
from .models import Base, Book, User, utcnow
from .schemas import BookCreate, UserCreate, normalize_isbn

logger = logging.getLogger(__name__)

T = TypeVar("T")


# SQLSTATEs for serialization failure, deadlock and lock timeout
TRANSIENT_SQLSTATES = frozenset({"40001", "40P01", "55P03"})

# SQLite reports contention only through the message text
TRANSIENT_MESSAGES = (
    "database is locked",
    "database table is locked",
    "database is busy",
    "deadlock detected",
    "could not serialize access",
    "lock timeout",
)


def is_transient(exc: DBAPIError) -> bool:
    """Check whether a driver error is safe to retry.

    Only lock contention, deadlocks, serialization failures and dropped
    connections qualify. Other operational faults such as a missing table
    are permanent and propagate unchanged.
    """
    if exc.connection_invalidated:
        return True
    if not isinstance(exc, OperationalError):
        return False
    sqlstate = getattr(exc.orig, "pgcode", None) or getattr(exc.orig, "sqlstate", None)
    if sqlstate in TRANSIENT_SQLSTATES:
        return True
    message = str(exc.orig).lower()
    return any(fragment in message for fragment in TRANSIENT_MESSAGES)


class Database:
    """Database connection and operations manager."""

    def __init__(
        self,
        url: Optional[str] = None,
        lock_timeout: Optional[float] = None,
        retry_max: Optional[int] = None,
        retry_delay: Optional[float] = None,
    ):
        """Initialize database connection.

        Args:
            url: SQLAlchemy database URL, or ":memory:" for a shared in-memory
                 SQLite database. If None, uses BOOKSHARE_DATABASE_URL.
            lock_timeout: Seconds to wait for a lock before giving up
            retry_max: Attempts for operations failing transiently
            retry_delay: Initial backoff between attempts, in seconds
        """
        config = get_config()
        if url is None:
            url = config.database_url
        if url == ":memory:":
            url = "sqlite:///:memory:"

        self.url = make_url(url)
        self.lock_timeout = lock_timeout if lock_timeout is not None else config.lock_timeout
        self.retry_max = retry_max if retry_max is not None else config.tx_retry_max
        self.retry_delay = retry_delay if retry_delay is not None else config.tx_retry_delay

        self.dialect = self.url.get_backend_name()
        self._is_memory = self.dialect == "sqlite" and self.url.database in (None, "", ":memory:")

        if self._is_memory:
            # StaticPool keeps every session on the one in-memory database
            self.engine = create_engine(
                "sqlite:///:memory:",
                echo=False,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        elif self.dialect == "sqlite":
            self._ensure_directory(Path(self.url.database).expanduser())
            self.engine = create_engine(
                self.url,
                echo=False,
                connect_args={"check_same_thread": False, "timeout": self.lock_timeout},
            )
        else:
            self.engine = create_engine(self.url, echo=False, pool_pre_ping=True)

        if self.dialect == "sqlite":
            self._install_sqlite_locking()

        self.SessionLocal = sessionmaker(
            bind=self.engine, autocommit=False, autoflush=False, expire_on_commit=False
        )

    @staticmethod
    def _ensure_directory(db_path: Path) -> None:
        """Ensure the database directory exists."""
        db_path.parent.mkdir(parents=True, exist_ok=True)

    def _install_sqlite_locking(self) -> None:
        """Make every SQLite transaction take the write lock up front.

        SQLite has no row locks and ignores FOR UPDATE, so transactions
        begin with BEGIN IMMEDIATE and writers are serialised database-wide.
        """

        @event.listens_for(self.engine, "connect")
        def _on_connect(dbapi_connection, connection_record):
            # Let SQLAlchemy emit BEGIN itself instead of pysqlite
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(self.engine, "begin")
        def _on_begin(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    def create_tables(self) -> None:
        """Create all database tables."""
        # Import lending models to register them with Base
        from ..ledger.models import LedgerEntry  # noqa: F401
        from ..loans.models import LoanRequest  # noqa: F401

        Base.metadata.create_all(self.engine)

    def drop_tables(self) -> None:
        """Drop all database tables. Use with caution!"""
        Base.metadata.drop_all(self.engine)

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """Get a session wrapping one atomic transaction.

        Commits on success and rolls back on any exception. Driver errors
        that are safe to retry are re-raised as TransientError.
        """
        session = self.SessionLocal()
        try:
            if self.dialect == "postgresql":
                session.execute(text(f"SET LOCAL lock_timeout = {int(self.lock_timeout * 1000)}"))
            yield session
            session.commit()
        except DBAPIError as e:
            session.rollback()
            if is_transient(e):
                logger.warning("Transient store error: %s", e.orig)
                raise TransientError("Store busy, please retry") from e
            raise
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def run_in_transaction(
        self, work: Callable[[Session], T], retries: Optional[int] = None
    ) -> T:
        """Run work inside one transaction, retrying transient failures.

        Args:
            work: Callable receiving the session; its return value is returned
            retries: Max attempts (uses self.retry_max if not provided)

        Returns:
            Result of work
        """
        max_attempts = max(1, retries or self.retry_max)
        backoff = self.retry_delay

        for attempt in range(max_attempts):
            try:
                with self.get_session() as session:
                    return work(session)
            except TransientError:
                if attempt == max_attempts - 1:
                    raise
                logger.warning(
                    "Retrying transaction in %.2fs (attempt %d/%d)",
                    backoff,
                    attempt + 2,
                    max_attempts,
                )
                time.sleep(backoff)
                backoff *= 2

        raise TransientError("Store busy, please retry")

    # ========================================================================
    # User Directory
    # ========================================================================

    def create_user(self, user: UserCreate, session: Optional[Session] = None) -> User:
        """Register a new user."""

        def _create(s: Session) -> User:
            db_user = User(
                username=user.username,
                email=user.email,
                phone=user.phone,
                contact_preference=user.contact_preference.value,
                is_trusted=user.is_trusted,
                is_admin=user.is_admin,
            )
            s.add(db_user)
            try:
                s.flush()
            except IntegrityError as e:
                raise ConflictError("Username or email already registered") from e
            return db_user

        if session:
            return _create(session)
        else:
            with self.get_session() as s:
                return _create(s)

    def get_user(
        self,
        user_id: int,
        include_deleted: bool = False,
        session: Optional[Session] = None,
    ) -> Optional[User]:
        """Get a user by ID, skipping soft-deleted users unless asked."""

        def _get(s: Session) -> Optional[User]:
            stmt = select(User).where(User.id == user_id)
            if not include_deleted:
                stmt = stmt.where(User.deleted_at.is_(None))
            return s.execute(stmt).scalar_one_or_none()

        if session:
            return _get(session)
        else:
            with self.get_session() as s:
                return _get(s)

    def get_user_by_username(
        self, username: str, session: Optional[Session] = None
    ) -> Optional[User]:
        """Get an active user by username."""

        def _get(s: Session) -> Optional[User]:
            stmt = select(User).where(User.username == username, User.deleted_at.is_(None))
            return s.execute(stmt).scalar_one_or_none()

        if session:
            return _get(session)
        else:
            with self.get_session() as s:
                return _get(s)

    def soft_delete_user(self, user_id: int, session: Optional[Session] = None) -> bool:
        """Mark a user as deleted. Loan history is left untouched."""

        def _delete(s: Session) -> bool:
            db_user = self.get_user(user_id, session=s)
            if not db_user:
                return False
            db_user.deleted_at = utcnow()
            return True

        if session:
            return _delete(session)
        else:
            with self.get_session() as s:
                return _delete(s)

    # ========================================================================
    # Catalog
    # ========================================================================

    def create_book(self, book: BookCreate, session: Optional[Session] = None) -> Book:
        """Add a book to the catalog, reviving a soft-deleted entry."""

        def _create(s: Session) -> Book:
            db_book = s.get(Book, book.isbn)
            if db_book and not db_book.is_deleted:
                raise ConflictError(f"Book {book.isbn} already in catalog")
            if db_book is None:
                db_book = Book(isbn=book.isbn)
                s.add(db_book)
            db_book.title = book.title
            db_book.author = book.author
            db_book.cover_url = book.cover_url
            db_book.deleted_at = None
            s.flush()
            return db_book

        if session:
            return _create(session)
        else:
            with self.get_session() as s:
                return _create(s)

    def get_book(
        self,
        isbn: str,
        include_deleted: bool = False,
        session: Optional[Session] = None,
    ) -> Optional[Book]:
        """Get a catalog book by ISBN."""
        try:
            isbn = normalize_isbn(isbn)
        except ValueError as e:
            raise ValidationError(str(e)) from e

        def _get(s: Session) -> Optional[Book]:
            stmt = select(Book).where(Book.isbn == isbn)
            if not include_deleted:
                stmt = stmt.where(Book.deleted_at.is_(None))
            return s.execute(stmt).scalar_one_or_none()

        if session:
            return _get(session)
        else:
            with self.get_session() as s:
                return _get(s)

    def soft_delete_book(self, isbn: str, session: Optional[Session] = None) -> bool:
        """Mark a catalog book as deleted."""

        def _delete(s: Session) -> bool:
            db_book = self.get_book(isbn, session=s)
            if not db_book:
                return False
            db_book.deleted_at = utcnow()
            return True

        if session:
            return _delete(session)
        else:
            with self.get_session() as s:
                return _delete(s)


# Global database instance
_db: Optional[Database] = None


def get_db(url: Optional[str] = None) -> Database:
    """Get or create the global database instance."""
    global _db
    if _db is None:
        _db = Database(url)
        _db.create_tables()
    return _db


def reset_db() -> None:
    """Reset the global database instance. Used for testing."""
    global _db
    if _db is not None:
        _db.engine.dispose()
    _db = None
