"""Pytest configuration and shared fixtures.

This module provides fixtures for testing bookshare, including a
file-backed test database, registered users, catalog books and an
owner's collection.
"""

import os
import tempfile
from pathlib import Path
from typing import Generator

import pytest

from bookshare.config import reset_config
from bookshare.context import AuthContext
from bookshare.db.database import Database, reset_db
from bookshare.db.models import User
from bookshare.db.schemas import BookCreate, ContactPreference, UserCreate
from bookshare.ledger.manager import LedgerManager
from bookshare.loans.engine import LoanEngine
from bookshare.loans.projection import LoanProjection

ISBN = "9780743273565"
OTHER_ISBN = "9780441172719"


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture(scope="function")
def temp_db_path() -> Generator[Path, None, None]:
    """Create a temporary database file path."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)
    yield db_path
    # Cleanup
    for suffix in ("", "-journal", "-wal", "-shm"):
        path = Path(f"{db_path}{suffix}")
        if path.exists():
            path.unlink()


@pytest.fixture(scope="function")
def db(temp_db_path: Path) -> Generator[Database, None, None]:
    """Create a test database instance."""
    # Reset any global state
    reset_db()
    reset_config()

    database = Database(f"sqlite:///{temp_db_path}", retry_max=1, retry_delay=0)
    database.create_tables()
    yield database

    # Cleanup
    database.engine.dispose()
    reset_db()
    reset_config()


# ============================================================================
# Component Fixtures
# ============================================================================


@pytest.fixture
def ledger(db: Database) -> LedgerManager:
    """Ledger manager on the test database."""
    return LedgerManager(db)


@pytest.fixture
def engine(db: Database, ledger: LedgerManager) -> LoanEngine:
    """Loan engine on the test database."""
    return LoanEngine(db, ledger)


@pytest.fixture
def projection(db: Database) -> LoanProjection:
    """Loan projection on the test database."""
    return LoanProjection(db)


# ============================================================================
# Sample Data Fixtures
# ============================================================================


@pytest.fixture
def make_user(db: Database):
    """Factory registering users with sensible defaults."""

    def _make(username: str, **kwargs) -> User:
        data = {"email": f"{username}@example.com", **kwargs}
        return db.create_user(UserCreate(username=username, **data))

    return _make


@pytest.fixture
def owner(make_user) -> User:
    """The book owner, preferring to be reached by phone."""
    return make_user(
        "olivia",
        phone="+39 333 1234567",
        contact_preference=ContactPreference.PHONE,
    )


@pytest.fixture
def requester(make_user) -> User:
    """A user who wants to borrow."""
    return make_user("ryan")


@pytest.fixture
def requester2(make_user) -> User:
    """A second, competing borrower."""
    return make_user("rita")


@pytest.fixture
def admin(make_user) -> User:
    """An administrator."""
    return make_user("ada", is_admin=True)


@pytest.fixture
def owner_ctx(owner: User) -> AuthContext:
    return AuthContext(user_id=owner.id)


@pytest.fixture
def requester_ctx(requester: User) -> AuthContext:
    return AuthContext(user_id=requester.id)


@pytest.fixture
def requester2_ctx(requester2: User) -> AuthContext:
    return AuthContext(user_id=requester2.id)


@pytest.fixture
def admin_ctx(admin: User) -> AuthContext:
    return AuthContext(user_id=admin.id, is_admin=True)


@pytest.fixture
def catalog(db: Database) -> list[str]:
    """Two books in the catalog."""
    db.create_book(
        BookCreate(isbn=ISBN, title="The Great Gatsby", author="F. Scott Fitzgerald")
    )
    db.create_book(
        BookCreate(
            isbn=OTHER_ISBN,
            title="Dune",
            author="Frank Herbert",
            cover_url="https://covers.example.com/dune.jpg",
        )
    )
    return [ISBN, OTHER_ISBN]


@pytest.fixture
def shelf(ledger: LedgerManager, owner_ctx: AuthContext, catalog: list[str]) -> list[str]:
    """The owner holds an available copy of both catalog books."""
    for isbn in catalog:
        ledger.add_to_collection(owner_ctx, isbn)
    return catalog


@pytest.fixture
def pending_loan(engine: LoanEngine, requester_ctx: AuthContext, owner, shelf):
    """A pending request from the requester for the owner's Gatsby."""
    return engine.create(requester_ctx, owner.id, ISBN)


@pytest.fixture
def env_db(temp_db_path: Path) -> Generator[str, None, None]:
    """Point the global config at the temporary database."""
    reset_db()
    reset_config()
    url = f"sqlite:///{temp_db_path}"
    os.environ["BOOKSHARE_DATABASE_URL"] = url
    yield url
    reset_db()
    reset_config()
    os.environ.pop("BOOKSHARE_DATABASE_URL", None)
