"""SQLAlchemy ORM models shared by the lending core.

Tables:
- users: Registered people who own and borrow books
- books: Catalog entries keyed by ISBN
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from .schemas import ContactPreference


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utcnow() -> str:
    """Current UTC time as an ISO string."""
    return datetime.now(timezone.utc).isoformat()


class User(Base):
    """User model - identity, contact details and flags."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    email: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    contact_preference: Mapped[str] = mapped_column(
        String(10), default=ContactPreference.EMAIL.value, nullable=False
    )

    # Flags
    is_trusted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Timestamps
    created_at: Mapped[str] = mapped_column(String(32), default=utcnow)
    deleted_at: Mapped[Optional[str]] = mapped_column(String(32), index=True)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username='{self.username}')>"

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def preferred_contact(self) -> tuple[str, str]:
        """(contact_type, value) honouring the preference, falling back to email."""
        if self.contact_preference == ContactPreference.PHONE.value and self.phone:
            return ContactPreference.PHONE.value, self.phone
        return ContactPreference.EMAIL.value, self.email


class Book(Base):
    """Book model - catalog metadata, independent of ownership."""

    __tablename__ = "books"

    isbn: Mapped[str] = mapped_column(String(20), primary_key=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    author: Mapped[Optional[str]] = mapped_column(String(500))
    cover_url: Mapped[Optional[str]] = mapped_column(String(1000))

    created_at: Mapped[str] = mapped_column(String(32), default=utcnow)
    deleted_at: Mapped[Optional[str]] = mapped_column(String(32))

    def __repr__(self) -> str:
        return f"<Book(isbn={self.isbn}, title='{self.title}')>"

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None
