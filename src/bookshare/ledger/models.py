"""SQLAlchemy model for the availability ledger.

Tables:
- user_books: One row per (owner, book) copy with its availability flag
"""

from typing import Optional

from sqlalchemy import Boolean, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..db.models import Base, Book, User, utcnow


class LedgerEntry(Base):
    """Ledger entry - an owner's lendable copy of a book."""

    __tablename__ = "user_books"
    __table_args__ = (UniqueConstraint("user_id", "book_isbn", name="uq_user_books_owner_book"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    book_isbn: Mapped[str] = mapped_column(
        String(20), ForeignKey("books.isbn"), nullable=False, index=True
    )

    is_available: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Timestamps
    created_at: Mapped[str] = mapped_column(String(32), default=utcnow)
    updated_at: Mapped[str] = mapped_column(String(32), default=utcnow, onupdate=utcnow)
    deleted_at: Mapped[Optional[str]] = mapped_column(String(32))

    # Relationships
    owner: Mapped["User"] = relationship("User")
    book: Mapped["Book"] = relationship("Book")

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry(user_id={self.user_id}, book_isbn={self.book_isbn}, "
            f"is_available={self.is_available})>"
        )

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None
