"""Availability ledger operations."""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..context import AuthContext, require_id
from ..db.database import Database, get_db
from ..db.models import Book, utcnow
from ..db.schemas import normalize_isbn
from ..errors import ConflictError, NotFoundError, ValidationError
from .models import LedgerEntry
from .schemas import CollectionItem, LedgerEntryResponse

logger = logging.getLogger(__name__)


def clean_isbn(isbn: object) -> str:
    """Normalize an ISBN or raise ValidationError."""
    try:
        return normalize_isbn(isbn)
    except ValueError as e:
        raise ValidationError(str(e)) from e


class LedgerManager:
    """Manages the per-owner availability ledger."""

    def __init__(self, db: Optional[Database] = None):
        """Initialize ledger manager.

        Args:
            db: Database instance
        """
        self.db = db or get_db()

    # -------------------------------------------------------------------------
    # Row access used inside transactions
    # -------------------------------------------------------------------------

    @staticmethod
    def lock_entry(session: Session, owner_id: int, isbn: str) -> Optional[LedgerEntry]:
        """Select the active entry for (owner, book) FOR UPDATE.

        Args:
            session: Session of the enclosing transaction
            owner_id: Owner user ID
            isbn: Book ISBN

        Returns:
            Locked entry, or None if the owner holds no active copy
        """
        stmt = (
            select(LedgerEntry)
            .where(
                LedgerEntry.user_id == owner_id,
                LedgerEntry.book_isbn == isbn,
                LedgerEntry.deleted_at.is_(None),
            )
            .with_for_update()
        )
        return session.execute(stmt).scalar_one_or_none()

    # -------------------------------------------------------------------------
    # Availability
    # -------------------------------------------------------------------------

    def set_available(
        self,
        owner_id: int,
        isbn: str,
        value: bool,
        session: Optional[Session] = None,
    ) -> LedgerEntryResponse:
        """Set the availability flag of an owner's copy.

        Idempotent. The row is locked before it is written.

        Args:
            owner_id: Owner user ID
            isbn: Book ISBN
            value: New availability
            session: Enclosing transaction, if any

        Returns:
            The updated entry

        Raises:
            NotFoundError: If the owner has no active copy of the book
        """
        owner_id = require_id(owner_id, "owner id")
        isbn = clean_isbn(isbn)
        if not isinstance(value, bool):
            raise ValidationError("is_available must be a boolean")

        def _set(s: Session) -> LedgerEntryResponse:
            entry = self.lock_entry(s, owner_id, isbn)
            if not entry:
                raise NotFoundError("Book not in owner's collection")
            if entry.is_available != value:
                entry.is_available = value
                entry.updated_at = utcnow()
                s.flush()
            return LedgerEntryResponse.model_validate(entry)

        if session:
            return _set(session)
        return self.db.run_in_transaction(_set)

    def get_availability(
        self, owner_id: int, isbn: str, session: Optional[Session] = None
    ) -> bool:
        """Read-only probe of an owner's copy.

        Raises:
            NotFoundError: If the owner has no active copy of the book
        """
        owner_id = require_id(owner_id, "owner id")
        isbn = clean_isbn(isbn)

        def _get(s: Session) -> bool:
            stmt = select(LedgerEntry.is_available).where(
                LedgerEntry.user_id == owner_id,
                LedgerEntry.book_isbn == isbn,
                LedgerEntry.deleted_at.is_(None),
            )
            available = s.execute(stmt).scalar_one_or_none()
            if available is None:
                raise NotFoundError("Book not in owner's collection")
            return bool(available)

        if session:
            return _get(session)
        with self.db.get_session() as s:
            return _get(s)

    def toggle_availability(self, ctx: AuthContext, isbn: str, value: bool) -> LedgerEntryResponse:
        """Owner switches availability by hand, outside the loan flow.

        Re-enabling a copy that is out on an accepted loan is refused so the
        ledger cannot claim a lent copy is available.

        Raises:
            NotFoundError: If the caller has no active copy of the book
            ConflictError: If enabling while an accepted loan holds the copy
        """
        from ..loans.models import LoanRequest
        from ..loans.schemas import LoanStatus

        isbn = clean_isbn(isbn)

        def _toggle(s: Session) -> LedgerEntryResponse:
            entry = self.lock_entry(s, ctx.user_id, isbn)
            if not entry:
                raise NotFoundError("Book not in your collection")
            if value and not entry.is_available:
                on_loan = s.execute(
                    select(LoanRequest.id).where(
                        LoanRequest.owner_id == ctx.user_id,
                        LoanRequest.book_isbn == isbn,
                        LoanRequest.status == LoanStatus.ACCEPTED.value,
                    )
                ).first()
                if on_loan:
                    raise ConflictError("Book is on loan, mark the loan returned instead")
            return self.set_available(ctx.user_id, isbn, value, session=s)

        result = self.db.run_in_transaction(_toggle)
        logger.info("user %s set %s available=%s", ctx.user_id, isbn, value)
        return result

    # -------------------------------------------------------------------------
    # Collection management
    # -------------------------------------------------------------------------

    def add_to_collection(self, ctx: AuthContext, isbn: str) -> LedgerEntryResponse:
        """Add a catalog book to the caller's collection.

        A previously removed copy is revived with its availability flag as it
        was left.

        Raises:
            ValidationError: If the ISBN is not in the catalog
            ConflictError: If the book is already in the collection
        """
        isbn = clean_isbn(isbn)

        def _add(s: Session) -> LedgerEntryResponse:
            if not self.db.get_book(isbn, session=s):
                raise ValidationError("ISBN not in catalog")

            stmt = (
                select(LedgerEntry)
                .where(LedgerEntry.user_id == ctx.user_id, LedgerEntry.book_isbn == isbn)
                .with_for_update()
            )
            entry = s.execute(stmt).scalar_one_or_none()
            if entry and not entry.is_deleted:
                raise ConflictError("Book already in your collection")

            if entry is None:
                entry = LedgerEntry(user_id=ctx.user_id, book_isbn=isbn, is_available=True)
                s.add(entry)
            else:
                entry.deleted_at = None
                entry.updated_at = utcnow()

            try:
                s.flush()
            except IntegrityError as e:
                raise ConflictError("Book already in your collection") from e
            return LedgerEntryResponse.model_validate(entry)

        result = self.db.run_in_transaction(_add)
        logger.info("user %s added %s to collection", ctx.user_id, isbn)
        return result

    def remove_from_collection(self, ctx: AuthContext, isbn: str) -> bool:
        """Soft-delete the caller's copy of a book.

        Loan history is untouched; returning a loan whose copy was removed
        fails with a conflict.

        Raises:
            NotFoundError: If the caller has no active copy of the book
        """
        isbn = clean_isbn(isbn)

        def _remove(s: Session) -> bool:
            entry = self.lock_entry(s, ctx.user_id, isbn)
            if not entry:
                raise NotFoundError("Book not in your collection")
            entry.deleted_at = utcnow()
            entry.updated_at = entry.deleted_at
            return True

        result = self.db.run_in_transaction(_remove)
        logger.info("user %s removed %s from collection", ctx.user_id, isbn)
        return result

    def list_collection(self, owner_id: int) -> list[CollectionItem]:
        """List an owner's active copies, sorted by title."""
        owner_id = require_id(owner_id, "owner id")

        with self.db.get_session() as session:
            stmt = (
                select(LedgerEntry, Book)
                .join(Book, Book.isbn == LedgerEntry.book_isbn)
                .where(LedgerEntry.user_id == owner_id, LedgerEntry.deleted_at.is_(None))
                .order_by(Book.title)
            )
            return [
                CollectionItem(
                    isbn=book.isbn,
                    title=book.title,
                    author=book.author,
                    cover_url=book.cover_url,
                    is_available=entry.is_available,
                    created_at=entry.created_at,
                    updated_at=entry.updated_at,
                )
                for entry, book in session.execute(stmt).all()
            ]
