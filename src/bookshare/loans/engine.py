"""Loan request state machine.

Every operation runs as one transaction. Rows are locked in a fixed
order, the loan request first and the owner's ledger entry second, so
concurrent transitions on the same loan or the same copy serialise
without deadlock cycles. A transition either commits both the loan
status and the ledger flag or neither.
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..context import AuthContext, require_id
from ..db.database import Database, get_db
from ..db.models import utcnow
from ..errors import (
    AuthenticationError,
    ConflictError,
    ForbiddenError,
    LendingError,
    NotFoundError,
    ValidationError,
)
from ..ledger.manager import LedgerManager, clean_isbn
from .models import LoanRequest
from .schemas import TRANSITIONS, LoanAction, LoanResponse, LoanStatus

logger = logging.getLogger(__name__)


class LoanEngine:
    """Runs the loan request lifecycle against the ledger."""

    def __init__(self, db: Optional[Database] = None, ledger: Optional[LedgerManager] = None):
        """Initialize the engine.

        Args:
            db: Database instance
            ledger: Ledger manager sharing the same database
        """
        self.db = db or get_db()
        self.ledger = ledger or LedgerManager(self.db)

    # -------------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------------

    def create(self, ctx: AuthContext, owner_id: object, book_isbn: object) -> LoanResponse:
        """Request to borrow an owner's copy of a book.

        Availability is checked but not locked; two racing requests for the
        same copy are separated by the active-pair unique index, and the
        loser gets a conflict.

        Args:
            ctx: Caller, the requester
            owner_id: Owner user ID
            book_isbn: Book ISBN

        Returns:
            The new pending request

        Raises:
            ValidationError: Malformed ids or a request to oneself
            NotFoundError: Owner or book missing or soft-deleted
            ConflictError: Copy unavailable, or an active request exists
        """
        owner_id = require_id(owner_id, "owner_user_id")
        isbn = clean_isbn(book_isbn)
        if owner_id == ctx.user_id:
            raise ValidationError("You cannot request a loan from yourself")

        def _create(s: Session) -> LoanResponse:
            if not self.db.get_user(ctx.user_id, session=s):
                raise AuthenticationError("Caller account not found")
            if not self.db.get_user(owner_id, session=s):
                raise NotFoundError("Owner not found")
            if not self.db.get_book(isbn, session=s):
                raise NotFoundError("Book not found")

            try:
                available = self.ledger.get_availability(owner_id, isbn, session=s)
            except NotFoundError:
                available = False
            if not available:
                raise ConflictError("Book not available or not owned by the selected user")

            loan = LoanRequest(
                requester_id=ctx.user_id,
                owner_id=owner_id,
                book_isbn=isbn,
                status=LoanStatus.PENDING.value,
            )
            s.add(loan)
            try:
                s.flush()
            except IntegrityError as e:
                raise ConflictError("An active request already exists for this book") from e
            return LoanResponse.model_validate(loan)

        try:
            loan = self.db.run_in_transaction(_create)
        except LendingError as e:
            logger.info("loan request by %s for %s/%s refused: %s", ctx.user_id, owner_id, isbn, e)
            raise

        logger.info("loan %s created by %s for %s/%s", loan.id, ctx.user_id, owner_id, isbn)
        return loan

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def accept(self, ctx: AuthContext, loan_id: object) -> LoanResponse:
        """Owner accepts a pending request; the copy becomes unavailable.

        Raises:
            NotFoundError: No such loan
            ForbiddenError: Caller is not the owner
            ConflictError: Not pending, or the copy is absent or unavailable
        """
        return self._transition(ctx, loan_id, LoanAction.ACCEPT)

    def reject(self, ctx: AuthContext, loan_id: object) -> LoanResponse:
        """Owner rejects a pending request."""
        return self._transition(ctx, loan_id, LoanAction.REJECT)

    def return_book(self, ctx: AuthContext, loan_id: object) -> LoanResponse:
        """Owner marks an accepted loan returned; the copy becomes available.

        Raises:
            NotFoundError: No such loan
            ForbiddenError: Caller is not the owner
            ConflictError: Not accepted, or the copy left the owner's collection
        """
        return self._transition(ctx, loan_id, LoanAction.RETURN)

    def cancel(self, ctx: AuthContext, loan_id: object) -> LoanResponse:
        """Requester withdraws a pending request."""
        return self._transition(ctx, loan_id, LoanAction.CANCEL)

    def get(self, ctx: AuthContext, loan_id: object) -> LoanResponse:
        """Get a loan request visible to the caller (either party, or admin)."""
        loan_id = require_id(loan_id, "loan id")

        with self.db.get_session() as session:
            loan = session.get(LoanRequest, loan_id)
            if not loan:
                raise NotFoundError("Loan request not found")
            if ctx.user_id not in (loan.owner_id, loan.requester_id) and not ctx.is_admin:
                raise ForbiddenError("Forbidden")
            return LoanResponse.model_validate(loan)

    def _transition(self, ctx: AuthContext, loan_id: object, action: LoanAction) -> LoanResponse:
        loan_id = require_id(loan_id, "loan id")
        edge = TRANSITIONS[action]

        def _apply(s: Session) -> LoanResponse:
            loan = s.execute(
                select(LoanRequest).where(LoanRequest.id == loan_id).with_for_update()
            ).scalar_one_or_none()
            if not loan:
                raise NotFoundError("Loan request not found")
            if loan.party_id(edge.actor) != ctx.user_id:
                raise ForbiddenError("Forbidden")
            if loan.status != edge.source.value:
                raise ConflictError(f"Invalid status: {loan.status}")

            if edge.availability is not None:
                entry = self.ledger.lock_entry(s, loan.owner_id, loan.book_isbn)
                if not entry:
                    raise ConflictError("Book not in the owner's collection")
                if edge.availability is False and not entry.is_available:
                    raise ConflictError("Book already unavailable")
                entry.is_available = edge.availability
                entry.updated_at = utcnow()

            loan.status = edge.target.value
            loan.updated_at = utcnow()
            s.flush()
            return LoanResponse.model_validate(loan)

        try:
            loan = self.db.run_in_transaction(_apply)
        except LendingError as e:
            logger.info(
                "%s of loan %s by %s refused (%s): %s",
                action.value,
                loan_id,
                ctx.user_id,
                type(e).__name__,
                e,
            )
            raise

        logger.info("loan %s %s by %s", loan_id, loan.status.value, ctx.user_id)
        return loan
