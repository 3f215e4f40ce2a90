"""Read-only views over loan requests.

Inbox and outbox join each request with its book and counterparty. The
counterparty's contact details are disclosed only once the request is
accepted.
"""

from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..context import AuthContext, require_id
from ..db.database import Database, get_db
from ..db.models import Book, User
from ..errors import ForbiddenError
from .models import LoanRequest
from .schemas import InboxItem, LoanStatus, OutboxItem, StatusCounts, UserLoanStats


def _contact_fields(loan: LoanRequest, counterparty: User) -> dict:
    if loan.status != LoanStatus.ACCEPTED.value:
        return {}
    contact_type, contact = counterparty.preferred_contact
    return {"other_party_contact": contact, "other_party_contact_type": contact_type}


def _zero_filled(rows) -> dict[str, int]:
    counts = {status.value: 0 for status in LoanStatus}
    for status, count in rows:
        counts[status] = int(count)
    return counts


class LoanProjection:
    """Inbox/outbox listings and status statistics."""

    def __init__(self, db: Optional[Database] = None):
        self.db = db or get_db()

    def inbox(self, ctx: AuthContext) -> list[InboxItem]:
        """Requests received by the caller as owner, newest first."""
        with self.db.get_session() as session:
            rows = self._rows(session, LoanRequest.owner_id, LoanRequest.requester_id, ctx.user_id)
            return [
                InboxItem(
                    **self._common(loan, book),
                    requester_id=user.id,
                    requester_username=user.username,
                    **_contact_fields(loan, user),
                )
                for loan, user, book in rows
            ]

    def outbox(self, ctx: AuthContext) -> list[OutboxItem]:
        """Requests sent by the caller as requester, newest first."""
        with self.db.get_session() as session:
            rows = self._rows(session, LoanRequest.requester_id, LoanRequest.owner_id, ctx.user_id)
            return [
                OutboxItem(
                    **self._common(loan, book),
                    owner_id=user.id,
                    owner_username=user.username,
                    **_contact_fields(loan, user),
                )
                for loan, user, book in rows
            ]

    def status_counts(self, ctx: AuthContext) -> StatusCounts:
        """Request counts per status across all users (admin only)."""
        if not ctx.is_admin:
            raise ForbiddenError("Admin only")

        with self.db.get_session() as session:
            by_status = _zero_filled(
                session.execute(
                    select(LoanRequest.status, func.count()).group_by(LoanRequest.status)
                ).all()
            )
            return StatusCounts(total=sum(by_status.values()), by_status=by_status)

    def user_loan_stats(self, ctx: AuthContext, user_id: object) -> UserLoanStats:
        """Outgoing and incoming request counts for one user.

        Visible to the user themselves and to admins.
        """
        user_id = require_id(user_id, "user id")
        if ctx.user_id != user_id and not ctx.is_admin:
            raise ForbiddenError("Forbidden")

        with self.db.get_session() as session:
            out_counts = _zero_filled(
                session.execute(
                    select(LoanRequest.status, func.count())
                    .where(LoanRequest.requester_id == user_id)
                    .group_by(LoanRequest.status)
                ).all()
            )
            in_counts = _zero_filled(
                session.execute(
                    select(LoanRequest.status, func.count())
                    .where(LoanRequest.owner_id == user_id)
                    .group_by(LoanRequest.status)
                ).all()
            )
            return UserLoanStats(
                user_id=user_id,
                loans_out_total=sum(out_counts.values()),
                loans_out_by_status=out_counts,
                loans_in_total=sum(in_counts.values()),
                loans_in_by_status=in_counts,
            )

    @staticmethod
    def _rows(session: Session, own_column, other_column, user_id: int):
        stmt = (
            select(LoanRequest, User, Book)
            .join(User, User.id == other_column)
            .outerjoin(Book, Book.isbn == LoanRequest.book_isbn)
            .where(own_column == user_id)
            .order_by(LoanRequest.created_at.desc(), LoanRequest.id.desc())
        )
        return session.execute(stmt).all()

    @staticmethod
    def _common(loan: LoanRequest, book: Optional[Book]) -> dict:
        return {
            "id": loan.id,
            "status": loan.status,
            "book_isbn": loan.book_isbn,
            "book_title": book.title if book else None,
            "cover_url": book.cover_url if book else None,
            "created_at": loan.created_at,
            "updated_at": loan.updated_at,
        }
