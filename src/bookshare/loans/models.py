"""SQLAlchemy model for loan requests.

Tables:
- loan_requests: Lending transactions between a requester and an owner
"""

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..db.models import Base, Book, User, utcnow
from .schemas import LoanRole, LoanStatus

_STATUS_VALUES = ", ".join(f"'{s.value}'" for s in LoanStatus)
_ACTIVE_PREDICATE = text(
    f"status IN ('{LoanStatus.PENDING.value}', '{LoanStatus.ACCEPTED.value}')"
)


class LoanRequest(Base):
    """Loan request model - never deleted, terminal rows are history."""

    __tablename__ = "loan_requests"
    __table_args__ = (
        CheckConstraint(f"status IN ({_STATUS_VALUES})", name="ck_loan_requests_status"),
        CheckConstraint("requester_id <> owner_id", name="ck_loan_requests_not_self"),
        # At most one pending/accepted request per (owner, book)
        Index(
            "uq_loan_requests_active_pair",
            "owner_id",
            "book_isbn",
            unique=True,
            sqlite_where=_ACTIVE_PREDICATE,
            postgresql_where=_ACTIVE_PREDICATE,
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    requester_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=False, index=True
    )
    owner_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=False, index=True
    )
    book_isbn: Mapped[str] = mapped_column(String(20), ForeignKey("books.isbn"), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=LoanStatus.PENDING.value, index=True
    )

    # Timestamps
    created_at: Mapped[str] = mapped_column(String(32), default=utcnow, index=True)
    updated_at: Mapped[str] = mapped_column(String(32), default=utcnow, onupdate=utcnow)

    # Relationships
    requester: Mapped["User"] = relationship("User", foreign_keys=[requester_id])
    owner: Mapped["User"] = relationship("User", foreign_keys=[owner_id])
    book: Mapped["Book"] = relationship("Book")

    def __repr__(self) -> str:
        return f"<LoanRequest(id={self.id}, book_isbn={self.book_isbn}, status={self.status})>"

    def party_id(self, role: LoanRole) -> int:
        """User id holding the given role on this request."""
        return self.owner_id if role == LoanRole.OWNER else self.requester_id
