"""Pydantic schemas and the transition table for loan requests."""

from datetime import datetime
from enum import Enum
from typing import Any, NamedTuple, Optional

from pydantic import BaseModel


class LoanStatus(str, Enum):
    """Status of a loan request."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    RETURNED = "returned"

    @property
    def is_active(self) -> bool:
        return self in ACTIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


ACTIVE_STATUSES = frozenset({LoanStatus.PENDING, LoanStatus.ACCEPTED})
TERMINAL_STATUSES = frozenset({LoanStatus.REJECTED, LoanStatus.CANCELLED, LoanStatus.RETURNED})


class LoanRole(str, Enum):
    """Which party of a loan request may perform an action."""

    OWNER = "owner"
    REQUESTER = "requester"


class LoanAction(str, Enum):
    """Actions that move an existing loan request."""

    ACCEPT = "accept"
    REJECT = "reject"
    RETURN = "return"
    CANCEL = "cancel"


class Transition(NamedTuple):
    """One edge of the loan state machine."""

    source: LoanStatus
    target: LoanStatus
    actor: LoanRole
    availability: Optional[bool]  # new ledger value, None if untouched


# Creation inserts straight into PENDING; these are the only other edges.
TRANSITIONS: dict[LoanAction, Transition] = {
    LoanAction.ACCEPT: Transition(LoanStatus.PENDING, LoanStatus.ACCEPTED, LoanRole.OWNER, False),
    LoanAction.REJECT: Transition(LoanStatus.PENDING, LoanStatus.REJECTED, LoanRole.OWNER, None),
    LoanAction.CANCEL: Transition(
        LoanStatus.PENDING, LoanStatus.CANCELLED, LoanRole.REQUESTER, None
    ),
    LoanAction.RETURN: Transition(LoanStatus.ACCEPTED, LoanStatus.RETURNED, LoanRole.OWNER, True),
}


class LoanResponse(BaseModel):
    """Schema for loan request responses."""

    id: int
    requester_id: int
    owner_id: int
    book_isbn: str
    status: LoanStatus
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class LoanViewBase(BaseModel):
    """Common fields of an inbox or outbox row.

    The contact fields are filled only for accepted requests and are left
    out of ``to_dict`` output otherwise.
    """

    id: int
    status: LoanStatus
    book_isbn: str
    book_title: Optional[str] = None
    cover_url: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    other_party_contact: Optional[str] = None
    other_party_contact_type: Optional[str] = None

    @property
    def discloses_contact(self) -> bool:
        return self.status == LoanStatus.ACCEPTED and self.other_party_contact is not None

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready dict, omitting contact keys unless disclosed."""
        exclude = None
        if not self.discloses_contact:
            exclude = {"other_party_contact", "other_party_contact_type"}
        return self.model_dump(mode="json", exclude=exclude)


class InboxItem(LoanViewBase):
    """A request received by the caller as owner."""

    requester_id: int
    requester_username: str


class OutboxItem(LoanViewBase):
    """A request sent by the caller as requester."""

    owner_id: int
    owner_username: str


class StatusCounts(BaseModel):
    """Loan request counts per status."""

    total: int
    by_status: dict[str, int]


class UserLoanStats(BaseModel):
    """Per-user loan request counts, both directions."""

    user_id: int
    loans_out_total: int
    loans_out_by_status: dict[str, int]
    loans_in_total: int
    loans_in_by_status: dict[str, int]
