"""Loan request lifecycle module.

Provides functionality for:
- Requesting to borrow an owner's copy of a book
- Accepting, rejecting, returning and cancelling requests
- Inbox/outbox listings with privacy-gated contact details
- Per-status statistics
"""

from .engine import LoanEngine
from .models import LoanRequest
from .projection import LoanProjection
from .schemas import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    TRANSITIONS,
    InboxItem,
    LoanAction,
    LoanResponse,
    LoanStatus,
    OutboxItem,
    StatusCounts,
    UserLoanStats,
)

__all__ = [
    "LoanEngine",
    "LoanProjection",
    "LoanRequest",
    "ACTIVE_STATUSES",
    "TERMINAL_STATUSES",
    "TRANSITIONS",
    "InboxItem",
    "LoanAction",
    "LoanResponse",
    "LoanStatus",
    "OutboxItem",
    "StatusCounts",
    "UserLoanStats",
]
