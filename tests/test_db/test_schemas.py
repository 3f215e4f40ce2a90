"""Tests for Pydantic schemas."""

import pytest
from pydantic import ValidationError

from bookshare.db.schemas import BookCreate, ContactPreference, UserCreate, normalize_isbn
from bookshare.loans.schemas import (
    TRANSITIONS,
    InboxItem,
    LoanAction,
    LoanRole,
    LoanStatus,
)


class TestUserCreate:
    """Tests for UserCreate schema."""

    def test_defaults(self):
        user = UserCreate(username="alice", email="alice@example.com")
        assert user.contact_preference == ContactPreference.EMAIL
        assert user.phone is None
        assert user.is_admin is False

    def test_email_normalized(self):
        user = UserCreate(username="alice", email="  Alice@Example.COM ")
        assert user.email == "alice@example.com"

    def test_email_requires_at(self):
        with pytest.raises(ValidationError):
            UserCreate(username="alice", email="not-an-email")

    def test_empty_username_rejected(self):
        with pytest.raises(ValidationError):
            UserCreate(username="", email="a@example.com")


class TestBookCreate:
    """Tests for BookCreate schema."""

    def test_isbn_trimmed(self):
        book = BookCreate(isbn=" 9780743273565\n", title="The Great Gatsby")
        assert book.isbn == "9780743273565"

    def test_blank_isbn_rejected(self):
        with pytest.raises(ValidationError):
            BookCreate(isbn="  ", title="Test")

    def test_empty_title_rejected(self):
        with pytest.raises(ValidationError):
            BookCreate(isbn="123", title="")

    def test_normalize_isbn(self):
        assert normalize_isbn(9780743273565) == "9780743273565"
        with pytest.raises(ValueError):
            normalize_isbn(None)
        with pytest.raises(ValueError):
            normalize_isbn("1" * 21)


class TestLoanStateMachine:
    """Tests for the transition table."""

    def test_statuses(self):
        assert {s for s in LoanStatus if s.is_active} == {LoanStatus.PENDING, LoanStatus.ACCEPTED}
        assert {s for s in LoanStatus if s.is_terminal} == {
            LoanStatus.REJECTED,
            LoanStatus.CANCELLED,
            LoanStatus.RETURNED,
        }

    def test_no_edges_leave_terminal_states(self):
        for transition in TRANSITIONS.values():
            assert not transition.source.is_terminal

    def test_only_owner_actions_touch_the_ledger(self):
        """Accept clears availability, return restores it."""
        assert TRANSITIONS[LoanAction.ACCEPT].availability is False
        assert TRANSITIONS[LoanAction.RETURN].availability is True
        assert TRANSITIONS[LoanAction.REJECT].availability is None
        assert TRANSITIONS[LoanAction.CANCEL].availability is None
        assert TRANSITIONS[LoanAction.CANCEL].actor == LoanRole.REQUESTER


class TestLoanViews:
    """Tests for inbox/outbox row serialization."""

    def _item(self, status, **kwargs):
        return InboxItem(
            id=1,
            status=status,
            book_isbn="123",
            created_at="2024-01-01T00:00:00+00:00",
            updated_at="2024-01-01T00:00:00+00:00",
            requester_id=2,
            requester_username="ryan",
            **kwargs,
        )

    def test_contact_omitted_when_not_accepted(self):
        item = self._item(
            LoanStatus.RETURNED,
            other_party_contact="ryan@example.com",
            other_party_contact_type="email",
        )
        assert "other_party_contact" not in item.to_dict()

    def test_contact_included_when_accepted(self):
        data = self._item(
            LoanStatus.ACCEPTED,
            other_party_contact="ryan@example.com",
            other_party_contact_type="email",
        ).to_dict()

        assert data["status"] == "accepted"
        assert data["other_party_contact"] == "ryan@example.com"
        assert data["book_title"] is None
