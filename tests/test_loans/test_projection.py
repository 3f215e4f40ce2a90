"""Tests for inbox/outbox listings and loan statistics."""

import pytest

from bookshare.context import AuthContext
from bookshare.errors import ForbiddenError
from bookshare.loans.schemas import LoanStatus

ISBN = "9780743273565"
OTHER_ISBN = "9780441172719"


class TestInbox:
    """Tests for the owner's view."""

    def test_inbox_lists_received_requests(
        self, engine, projection, owner_ctx, requester_ctx, requester2_ctx, owner, shelf
    ):
        """Requests appear newest first with requester identity."""
        first = engine.create(requester_ctx, owner.id, ISBN)
        second = engine.create(requester2_ctx, owner.id, OTHER_ISBN)

        items = projection.inbox(owner_ctx)

        assert [item.id for item in items] == [second.id, first.id]
        assert items[0].requester_username == "rita"
        assert items[0].book_title == "Dune"
        assert items[0].cover_url == "https://covers.example.com/dune.jpg"
        assert items[1].requester_username == "ryan"
        assert items[1].book_title == "The Great Gatsby"

    def test_inbox_excludes_sent_requests(self, projection, requester_ctx, pending_loan):
        """The requester's inbox does not show what they sent."""
        assert projection.inbox(requester_ctx) == []

    def test_pending_hides_contact(self, projection, owner_ctx, pending_loan):
        """No contact details before acceptance."""
        item = projection.inbox(owner_ctx)[0]

        assert item.other_party_contact is None
        assert "other_party_contact" not in item.to_dict()
        assert "other_party_contact_type" not in item.to_dict()

    def test_accepted_shows_requester_email(self, engine, projection, owner_ctx, pending_loan):
        """Once accepted, the owner sees the requester's email."""
        engine.accept(owner_ctx, pending_loan.id)

        data = projection.inbox(owner_ctx)[0].to_dict()

        assert data["status"] == "accepted"
        assert data["other_party_contact"] == "ryan@example.com"
        assert data["other_party_contact_type"] == "email"


class TestOutbox:
    """Tests for the requester's view."""

    def test_outbox_lists_sent_requests(self, projection, requester_ctx, owner, pending_loan):
        """The requester sees the owner's identity."""
        items = projection.outbox(requester_ctx)

        assert len(items) == 1
        assert items[0].owner_id == owner.id
        assert items[0].owner_username == "olivia"
        assert items[0].status == LoanStatus.PENDING

    def test_accepted_shows_owner_phone(self, engine, projection, owner_ctx, requester_ctx, pending_loan):
        """The owner's phone preference is honoured."""
        engine.accept(owner_ctx, pending_loan.id)

        data = projection.outbox(requester_ctx)[0].to_dict()

        assert data["other_party_contact"] == "+39 333 1234567"
        assert data["other_party_contact_type"] == "phone"

    def test_phone_preference_without_phone_falls_back(
        self, engine, projection, make_user, ledger, catalog
    ):
        """A phone preference with no number on file discloses the email."""
        from bookshare.db.schemas import ContactPreference

        lender = make_user("pat", contact_preference=ContactPreference.PHONE)
        lender_ctx = AuthContext(user_id=lender.id)
        borrower_ctx = AuthContext(user_id=make_user("bo").id)
        ledger.add_to_collection(lender_ctx, ISBN)

        loan = engine.create(borrower_ctx, lender.id, ISBN)
        engine.accept(lender_ctx, loan.id)

        data = projection.outbox(borrower_ctx)[0].to_dict()
        assert data["other_party_contact"] == "pat@example.com"
        assert data["other_party_contact_type"] == "email"

    def test_returned_hides_contact_again(
        self, engine, projection, owner_ctx, requester_ctx, pending_loan
    ):
        """Contact details are only disclosed while accepted."""
        engine.accept(owner_ctx, pending_loan.id)
        engine.return_book(owner_ctx, pending_loan.id)

        data = projection.outbox(requester_ctx)[0].to_dict()

        assert data["status"] == "returned"
        assert "other_party_contact" not in data

    def test_deleted_counterparty_keeps_contact(
        self, db, engine, projection, owner, owner_ctx, requester_ctx, pending_loan
    ):
        """A soft delete leaves an accepted loan's contact details in place."""
        engine.accept(owner_ctx, pending_loan.id)
        db.soft_delete_user(owner.id)

        data = projection.outbox(requester_ctx)[0].to_dict()

        assert data["owner_username"] == "olivia"
        assert data["status"] == "accepted"
        assert data["other_party_contact"] == "+39 333 1234567"
        assert data["other_party_contact_type"] == "phone"

    def test_deleted_counterparty_pending_has_no_contact(
        self, db, projection, requester, owner_ctx, pending_loan
    ):
        """Non-accepted rows stay without contact details after a soft delete."""
        db.soft_delete_user(requester.id)

        data = projection.inbox(owner_ctx)[0].to_dict()

        assert data["requester_username"] == "ryan"
        assert "other_party_contact" not in data


class TestPrivacyInvariant:
    """Contact fields are present iff the status is accepted."""

    def test_contact_iff_accepted(
        self, engine, projection, owner, owner_ctx, requester_ctx, requester2_ctx, shelf
    ):
        rejected = engine.create(requester_ctx, owner.id, ISBN)
        engine.reject(owner_ctx, rejected.id)
        cancelled = engine.create(requester2_ctx, owner.id, ISBN)
        engine.cancel(requester2_ctx, cancelled.id)
        accepted = engine.create(requester_ctx, owner.id, ISBN)
        engine.accept(owner_ctx, accepted.id)
        engine.create(requester2_ctx, owner.id, OTHER_ISBN)

        rows = [item.to_dict() for item in projection.inbox(owner_ctx)]
        rows += [item.to_dict() for item in projection.outbox(requester_ctx)]
        rows += [item.to_dict() for item in projection.outbox(requester2_ctx)]

        assert len(rows) == 8
        for row in rows:
            assert ("other_party_contact" in row) == (row["status"] == "accepted")


class TestStatistics:
    """Tests for status counts."""

    def test_status_counts_zero_filled(self, projection, admin_ctx):
        """Every status is reported even with no loans."""
        counts = projection.status_counts(admin_ctx)

        assert counts.total == 0
        assert counts.by_status == {s.value: 0 for s in LoanStatus}

    def test_status_counts(self, engine, projection, admin_ctx, owner_ctx, requester_ctx, requester2_ctx, owner, shelf):
        """Counts follow the loans through their lifecycle."""
        l1 = engine.create(requester_ctx, owner.id, ISBN)
        engine.accept(owner_ctx, l1.id)
        l2 = engine.create(requester2_ctx, owner.id, OTHER_ISBN)
        engine.reject(owner_ctx, l2.id)
        engine.create(requester2_ctx, owner.id, OTHER_ISBN)

        counts = projection.status_counts(admin_ctx)

        assert counts.total == 3
        assert counts.by_status["accepted"] == 1
        assert counts.by_status["rejected"] == 1
        assert counts.by_status["pending"] == 1
        assert counts.by_status["returned"] == 0

    def test_status_counts_admin_only(self, projection, owner_ctx):
        """Aggregate statistics are for admins."""
        with pytest.raises(ForbiddenError):
            projection.status_counts(owner_ctx)

    def test_user_loan_stats(self, projection, owner, owner_ctx, requester, requester_ctx, pending_loan):
        """Per-user stats split sent and received requests."""
        owner_stats = projection.user_loan_stats(owner_ctx, owner.id)
        requester_stats = projection.user_loan_stats(requester_ctx, requester.id)

        assert owner_stats.loans_in_total == 1
        assert owner_stats.loans_in_by_status["pending"] == 1
        assert owner_stats.loans_out_total == 0
        assert requester_stats.loans_out_total == 1
        assert requester_stats.loans_in_total == 0

    def test_user_loan_stats_of_others(self, projection, owner, requester_ctx, admin_ctx, pending_loan):
        """Only the user themselves or an admin may read them."""
        with pytest.raises(ForbiddenError):
            projection.user_loan_stats(requester_ctx, owner.id)
        assert projection.user_loan_stats(admin_ctx, owner.id).loans_in_total == 1
