"""Flask JSON API for book lending.

Caller identity is read from the Flask session key ``user_id``, which the
authentication layer sets at login.
"""

import logging
from functools import wraps
from typing import Optional

from flask import Blueprint, Flask, current_app, g, jsonify, request, session
from werkzeug.exceptions import HTTPException

from .config import Config, get_config
from .context import AuthContext
from .db.database import Database, get_db
from .errors import AuthenticationError, LendingError, ValidationError
from .ledger.manager import LedgerManager
from .loans.engine import LoanEngine
from .loans.projection import LoanProjection

logger = logging.getLogger(__name__)

loans_bp = Blueprint("loans", __name__, url_prefix="/api/loans")
shelf_bp = Blueprint("my_books", __name__, url_prefix="/api/my-books")
admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


def _db() -> Database:
    return current_app.extensions["bookshare_db"]


def login_required(fn):
    """Resolve the session user into ``g.ctx`` or answer 401."""

    @wraps(fn)
    def wrapper(*args, **kwargs):
        user_id = session.get("user_id")
        if user_id is None:
            raise AuthenticationError("Not authenticated")
        try:
            ctx = AuthContext(user_id=user_id)
        except ValidationError:
            raise AuthenticationError("Not authenticated") from None
        user = _db().get_user(ctx.user_id)
        if not user:
            raise AuthenticationError("Not authenticated")
        g.ctx = AuthContext(user_id=user.id, is_admin=user.is_admin)
        return fn(*args, **kwargs)

    return wrapper


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("JSON object expected")
    return data


# ============================================================================
# Loans
# ============================================================================


@loans_bp.post("")
@login_required
def create_loan():
    """Requester asks an owner for a book."""
    data = _json_body()
    loan = LoanEngine(_db()).create(g.ctx, data.get("owner_user_id"), data.get("book_isbn"))
    return jsonify({"ok": True, "loan": loan.model_dump(mode="json")}), 201


@loans_bp.get("/inbox")
@login_required
def inbox():
    """Requests received by the caller."""
    items = LoanProjection(_db()).inbox(g.ctx)
    return jsonify([item.to_dict() for item in items])


@loans_bp.get("/outbox")
@login_required
def outbox():
    """Requests sent by the caller."""
    items = LoanProjection(_db()).outbox(g.ctx)
    return jsonify([item.to_dict() for item in items])


def _transition_view(method_name: str):
    @login_required
    def view(loan_id: str):
        engine = LoanEngine(_db())
        loan = getattr(engine, method_name)(g.ctx, loan_id)
        return jsonify({"ok": True, **loan.model_dump(mode="json")})

    view.__name__ = f"{method_name}_loan"
    return view


loans_bp.add_url_rule("/<loan_id>/accept", view_func=_transition_view("accept"), methods=["POST"])
loans_bp.add_url_rule("/<loan_id>/reject", view_func=_transition_view("reject"), methods=["POST"])
loans_bp.add_url_rule(
    "/<loan_id>/return", view_func=_transition_view("return_book"), methods=["POST"]
)
loans_bp.add_url_rule("/<loan_id>/cancel", view_func=_transition_view("cancel"), methods=["POST"])


# ============================================================================
# Owner's collection
# ============================================================================


@shelf_bp.get("")
@login_required
def my_books():
    """The caller's collection with availability."""
    items = LedgerManager(_db()).list_collection(g.ctx.user_id)
    return jsonify([item.model_dump(mode="json") for item in items])


@shelf_bp.post("")
@login_required
def add_my_book():
    """Add a catalog book to the caller's collection."""
    entry = LedgerManager(_db()).add_to_collection(g.ctx, _json_body().get("isbn"))
    return jsonify({"ok": True, "isbn": entry.book_isbn}), 201


@shelf_bp.patch("/<isbn>/availability")
@login_required
def set_my_book_availability(isbn: str):
    """Toggle availability of one of the caller's copies."""
    value = _json_body().get("is_available")
    if not isinstance(value, bool):
        raise ValidationError("is_available must be a boolean")
    entry = LedgerManager(_db()).toggle_availability(g.ctx, isbn, value)
    return jsonify({"ok": True, "isbn": entry.book_isbn, "is_available": entry.is_available})


@shelf_bp.delete("/<isbn>")
@login_required
def remove_my_book(isbn: str):
    """Remove a book from the caller's collection."""
    LedgerManager(_db()).remove_from_collection(g.ctx, isbn)
    return jsonify({"ok": True, "isbn": isbn.strip()})


# ============================================================================
# Admin statistics
# ============================================================================


@admin_bp.get("/loan-stats")
@login_required
def loan_stats():
    """Loan request counts per status."""
    counts = LoanProjection(_db()).status_counts(g.ctx)
    return jsonify(counts.model_dump())


@admin_bp.get("/users/<user_id>/loan-stats")
@login_required
def user_loan_stats(user_id: str):
    """Per-user request counts."""
    stats = LoanProjection(_db()).user_loan_stats(g.ctx, user_id)
    return jsonify(stats.model_dump())


# ============================================================================
# App factory
# ============================================================================


def create_app(db: Optional[Database] = None, config: Optional[Config] = None) -> Flask:
    """Create and configure the Flask application."""
    config = config or get_config()

    app = Flask(__name__)
    app.config["SECRET_KEY"] = config.secret_key
    app.extensions["bookshare_db"] = db or get_db(config.database_url)

    app.register_blueprint(loans_bp)
    app.register_blueprint(shelf_bp)
    app.register_blueprint(admin_bp)

    @app.errorhandler(LendingError)
    def handle_lending_error(e: LendingError):
        return jsonify({"error": e.message}), e.status_code

    @app.errorhandler(Exception)
    def handle_unexpected(e: Exception):
        if isinstance(e, HTTPException):
            return jsonify({"error": e.description}), e.code
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return jsonify({"error": "Server error"}), 500

    @app.get("/health")
    def health():
        return jsonify({"ok": True})

    return app


def run_server(host: str = "127.0.0.1", port: int = 5000, debug: bool = False):
    """Run the lending API server."""
    app = create_app()
    logger.info("bookshare API running at http://%s:%s", host, port)
    app.run(host=host, port=port, debug=debug)
