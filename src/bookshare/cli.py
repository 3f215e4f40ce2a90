"""Command-line interface for bookshare.

Built with Typer for commands and Rich for beautiful output.
"""

import logging
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config import get_config
from .context import AuthContext
from .db import get_db
from .db.schemas import BookCreate, ContactPreference, UserCreate
from .errors import LendingError

# Create the main app
app = typer.Typer(
    name="bookshare",
    help="Lend your books to other readers.",
    no_args_is_help=True,
)

# Create sub-apps for command groups
user_app = typer.Typer(help="Manage registered users.")
app.add_typer(user_app, name="user")
book_app = typer.Typer(help="Manage the book catalog.")
app.add_typer(book_app, name="book")
shelf_app = typer.Typer(help="Manage your own collection of lendable books.")
app.add_typer(shelf_app, name="shelf")
loan_app = typer.Typer(help="Request, accept and return loans.")
app.add_typer(loan_app, name="loan")

# Rich console for pretty output
console = Console()

STATUS_STYLES = {
    "pending": "yellow",
    "accepted": "green",
    "rejected": "red",
    "cancelled": "dim",
    "returned": "blue",
}


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
) -> None:
    """Configure logging for every command."""
    level = "DEBUG" if verbose else get_config().log_level
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


# ============================================================================
# Helper Functions
# ============================================================================


def print_error(message: str) -> None:
    """Print an error message."""
    console.print(f"[bold red]Error:[/bold red] {message}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[bold green]Success:[/bold green] {message}")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[dim]{message}[/dim]")


def acting_user(username: str) -> AuthContext:
    """Resolve --as into an authenticated context, exiting if unknown."""
    user = get_db().get_user_by_username(username)
    if not user:
        print_error(f"No active user named '{username}'")
        raise typer.Exit(1)
    return AuthContext(user_id=user.id, is_admin=user.is_admin)


def resolve_user_id(username: str) -> int:
    """Look up an active user's id by username."""
    user = get_db().get_user_by_username(username)
    if not user:
        print_error(f"No active user named '{username}'")
        raise typer.Exit(1)
    return user.id


def format_status(status: str) -> str:
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status.upper()}[/{style}]"


AS_OPTION = typer.Option(..., "--as", "-u", help="Username of the acting user")


# ============================================================================
# Setup Commands
# ============================================================================


@app.command("init-db")
def init_db() -> None:
    """Create the database tables."""
    config = get_config()
    errors = config.validate()
    if errors:
        for error in errors:
            print_error(error)
        raise typer.Exit(1)

    get_db().create_tables()
    print_success(f"Database ready at {config.database_url}")


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind"),
    port: int = typer.Option(5000, "--port", "-p", help="Port to listen on"),
    debug: bool = typer.Option(False, "--debug", help="Enable Flask debug mode"),
) -> None:
    """Run the JSON API server."""
    from .web import run_server

    run_server(host=host, port=port, debug=debug)


@app.command()
def version() -> None:
    """Show version information."""
    from . import __version__

    console.print(f"bookshare version {__version__}")


# ============================================================================
# User Commands
# ============================================================================


@user_app.command("add")
def user_add(
    username: str = typer.Argument(..., help="Unique username"),
    email: str = typer.Argument(..., help="Email address"),
    phone: Optional[str] = typer.Option(None, "--phone", help="Phone number"),
    prefer_phone: bool = typer.Option(False, "--prefer-phone", help="Share phone instead of email"),
    admin: bool = typer.Option(False, "--admin", help="Grant admin rights"),
) -> None:
    """Register a user."""
    try:
        data = UserCreate(
            username=username,
            email=email,
            phone=phone,
            contact_preference=ContactPreference.PHONE if prefer_phone else ContactPreference.EMAIL,
            is_admin=admin,
        )
        user = get_db().create_user(data)
    except (LendingError, ValueError) as e:
        print_error(str(e))
        raise typer.Exit(1)
    print_success(f"User {user.username} registered with id {user.id}")


@user_app.command("delete")
def user_delete(username: str = typer.Argument(..., help="Username to soft-delete")) -> None:
    """Soft-delete a user. Loan history is kept."""
    db = get_db()
    if not db.soft_delete_user(resolve_user_id(username)):
        print_error("User not found")
        raise typer.Exit(1)
    print_success(f"User {username} deleted")


# ============================================================================
# Catalog Commands
# ============================================================================


@book_app.command("add")
def book_add(
    isbn: str = typer.Argument(..., help="ISBN"),
    title: str = typer.Argument(..., help="Title"),
    author: Optional[str] = typer.Option(None, "--author", "-a", help="Author"),
    cover_url: Optional[str] = typer.Option(None, "--cover", help="Cover image URL"),
) -> None:
    """Add a book to the catalog."""
    try:
        book = get_db().create_book(
            BookCreate(isbn=isbn, title=title, author=author, cover_url=cover_url)
        )
    except (LendingError, ValueError) as e:
        print_error(str(e))
        raise typer.Exit(1)
    print_success(f"Added to catalog: {book.title} ({book.isbn})")


@book_app.command("delete")
def book_delete(isbn: str = typer.Argument(..., help="ISBN to soft-delete")) -> None:
    """Soft-delete a catalog book."""
    try:
        deleted = get_db().soft_delete_book(isbn)
    except LendingError as e:
        print_error(str(e))
        raise typer.Exit(1)
    if not deleted:
        print_error("Book not found")
        raise typer.Exit(1)
    print_success(f"Book {isbn} deleted")


# ============================================================================
# Collection Commands
# ============================================================================


@shelf_app.command("add")
def shelf_add(
    isbn: str = typer.Argument(..., help="ISBN of a catalog book"),
    as_user: str = AS_OPTION,
) -> None:
    """Add a book to your collection."""
    from .ledger import LedgerManager

    ctx = acting_user(as_user)
    try:
        LedgerManager(get_db()).add_to_collection(ctx, isbn)
    except LendingError as e:
        print_error(e.message)
        raise typer.Exit(1)
    print_success(f"{isbn} added to {as_user}'s collection")


@shelf_app.command("remove")
def shelf_remove(
    isbn: str = typer.Argument(..., help="ISBN"),
    as_user: str = AS_OPTION,
) -> None:
    """Remove a book from your collection."""
    from .ledger import LedgerManager

    ctx = acting_user(as_user)
    try:
        LedgerManager(get_db()).remove_from_collection(ctx, isbn)
    except LendingError as e:
        print_error(e.message)
        raise typer.Exit(1)
    print_success(f"{isbn} removed from {as_user}'s collection")


@shelf_app.command("available")
def shelf_available(
    isbn: str = typer.Argument(..., help="ISBN"),
    available: bool = typer.Option(True, "--yes/--no", help="Lendable or not"),
    as_user: str = AS_OPTION,
) -> None:
    """Switch a copy's availability by hand."""
    from .ledger import LedgerManager

    ctx = acting_user(as_user)
    try:
        entry = LedgerManager(get_db()).toggle_availability(ctx, isbn, available)
    except LendingError as e:
        print_error(e.message)
        raise typer.Exit(1)
    state = "available" if entry.is_available else "unavailable"
    print_success(f"{isbn} is now {state}")


@shelf_app.command("list")
def shelf_list(as_user: str = AS_OPTION) -> None:
    """List your collection."""
    from .ledger import LedgerManager

    ctx = acting_user(as_user)
    items = LedgerManager(get_db()).list_collection(ctx.user_id)
    if not items:
        print_info("Your collection is empty")
        return

    table = Table(title=f"{as_user}'s books", show_header=True, header_style="bold magenta")
    table.add_column("ISBN", style="dim")
    table.add_column("Title", style="cyan", max_width=40)
    table.add_column("Author", style="green", max_width=25)
    table.add_column("Available", justify="center")

    for item in items:
        table.add_row(
            item.isbn,
            item.title,
            item.author or "-",
            "[green]yes[/green]" if item.is_available else "[red]no[/red]",
        )

    console.print(table)


# ============================================================================
# Loan Commands
# ============================================================================


@loan_app.command("request")
def loan_request(
    owner: str = typer.Argument(..., help="Username of the owner"),
    isbn: str = typer.Argument(..., help="ISBN of the book"),
    as_user: str = AS_OPTION,
) -> None:
    """Ask an owner to lend you a book."""
    from .loans import LoanEngine

    ctx = acting_user(as_user)
    try:
        loan = LoanEngine(get_db()).create(ctx, resolve_user_id(owner), isbn)
    except LendingError as e:
        print_error(e.message)
        raise typer.Exit(1)
    print_success(f"Loan request {loan.id} sent to {owner} ({loan.status.value})")


def _run_transition(action: str, loan_id: int, as_user: str) -> None:
    from .loans import LoanEngine

    ctx = acting_user(as_user)
    engine = LoanEngine(get_db())
    try:
        loan = getattr(engine, action)(ctx, loan_id)
    except LendingError as e:
        print_error(e.message)
        raise typer.Exit(1)
    print_success(f"Loan {loan.id} is now {format_status(loan.status.value)}")


@loan_app.command("accept")
def loan_accept(
    loan_id: int = typer.Argument(..., help="Loan request ID"),
    as_user: str = AS_OPTION,
) -> None:
    """Accept a pending request for one of your books."""
    _run_transition("accept", loan_id, as_user)


@loan_app.command("reject")
def loan_reject(
    loan_id: int = typer.Argument(..., help="Loan request ID"),
    as_user: str = AS_OPTION,
) -> None:
    """Reject a pending request for one of your books."""
    _run_transition("reject", loan_id, as_user)


@loan_app.command("return")
def loan_return(
    loan_id: int = typer.Argument(..., help="Loan request ID"),
    as_user: str = AS_OPTION,
) -> None:
    """Mark a lent book as returned to you."""
    _run_transition("return_book", loan_id, as_user)


@loan_app.command("cancel")
def loan_cancel(
    loan_id: int = typer.Argument(..., help="Loan request ID"),
    as_user: str = AS_OPTION,
) -> None:
    """Withdraw a pending request you sent."""
    _run_transition("cancel", loan_id, as_user)


def _loan_table(title: str, party_header: str, rows: list[tuple]) -> Table:
    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim")
    table.add_column("Book", style="cyan", max_width=30)
    table.add_column(party_header)
    table.add_column("Status")
    table.add_column("Contact")
    table.add_column("Requested")
    for row in rows:
        table.add_row(*row)
    return table


@loan_app.command("inbox")
def loan_inbox(as_user: str = AS_OPTION) -> None:
    """Requests other users sent you."""
    from .loans import LoanProjection

    ctx = acting_user(as_user)
    items = LoanProjection(get_db()).inbox(ctx)
    if not items:
        print_info("No requests received")
        return

    rows = [
        (
            str(item.id),
            item.book_title or item.book_isbn,
            item.requester_username,
            format_status(item.status.value),
            item.other_party_contact if item.discloses_contact else "-",
            item.created_at.strftime("%Y-%m-%d %H:%M"),
        )
        for item in items
    ]
    console.print(_loan_table("Inbox", "Requester", rows))


@loan_app.command("outbox")
def loan_outbox(as_user: str = AS_OPTION) -> None:
    """Requests you sent to other users."""
    from .loans import LoanProjection

    ctx = acting_user(as_user)
    items = LoanProjection(get_db()).outbox(ctx)
    if not items:
        print_info("No requests sent")
        return

    rows = [
        (
            str(item.id),
            item.book_title or item.book_isbn,
            item.owner_username,
            format_status(item.status.value),
            item.other_party_contact if item.discloses_contact else "-",
            item.created_at.strftime("%Y-%m-%d %H:%M"),
        )
        for item in items
    ]
    console.print(_loan_table("Outbox", "Owner", rows))


@loan_app.command("stats")
def loan_stats(
    as_user: str = AS_OPTION,
    user: Optional[str] = typer.Option(None, "--user", help="Show counts for one user"),
) -> None:
    """Loan request counts per status."""
    from .loans import LoanProjection

    ctx = acting_user(as_user)
    projection = LoanProjection(get_db())
    try:
        if user:
            stats = projection.user_loan_stats(ctx, resolve_user_id(user))
            sections = [
                ("Sent", stats.loans_out_by_status, stats.loans_out_total),
                ("Received", stats.loans_in_by_status, stats.loans_in_total),
            ]
        else:
            counts = projection.status_counts(ctx)
            sections = [("All requests", counts.by_status, counts.total)]
    except LendingError as e:
        print_error(e.message)
        raise typer.Exit(1)

    for title, by_status, total in sections:
        table = Table(title=title, show_header=True, header_style="bold magenta")
        table.add_column("Status")
        table.add_column("Count", justify="right")
        for status, count in by_status.items():
            table.add_row(format_status(status), str(count))
        table.add_row("[bold]Total[/bold]", f"[bold]{total}[/bold]")
        console.print(table)


if __name__ == "__main__":
    app()
