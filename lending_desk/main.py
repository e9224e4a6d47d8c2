import subprocess
import sys
from functools import wraps
from typing import Optional

import typer

from lending_desk import accounts
from lending_desk.accounts import Caller
from lending_desk.config import configure_logging, settings
from lending_desk.errors import LendingError
from lending_desk.library import Library
from lending_desk.ui_helpers import print_records, print_stats_result, set_output_mode

app = typer.Typer(help="Lending desk CLI")


def _get_library() -> Library:
    return Library()


def _caller(ctx: typer.Context, library: Library) -> Optional[Caller]:
    """Authenticate with the global --username/--password options, if given."""
    creds = ctx.obj or {}
    if not creds.get("username"):
        return None
    account = accounts.authenticate(library.storage, creds["username"], creds.get("password"))
    return Caller.from_account(account)


def handle_errors(func):
    """Report workflow errors as `Error: ...` with exit code 1."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except LendingError as e:
            print(f"Error: {e.message}")
            raise typer.Exit(code=1)
    return wrapper


@app.callback()
def _global_options(
    ctx: typer.Context,
    output: Optional[str] = typer.Option(None, "--output", "-o", help="Output format: plain | json | rich (default: plain)"),
    username: Optional[str] = typer.Option(None, "--username", "-u", envvar="LENDING_USERNAME", help="Account to act as"),
    password: Optional[str] = typer.Option(None, "--password", "-p", envvar="LENDING_PASSWORD", help="Password for --username"),
):
    """Global options (output mode and credentials)."""
    if output:
        set_output_mode(output)
    ctx.obj = {"username": username, "password": password}


@app.command("signup")
@handle_errors
def cli_signup(username: str, password: str, role: str = typer.Argument("student", help="admin or student")):
    """Create an account."""
    library = _get_library()
    account = accounts.register(library.storage, username, password, role)
    print(f"Created {account.role} account {account.username} (id {account.id})")


@app.command("list")
@handle_errors
def cli_list(ctx: typer.Context):
    """List the catalog."""
    library = _get_library()
    print_records("book", library.list_books(_caller(ctx, library)), "No books in library.")


@app.command("show")
@handle_errors
def cli_show(ctx: typer.Context, book_id: int):
    """Show one book."""
    library = _get_library()
    book = library.find_book(_caller(ctx, library), book_id)
    if book:
        print_records("book", [book], "")
    else:
        print(f"Book {book_id} not found.")


@app.command("add")
@handle_errors
def cli_add(ctx: typer.Context, title: str, author: str,
            available: int = typer.Option(1, "--available", "-n", help="Copies available for lending")):
    """Add a book (admin)."""
    library = _get_library()
    book = library.add_book(_caller(ctx, library), title, author, available)
    print(f"Added book {book.id}: {book.title} by {book.author} ({book.available} available)")


@app.command("remove")
@handle_errors
def cli_remove(ctx: typer.Context, book_id: int):
    """Remove a book with no open loans (admin)."""
    library = _get_library()
    if library.remove_book(_caller(ctx, library), book_id):
        print(f"Book {book_id} has been removed.")
    else:
        print(f"Book {book_id} not found.")


@app.command("borrow")
@handle_errors
def cli_borrow(ctx: typer.Context, book_id: int):
    """Ask to borrow a book (student)."""
    library = _get_library()
    request = library.request_borrow(_caller(ctx, library), book_id)
    print(f"Borrow request {request.id} for {request.title} is pending.")


@app.command("return")
@handle_errors
def cli_return(ctx: typer.Context, book_id: int):
    """Ask to return a borrowed book (student)."""
    library = _get_library()
    request = library.request_return(_caller(ctx, library), book_id)
    print(f"Return request {request.id} for {request.title} is pending.")


@app.command("my-books")
@handle_errors
def cli_my_books(ctx: typer.Context):
    """Books you currently hold (student)."""
    library = _get_library()
    print_records("loan", library.my_books(_caller(ctx, library)), "No borrowed books.")


@app.command("my-requests")
@handle_errors
def cli_my_requests(ctx: typer.Context):
    """Your pending requests (student)."""
    library = _get_library()
    print_records("request", library.my_requests(_caller(ctx, library)), "No pending requests.")


@app.command("pending")
@handle_errors
def cli_pending(ctx: typer.Context):
    """All pending requests (admin)."""
    library = _get_library()
    print_records("request", library.list_pending_requests(_caller(ctx, library)), "No pending requests.")


@app.command("issued")
@handle_errors
def cli_issued(ctx: typer.Context):
    """Every loan ever issued (admin)."""
    library = _get_library()
    print_records("loan", library.list_issued(_caller(ctx, library)), "No books issued.")


@app.command("approve")
@handle_errors
def cli_approve(ctx: typer.Context, request_id: int):
    """Approve a pending request (admin)."""
    library = _get_library()
    request = library.approve(_caller(ctx, library), request_id)
    print(f"Approved {request.type} request {request.id} for {request.username}.")


@app.command("reject")
@handle_errors
def cli_reject(ctx: typer.Context, request_id: int):
    """Reject a pending request (admin)."""
    library = _get_library()
    request = library.reject(_caller(ctx, library), request_id)
    print(f"Rejected {request.type} request {request.id} for {request.username}.")


@app.command("stats")
@handle_errors
def cli_stats(ctx: typer.Context):
    """Catalog and circulation counts."""
    library = _get_library()
    print_stats_result(library.get_statistics(_caller(ctx, library)))


@app.command("serve")
def cli_serve(reload: bool = typer.Option(False, "--reload", help="Restart on code changes")):
    """Run the HTTP API with uvicorn."""
    host = settings.api_host
    port = int(settings.api_port)
    print(f"Starting API on http://{host}:{port}/")
    args = [
        sys.executable,
        "-m", "uvicorn",
        "lending_desk.api:app",
        "--host", host,
        "--port", str(port),
    ]
    if reload:
        args.append("--reload")
    subprocess.run(args)


def run() -> None:
    configure_logging("WARNING")
    app()


if __name__ == "__main__":
    run()
