import json
import os
from typing import Any, Dict, List, Sequence, Tuple

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

# Environment variable controlling CLI output mode.
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "LENDING_CLI_OUTPUT"

_console = Console()

BOOK_COLUMNS = (("id", "ID"), ("title", "Title"), ("author", "Author"), ("available", "Available"))
LOAN_COLUMNS = (("id", "ID"), ("username", "User"), ("bookId", "Book"), ("title", "Title"),
                ("issue_date", "Issued"), ("return_date", "Returned"))
REQUEST_COLUMNS = (("id", "ID"), ("type", "Type"), ("username", "User"), ("bookId", "Book"),
                   ("title", "Title"), ("requested_at", "Requested"), ("status", "Status"))


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def _plain_line(kind: str, row: Dict[str, Any]) -> str:
    if kind == "book":
        return f"{row['id']} - {row['title']} by {row['author']} ({row['available']} available)"
    if kind == "loan":
        returned = row["return_date"] or "open"
        return f"{row['id']} - {row['title']} (book {row['bookId']}) to {row['username']}, issued {row['issue_date']}, returned {returned}"
    return f"{row['id']} - {row['type']} {row['title']} (book {row['bookId']}) by {row['username']} [{row['status']}]"


def print_records(kind: str, records: List[Any], empty_message: str) -> None:
    """Print books, loans or requests in the current output mode.

    - plain: one line per record, or `empty_message`
    - json: JSON array of the stored record shape
    - rich: Rich table
    """
    mode = get_output_mode()
    rows = [r.to_dict() for r in records]

    if not rows:
        print(empty_message)
        return

    if mode == "json":
        print(json.dumps(rows, ensure_ascii=False))
    elif mode == "rich":
        columns: Sequence[Tuple[str, str]] = {
            "book": BOOK_COLUMNS, "loan": LOAN_COLUMNS, "request": REQUEST_COLUMNS,
        }[kind]
        table = Table(title=f"{kind.title()}s", show_lines=True, header_style="bold cyan")
        for _, header in columns:
            table.add_column(header)
        for row in rows:
            table.add_row(*("" if row[key] is None else str(row[key]) for key, _ in columns))
        _console.print(table)
    else:
        for row in rows:
            print(_plain_line(kind, row))


def print_stats_result(stats: Dict[str, Any]) -> None:
    mode = get_output_mode()

    if mode == "json":
        print(json.dumps(stats, ensure_ascii=False))
    elif mode == "rich":
        content = (
            f"[bold]Titles:[/] {stats['total_titles']}\n"
            f"[bold]Available copies:[/] {stats['available_copies']}\n"
            f"[bold]Open loans:[/] {stats['open_loans']}\n"
            f"[bold]Pending requests:[/] {stats['pending_requests']}"
        )
        _console.print(Panel.fit(content, title="Stats", border_style="blue"))
    else:
        print(f"Titles: {stats['total_titles']}")
        print(f"Available copies: {stats['available_copies']}")
        print(f"Open loans: {stats['open_loans']}")
        print(f"Pending requests: {stats['pending_requests']}")
