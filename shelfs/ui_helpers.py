import json
import os
from typing import Dict, List

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from shelfs.library import Library
from shelfs.models import BookCopy, BookDefinition, Loan, User, format_timestamp

# Environment variable to control CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "SHELFS_CLI_OUTPUT"

_console = Console()


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def _loan_row(library: Library, loan: Loan) -> Dict[str, str]:
    copy = library.books.get_copy(loan.book_id)
    barcode = copy.barcode if copy else "(unknown)"
    title = "(unknown)"
    if copy is not None:
        definition = library.books.get_definition(copy.book_def_id)
        if definition is not None:
            title = f"{definition.title} by {definition.author}"
    return {
        "id": loan.id,
        "book": title,
        "barcode": barcode,
        "user_id": loan.user_id,
        "due": format_timestamp(loan.due_date),
    }


def print_books(library: Library, books: List[BookDefinition]) -> None:
    """Print book definitions with their copies.
    - plain: one block per title with barcode/status lines
    - json: array of definitions with nested copies
    - rich: Rich table
    """
    mode = get_output_mode()

    if not books:
        print("No books in the library.")
        return

    if mode == "json":
        payload = []
        for b in books:
            entry = b.to_dict()
            entry["copies"] = [c.to_dict() for c in library.books.copies_for(b.id)]
            payload.append(entry)
        print(json.dumps(payload, ensure_ascii=False))
    elif mode == "rich":
        table = Table(title="📚 Books", show_lines=True, header_style="bold cyan")
        table.add_column("ISBN", style="magenta", no_wrap=True)
        table.add_column("Title", style="white")
        table.add_column("Author", style="white")
        table.add_column("Publisher", style="white")
        table.add_column("Copies", style="green")
        for b in books:
            copies = library.books.copies_for(b.id)
            available = sum(1 for c in copies if c.is_available)
            table.add_row(b.isbn, b.title, b.author, b.publisher, f"{available}/{len(copies)} available")
        _console.print(table)
    else:
        for b in books:
            print(f"{b.isbn} - {b.title} by {b.author} ({b.publisher or 'unknown publisher'})")
            for c in library.books.copies_for(b.id):
                print(f"  Barcode: {c.barcode} | Status: {c.status.name}")


def print_copies(copies: List[BookCopy]) -> None:
    mode = get_output_mode()

    if not copies:
        print("No available copies.")
        return

    if mode == "json":
        print(json.dumps([c.to_dict() for c in copies], ensure_ascii=False))
    else:
        for c in copies:
            print(f"Barcode: {c.barcode} | Status: {c.status.name}")


def print_users(users: List[User]) -> None:
    mode = get_output_mode()

    if not users:
        print("No users registered.")
        return

    if mode == "json":
        payload = [{k: v for k, v in u.to_dict().items() if k != "password"} for u in users]
        print(json.dumps(payload, ensure_ascii=False))
    elif mode == "rich":
        table = Table(title="👥 Users", show_lines=True, header_style="bold cyan")
        table.add_column("ID", style="magenta", no_wrap=True)
        table.add_column("Username", style="white")
        table.add_column("Email", style="white")
        table.add_column("Role", style="yellow")
        for u in users:
            table.add_row(u.id, u.username, u.email, u.role.name)
        _console.print(table)
    else:
        for u in users:
            print(f"{u.id} - {u.username} <{u.email}> [{u.role.name}]")


def print_loans(library: Library, loans: List[Loan]) -> None:
    mode = get_output_mode()

    if not loans:
        print("No loans found.")
        return

    rows = [_loan_row(library, l) for l in loans]
    if mode == "json":
        print(json.dumps(rows, ensure_ascii=False))
    elif mode == "rich":
        table = Table(title="📖 Loans", show_lines=True, header_style="bold cyan")
        for column in ("Loan ID", "Book", "Barcode", "User ID", "Due"):
            table.add_column(column)
        for r in rows:
            table.add_row(r["id"], r["book"], r["barcode"], r["user_id"], r["due"])
        _console.print(table)
    else:
        for r in rows:
            print(f"{r['id']} - {r['book']} [{r['barcode']}] user={r['user_id']} due={r['due']}")


def print_overview(overview: Dict[str, int]) -> None:
    mode = get_output_mode()

    if mode == "json":
        print(json.dumps(overview, ensure_ascii=False))
    elif mode == "rich":
        content = "\n".join(f"[bold]{k}:[/] {v}" for k, v in overview.items())
        _console.print(Panel.fit(content, title="📊 Quick Overview", border_style="blue"))
    else:
        for k, v in overview.items():
            print(f"{k}: {v}")
