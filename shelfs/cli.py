import logging
from functools import wraps
from typing import List, Optional

import typer
from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table

from shelfs.config import settings
from shelfs.errors import LibraryError, PersistenceError
from shelfs.library import Library, open_library
from shelfs.models import BookDefinition, Role
from shelfs.services.auth_service import AuthService, can_return
from shelfs.ui_helpers import (
    print_books,
    print_copies,
    print_loans,
    print_overview,
    print_users,
    set_output_mode,
)

logger = logging.getLogger(__name__)

console = Console()


# Single Library instance per data directory
class LibraryManager:
    _instance: Optional[Library] = None
    _data_dir: Optional[str] = None

    @classmethod
    def configure(cls, data_dir: Optional[str]) -> None:
        data_dir = data_dir or settings.data_dir
        if data_dir != cls._data_dir:
            cls._instance = None
            cls._data_dir = data_dir

    @classmethod
    def data_dir(cls) -> str:
        return cls._data_dir or settings.data_dir

    @classmethod
    def get_instance(cls) -> Library:
        """Load the library from the configured data directory, once."""
        if cls._instance is None:
            cls._instance = open_library(cls.data_dir())
            logger.info(f"Library opened from {cls.data_dir()}")
        return cls._instance

    @classmethod
    def save(cls) -> None:
        if cls._instance is not None:
            cls._instance.save()

    @classmethod
    def reset(cls) -> None:
        cls._instance = None
        cls._data_dir = None


def library_command(mutates: bool = False):
    """Render domain errors as messages; save the snapshot after mutating commands."""
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                result = func(*args, **kwargs)
                if mutates:
                    LibraryManager.save()
                return result
            except (LibraryError, ValueError) as e:
                print(f"Error: {e}")
            except PersistenceError as e:
                print(f"Storage error: {e}")
                raise typer.Exit(code=1)
        return wrapper
    return decorator


def _login(email: str, password: str) -> AuthService:
    session = LibraryManager.get_instance().session()
    if not session.login(email, password):
        print("Login failed. Invalid email or password.")
        raise typer.Exit(code=1)
    return session


def _login_admin(email: str, password: str, action: str) -> AuthService:
    session = _login(email, password)
    if not session.require_admin():
        print(f"Access Denied: Only Administrators can {action}.")
        raise typer.Exit(code=1)
    return session


EMAIL_OPTION = typer.Option(..., "--email", "-e", envvar="SHELFS_EMAIL", help="Login email")
PASSWORD_OPTION = typer.Option(..., "--password", "-p", envvar="SHELFS_PASSWORD", help="Login password")


# --- Typer CLI Application ---
app = typer.Typer(help="Shelfs - lightweight library management", invoke_without_command=True)
books_app = typer.Typer(help="Browse and manage books")
users_app = typer.Typer(help="Manage user accounts (administrators only)")
loans_app = typer.Typer(help="Issue, return and list loans")
app.add_typer(books_app, name="books")
app.add_typer(users_app, name="users")
app.add_typer(loans_app, name="loans")


@app.callback()
def _global_options(
    ctx: typer.Context,
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    ),
    data_dir: Optional[str] = typer.Option(
        None,
        "--data-dir",
        "-d",
        envvar="LIBRARY_DATA_DIR",
        help="Directory holding the JSON snapshot",
    ),
):
    """Global options for the CLI (output mode, data directory)."""
    if output:
        set_output_mode(output)
    LibraryManager.configure(data_dir)
    if ctx.invoked_subcommand is None:
        run_menu(LibraryManager.get_instance())


@app.command("overview")
@library_command()
def cli_overview():
    """Show catalog, user and loan counts."""
    print_overview(LibraryManager.get_instance().quick_overview())


@app.command("signup")
@library_command(mutates=True)
def cli_signup(
    username: str,
    email: str,
    password: str = typer.Option(..., "--password", "-p", help="Password for the new account"),
):
    """Create a Member account."""
    user = LibraryManager.get_instance().session().signup(username, email, password)
    print(f"Sign up successful! Your account ID: {user.id}")


# ------------------------- Books ------------------------- #
@books_app.command("list")
@library_command()
def cli_books_list():
    """List all books with their copies."""
    lib = LibraryManager.get_instance()
    print_books(lib, lib.books.list_definitions())


@books_app.command("search")
@library_command()
def cli_books_search(
    title: Optional[str] = typer.Option(None, "--title", "-t", help="Partial title match"),
    author: Optional[str] = typer.Option(None, "--author", "-a", help="Partial author match"),
):
    """Search books by title and/or author (case-insensitive)."""
    if not title and not author:
        print("Provide --title and/or --author.")
        return
    lib = LibraryManager.get_instance()
    results: List[BookDefinition] = lib.books.list_definitions()
    if title:
        matches = {d.id for d in lib.books.find_by_title(title)}
        results = [d for d in results if d.id in matches]
    if author:
        matches = {d.id for d in lib.books.find_by_author(author)}
        results = [d for d in results if d.id in matches]
    if not results:
        print("No books found matching the criteria.")
        return
    print_books(lib, results)


@books_app.command("show")
@library_command()
def cli_books_show(isbn: str):
    """Show one book and its copies."""
    lib = LibraryManager.get_instance()
    definition = lib.books.find_by_isbn(isbn)
    if definition is None:
        print(f"No book found with ISBN {isbn}.")
        return
    print_books(lib, [definition])


@books_app.command("available")
@library_command()
def cli_books_available(isbn: str):
    """List available copies of a book."""
    lib = LibraryManager.get_instance()
    if lib.books.find_by_isbn(isbn) is None:
        print(f"No book found with ISBN {isbn}.")
        return
    print_copies(lib.books.list_available_copies(isbn))


@books_app.command("add")
@library_command(mutates=True)
def cli_books_add(
    isbn: str,
    title: Optional[str] = typer.Option(None, "--title", "-t"),
    author: Optional[str] = typer.Option(None, "--author", "-a"),
    publisher: str = typer.Option("", "--publisher"),
    email: str = EMAIL_OPTION,
    password: str = PASSWORD_OPTION,
):
    """Add a book. A known ISBN gets one more copy instead."""
    _login_admin(email, password, "manage books")
    lib = LibraryManager.get_instance()
    existing = lib.books.find_by_isbn(isbn)
    before = len(lib.books.copies_for(existing.id)) if existing else 0
    definition = lib.books.add_definition(isbn, title or "", author or "", publisher)
    copy = lib.books.copies_for(definition.id)[before]
    if existing:
        print(f"Book with ISBN {isbn} already exists. Added a new copy: {copy.barcode}")
    else:
        print(f"New book added: {definition.title} by {definition.author} (barcode {copy.barcode})")


@books_app.command("copy")
@library_command(mutates=True)
def cli_books_copy(isbn: str, email: str = EMAIL_OPTION, password: str = PASSWORD_OPTION):
    """Add one more copy of a registered book."""
    _login_admin(email, password, "manage books")
    lib = LibraryManager.get_instance()
    definition = lib.books.find_by_isbn(isbn)
    if definition is None:
        print(f"Book with ISBN {isbn} not found.")
        return
    copy = lib.books.add_copy(definition.id)
    print(f"Copy added successfully. Barcode: {copy.barcode}")


@books_app.command("remove-copy")
@library_command(mutates=True)
def cli_books_remove_copy(barcode: str, email: str = EMAIL_OPTION, password: str = PASSWORD_OPTION):
    """Remove a book item by barcode."""
    _login_admin(email, password, "manage books")
    LibraryManager.get_instance().books.remove_copy(barcode)
    print("Book item removed successfully.")


@books_app.command("remove")
@library_command(mutates=True)
def cli_books_remove(isbn: str, email: str = EMAIL_OPTION, password: str = PASSWORD_OPTION):
    """Remove a book definition that has no copies left."""
    _login_admin(email, password, "manage books")
    LibraryManager.get_instance().books.remove_definition(isbn)
    print(f"Book with ISBN {isbn} has been removed.")


@books_app.command("update")
@library_command(mutates=True)
def cli_books_update(
    isbn: str,
    title: Optional[str] = typer.Option(None, "--title", "-t"),
    author: Optional[str] = typer.Option(None, "--author", "-a"),
    publisher: Optional[str] = typer.Option(None, "--publisher"),
    email: str = EMAIL_OPTION,
    password: str = PASSWORD_OPTION,
):
    """Update title, author and/or publisher; omitted fields keep their value."""
    _login_admin(email, password, "manage books")
    lib = LibraryManager.get_instance()
    current = lib.books.find_by_isbn(isbn)
    if current is None:
        print(f"Book with ISBN {isbn} not found.")
        return
    lib.books.update_definition(
        isbn,
        title or current.title,
        author or current.author,
        publisher if publisher is not None else current.publisher,
    )
    print("Book updated successfully.")


# ------------------------- Users ------------------------- #
@users_app.command("list")
@library_command()
def cli_users_list(email: str = EMAIL_OPTION, password: str = PASSWORD_OPTION):
    """List all accounts."""
    _login_admin(email, password, "manage users")
    print_users(LibraryManager.get_instance().users.list())


@users_app.command("add")
@library_command(mutates=True)
def cli_users_add(
    username: str,
    new_email: str = typer.Argument(..., metavar="EMAIL"),
    new_password: str = typer.Argument(..., metavar="PASSWORD"),
    admin: bool = typer.Option(False, "--admin", help="Register as Administrator"),
    email: str = EMAIL_OPTION,
    password: str = PASSWORD_OPTION,
):
    """Register a user with the given role."""
    _login_admin(email, password, "manage users")
    role = Role.ADMINISTRATOR if admin else Role.MEMBER
    user = LibraryManager.get_instance().users.create(username, new_email, new_password, role)
    print(f"User registered with ID: {user.id} | Role: {user.role.name}")


@users_app.command("update")
@library_command(mutates=True)
def cli_users_update(
    user_id: str,
    username: Optional[str] = typer.Option(None, "--username"),
    new_email: Optional[str] = typer.Option(None, "--new-email"),
    new_password: Optional[str] = typer.Option(None, "--new-password"),
    email: str = EMAIL_OPTION,
    password: str = PASSWORD_OPTION,
):
    """Update username, email and/or password; omitted fields keep their value."""
    _login_admin(email, password, "manage users")
    users = LibraryManager.get_instance().users
    current = users.get(user_id)
    if current is None:
        print(f"User with ID {user_id} not found.")
        return
    users.update(
        user_id,
        username or current.username,
        new_email or current.email,
        new_password or current.password,
    )
    print("User updated successfully.")


@users_app.command("upgrade")
@library_command(mutates=True)
def cli_users_upgrade(user_id: str, email: str = EMAIL_OPTION, password: str = PASSWORD_OPTION):
    """Promote a Member to Administrator."""
    _login_admin(email, password, "manage users")
    if LibraryManager.get_instance().users.upgrade_role(user_id):
        print("User upgraded to Administrator successfully.")
    else:
        print("Upgrade failed. User not found or already an Administrator.")


@users_app.command("remove")
@library_command(mutates=True)
def cli_users_remove(user_id: str, email: str = EMAIL_OPTION, password: str = PASSWORD_OPTION):
    """Remove an account without active loans."""
    _login_admin(email, password, "manage users")
    LibraryManager.get_instance().remove_user(user_id)
    print("User removed successfully.")


# ------------------------- Loans ------------------------- #
@loans_app.command("list")
@library_command()
def cli_loans_list(
    user_id: Optional[str] = typer.Option(None, "--user-id", "-u", help="Only loans of this user"),
    email: str = EMAIL_OPTION,
    password: str = PASSWORD_OPTION,
):
    """List loans: all for administrators, your own for members."""
    session = _login(email, password)
    lib = LibraryManager.get_instance()
    if user_id is None:
        print_loans(lib, lib.accessible_loans(session.current_user))
        return
    if not session.can_act_for(user_id):
        print("Access Denied: Members can only view their own loans.")
        raise typer.Exit(code=1)
    print_loans(lib, lib.loans.list_by_user(user_id))


@loans_app.command("overdue")
@library_command()
def cli_loans_overdue(email: str = EMAIL_OPTION, password: str = PASSWORD_OPTION):
    """List loans past their due date."""
    _login_admin(email, password, "view all loans")
    lib = LibraryManager.get_instance()
    print_loans(lib, lib.loans.list_overdue())


@loans_app.command("issue")
@library_command(mutates=True)
def cli_loans_issue(
    barcode: str,
    user_id: Optional[str] = typer.Option(None, "--user-id", "-u", help="Borrower (administrators only)"),
    email: str = EMAIL_OPTION,
    password: str = PASSWORD_OPTION,
):
    """Loan a book item to yourself, or to any user as an administrator."""
    session = _login(email, password)
    borrower = user_id or session.current_user.id
    if not session.can_act_for(borrower):
        print("Access Denied: Members can only loan books for themselves.")
        raise typer.Exit(code=1)
    loan = LibraryManager.get_instance().loans.issue(borrower, barcode)
    print(f"Book loaned successfully. Loan ID: {loan.id}")
    print(f"Due: {loan.due_date:%Y-%m-%d}")


@loans_app.command("return")
@library_command(mutates=True)
def cli_loans_return(loan_id: str, email: str = EMAIL_OPTION, password: str = PASSWORD_OPTION):
    """Return a loaned book item."""
    session = _login(email, password)
    loans = LibraryManager.get_instance().loans
    loan = loans.get(loan_id)
    if loan is None:
        print(f"Loan with ID {loan_id} not found.")
        return
    if not can_return(session.current_user, loan):
        print("Access Denied: Members can only return their own loans.")
        raise typer.Exit(code=1)
    loans.return_loan(loan_id)
    print("Book returned successfully.")


# ------------------------- Server ------------------------- #
@app.command("serve")
def cli_serve(
    host: Optional[str] = typer.Option(None, "--host"),
    port: Optional[int] = typer.Option(None, "--port"),
):
    """Start the HTTP API with uvicorn."""
    import uvicorn

    from shelfs.api import create_app

    host = host or settings.api_host
    port = int(port or settings.api_port)
    print(f"Starting API on http://{host}:{port}/")
    uvicorn.run(create_app(LibraryManager.get_instance()), host=host, port=port)


@app.command("menu")
def cli_menu():
    """Start the interactive menu."""
    run_menu(LibraryManager.get_instance())


# ------------------------- Interactive menu ------------------------- #
def _render_menu(title: str, items) -> None:
    table = Table.grid(padding=(0, 2))
    table.add_column(justify="right", style="bold cyan", width=4)
    table.add_column(justify="left", style="white")
    for key, label in items:
        table.add_row(f"[reverse]{key}[/]", label)
    console.print(Panel(table, title=title, border_style="cyan", box=box.HEAVY, padding=(1, 2)))


def _save(library: Library) -> None:
    console.print("[dim]Saving data...[/]")
    try:
        library.save()
    except PersistenceError as e:
        console.print(f"[bold red]Could not save data:[/] {escape(str(e))}")


def _show_book(library: Library, definition: BookDefinition) -> None:
    copies = library.books.copies_for(definition.id)
    lines = [
        f"[bold]Title:[/] {escape(definition.title)}",
        f"[bold]Author:[/] {escape(definition.author)}",
        f"[bold]ISBN:[/] {escape(definition.isbn)}",
        f"[bold]Publisher:[/] {escape(definition.publisher)}",
    ]
    if copies:
        lines.append(f"[bold]Copies ({len(copies)}):[/]")
        lines.extend(f"  Barcode: {c.barcode}  |  Status: {c.status.name}" for c in copies)
    else:
        lines.append("[bold]Copies:[/] none")
    console.print(Panel.fit("\n".join(lines), border_style="green"))


def _login_flow(session: AuthService) -> None:
    email = Prompt.ask("Enter email")
    password = Prompt.ask("Enter password", password=True)
    if session.login(email, password):
        console.print(f"[green]Login successful! Welcome, {escape(session.current_user.username)}![/]")
    else:
        console.print("[red]Login failed. Invalid email or password.[/]")


def _signup_flow(library: Library, session: AuthService) -> None:
    username = Prompt.ask("Enter username")
    email = Prompt.ask("Enter email")
    password = Prompt.ask("Enter password", password=True)
    try:
        user = session.signup(username, email, password)
    except (LibraryError, ValueError) as e:
        console.print(f"[red]Sign up failed:[/] {escape(str(e))}")
        return
    _save(library)
    console.print(f"[green]Sign up successful! Your account ID: {user.id}[/]")
    console.print("Please log in to continue.")


def _browse_books(library: Library) -> None:
    _render_menu("Browse Books", [("1", "Search by title"), ("2", "Search by author"),
                                  ("3", "Search by ISBN"), ("4", "List all books"), ("0", "Back")])
    choice = Prompt.ask("Choose an option", choices=["1", "2", "3", "4", "0"], default="0")
    if choice == "1":
        results = library.books.find_by_title(Prompt.ask("Enter title (partial match)"))
    elif choice == "2":
        results = library.books.find_by_author(Prompt.ask("Enter author (partial match)"))
    elif choice == "3":
        found = library.books.find_by_isbn(Prompt.ask("Enter ISBN"))
        results = [found] if found else []
    elif choice == "4":
        results = library.books.list_definitions()
    else:
        return
    if not results:
        console.print("[yellow]No books found.[/]")
    for definition in results:
        _show_book(library, definition)


def _manage_books(library: Library) -> None:
    _render_menu("Manage Books", [("1", "Add book"), ("2", "Remove book item"),
                                  ("3", "Available copies by ISBN"), ("4", "Update book info"), ("0", "Back")])
    choice = Prompt.ask("Choose an option", choices=["1", "2", "3", "4", "0"], default="0")
    try:
        if choice == "1":
            isbn = Prompt.ask("Enter ISBN")
            existing = library.books.find_by_isbn(isbn)
            if existing:
                console.print(f"Book with ISBN {escape(isbn)} already exists. Adding a new copy.")
                library.books.add_copy(existing.id)
            else:
                library.books.add_definition(
                    isbn,
                    Prompt.ask("Enter book title"),
                    Prompt.ask("Enter book author"),
                    Prompt.ask("Enter book publisher", default=""),
                )
            console.print("[green]Book added successfully.[/]")
        elif choice == "2":
            library.books.remove_copy(Prompt.ask("Enter barcode of the book item to remove"))
            console.print("[green]Book item removed successfully.[/]")
        elif choice == "3":
            for c in library.books.list_available_copies(Prompt.ask("Enter ISBN")) or []:
                console.print(f"Barcode: {c.barcode} | Status: {c.status.name}")
        elif choice == "4":
            isbn = Prompt.ask("Enter ISBN of the book to update")
            current = library.books.find_by_isbn(isbn)
            if current is None:
                console.print(f"[yellow]Book with ISBN {escape(isbn)} not found.[/]")
                return
            library.books.update_definition(
                isbn,
                Prompt.ask("New title", default=current.title),
                Prompt.ask("New author", default=current.author),
                Prompt.ask("New publisher", default=current.publisher),
            )
            console.print("[green]Book updated successfully.[/]")
    except (LibraryError, ValueError) as e:
        console.print(f"[red]{escape(str(e))}[/]")


def _manage_users(library: Library) -> None:
    _render_menu("Manage Users", [("1", "Register user"), ("2", "List users"), ("3", "Update user"),
                                  ("4", "Upgrade to Administrator"), ("5", "Remove user"), ("0", "Back")])
    choice = Prompt.ask("Choose an option", choices=["1", "2", "3", "4", "5", "0"], default="0")
    try:
        if choice == "1":
            username = Prompt.ask("Enter username")
            email = Prompt.ask("Enter email")
            password = Prompt.ask("Enter password", password=True)
            admin = Prompt.ask("Role (1: Member, 2: Administrator)", choices=["1", "2"], default="1") == "2"
            user = library.users.create(username, email, password, Role.ADMINISTRATOR if admin else Role.MEMBER)
            console.print(f"[green]User registered with ID: {user.id} | Role: {user.role.name}[/]")
        elif choice == "2":
            print_users(library.users.list())
        elif choice == "3":
            user_id = Prompt.ask("Enter User ID to update")
            current = library.users.get(user_id)
            if current is None:
                console.print(f"[yellow]User with ID {escape(user_id)} not found.[/]")
                return
            library.users.update(
                user_id,
                Prompt.ask("New username", default=current.username),
                Prompt.ask("New email", default=current.email),
                Prompt.ask("New password", password=True),
            )
            console.print("[green]User updated successfully.[/]")
        elif choice == "4":
            if library.users.upgrade_role(Prompt.ask("Enter User ID to upgrade")):
                console.print("[green]User upgraded to Administrator successfully.[/]")
            else:
                console.print("[yellow]Upgrade failed. User not found or already an Administrator.[/]")
        elif choice == "5":
            user_id = Prompt.ask("Enter User ID to remove")
            if Confirm.ask("Remove this user?", default=False):
                library.remove_user(user_id)
                console.print("[green]User removed successfully.[/]")
    except (LibraryError, ValueError) as e:
        console.print(f"[red]{escape(str(e))}[/]")


def _manage_loans(library: Library, session: AuthService) -> None:
    user = session.current_user
    admin = session.can_view_all_loans()
    items = [("1", "Loan a book"), ("2", "Return a book")]
    items += [("3", "List all loans"), ("4", "List loans by user"), ("5", "List overdue loans")] if admin \
        else [("3", "My loans")]
    items.append(("0", "Back"))
    _render_menu("Manage Loans", items)
    choice = Prompt.ask("Choose an option", choices=[k for k, _ in items], default="0")
    try:
        if choice == "1":
            user_id = Prompt.ask("Enter User ID") if admin else user.id
            loan = library.loans.issue(user_id, Prompt.ask("Enter book item barcode"))
            console.print(f"[green]Book loaned successfully. Loan ID: {loan.id}[/]")
        elif choice == "2":
            loan_id = Prompt.ask("Enter Loan ID")
            loan = library.loans.get(loan_id)
            if loan is None or not can_return(user, loan):
                console.print(f"[yellow]Loan with ID {escape(loan_id)} not found.[/]")
                return
            library.loans.return_loan(loan_id)
            console.print("[green]Book returned successfully.[/]")
        elif choice == "3":
            print_loans(library, library.accessible_loans(user))
        elif choice == "4":
            print_loans(library, library.loans.list_by_user(Prompt.ask("Enter User ID")))
        elif choice == "5":
            print_loans(library, library.loans.list_overdue())
    except LibraryError as e:
        console.print(f"[red]{escape(str(e))}[/]")


def run_menu(library: Library) -> None:
    """Interactive menu: authentication loop, then the main loop until logout or exit."""
    session = library.session()
    while True:
        while not session.is_authenticated:
            _render_menu(f"{settings.app_name} - Authentication", [("1", "Login"), ("2", "Sign up"), ("0", "Exit")])
            choice = Prompt.ask("Select an option", choices=["1", "2", "0"], default="1")
            if choice == "1":
                _login_flow(session)
            elif choice == "2":
                _signup_flow(library, session)
            else:
                console.print("[green]Goodbye![/]")
                return

        user = session.current_user
        _render_menu(
            f"{settings.app_name} (logged in as {escape(user.username)} [{user.role.name}])",
            [("1", "Quick overview"), ("2", "Browse books"), ("3", "Manage books (admin)"),
             ("4", "Manage users (admin)"), ("5", "Manage loans"), ("6", "Logout"), ("0", "Exit")],
        )
        choice = Prompt.ask("Select an option", choices=["1", "2", "3", "4", "5", "6", "0"], default="1")
        if choice == "1":
            print_overview(library.quick_overview())
        elif choice == "2":
            _browse_books(library)
        elif choice == "3":
            if session.can_manage_books():
                _manage_books(library)
                _save(library)
            else:
                console.print("[red]Access Denied: Only Administrators can manage books.[/]")
        elif choice == "4":
            if session.can_manage_users():
                _manage_users(library)
                _save(library)
            else:
                console.print("[red]Access Denied: Only Administrators can manage users.[/]")
        elif choice == "5":
            _manage_loans(library, session)
            _save(library)
        elif choice == "6":
            _save(library)
            session.logout()
            console.print("Logged out successfully.")
        else:
            _save(library)
            console.print("[green]Goodbye![/]")
            return


def main() -> None:
    logging.basicConfig(level=settings.log_level.upper())
    app()


if __name__ == "__main__":
    main()
