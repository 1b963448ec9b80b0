import logging
from threading import RLock
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request, Security, status
from fastapi.responses import JSONResponse
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from pydantic import BaseModel, Field

from shelfs.config import settings
from shelfs.errors import (
    DuplicateKeyError,
    InUseError,
    LoanLimitExceededError,
    NotAvailableError,
    NotFoundError,
    PersistenceError,
)
from shelfs.library import Library, open_library
from shelfs.models import BookDefinition, Loan, Role, User, format_timestamp, utcnow
from shelfs.services.auth_service import can_act_for, can_return, is_admin

logger = logging.getLogger(__name__)


# --- Pydantic Models ---
class SignupIn(BaseModel):
    username: str = Field(..., min_length=1)
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class UserIn(SignupIn):
    admin: bool = False


class UserUpdateIn(BaseModel):
    username: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class UserOut(BaseModel):
    id: str
    username: str
    email: str
    role: str


class BookIn(BaseModel):
    isbn: str = Field(..., min_length=1)
    title: Optional[str] = None
    author: Optional[str] = None
    publisher: str = ""


class BookUpdateIn(BaseModel):
    title: Optional[str] = None
    author: Optional[str] = None
    publisher: Optional[str] = None


class CopyOut(BaseModel):
    id: str
    barcode: str
    status: str
    acquisition_date: str


class BookOut(BaseModel):
    id: str
    isbn: str
    title: str
    author: str
    publisher: str
    copies: List[CopyOut]


class LoanIn(BaseModel):
    barcode: str = Field(..., min_length=1)
    user_id: Optional[str] = None


class LoanOut(BaseModel):
    id: str
    user_id: str
    book_id: str
    barcode: Optional[str] = None
    created_at: str
    due_date: str
    overdue: bool


def _user_out(user: User) -> UserOut:
    return UserOut(id=user.id, username=user.username, email=user.email, role=user.role.name)


def _book_out(library: Library, definition: BookDefinition) -> BookOut:
    copies = [
        CopyOut(
            id=c.id,
            barcode=c.barcode,
            status=c.status.name,
            acquisition_date=format_timestamp(c.acquisition_date),
        )
        for c in library.books.copies_for(definition.id)
    ]
    return BookOut(
        id=definition.id,
        isbn=definition.isbn,
        title=definition.title,
        author=definition.author,
        publisher=definition.publisher,
        copies=copies,
    )


def _loan_out(library: Library, loan: Loan) -> LoanOut:
    copy = library.books.get_copy(loan.book_id)
    return LoanOut(
        id=loan.id,
        user_id=loan.user_id,
        book_id=loan.book_id,
        barcode=copy.barcode if copy else None,
        created_at=format_timestamp(loan.created_at),
        due_date=format_timestamp(loan.due_date),
        overdue=loan.is_overdue(utcnow()),
    )


def _error_handler(status_code: int):
    async def handler(request: Request, exc: Exception) -> JSONResponse:
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})
    return handler


def create_app(library: Optional[Library] = None) -> FastAPI:
    """Build the HTTP API over ``library``.

    With no argument the library is opened from the configured data dir, so the
    factory also works as ``uvicorn shelfs.api:create_app --factory``.
    """
    library = library or open_library(settings.data_dir)
    lock = RLock()

    app = FastAPI(title=f"{settings.app_name} API")
    app.state.library = library

    app.add_exception_handler(NotFoundError, _error_handler(status.HTTP_404_NOT_FOUND))
    for exc_type in (DuplicateKeyError, NotAvailableError, LoanLimitExceededError, InUseError):
        app.add_exception_handler(exc_type, _error_handler(status.HTTP_409_CONFLICT))
    app.add_exception_handler(ValueError, _error_handler(status.HTTP_400_BAD_REQUEST))
    app.add_exception_handler(PersistenceError, _error_handler(status.HTTP_500_INTERNAL_SERVER_ERROR))

    # --- Security ---
    basic = HTTPBasic()

    def current_user(credentials: HTTPBasicCredentials = Security(basic)) -> User:
        """Log in with email as the Basic auth username."""
        session = library.session()
        if not session.login(credentials.username, credentials.password):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid email or password",
                headers={"WWW-Authenticate": "Basic"},
            )
        return session.current_user

    def admin_user(user: User = Depends(current_user)) -> User:
        if not is_admin(user):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Administrator role required")
        return user

    def persist() -> None:
        library.save()

    # --- Health / accounts ---
    @app.get("/health")
    def health():
        return {"status": "healthy", "timestamp": format_timestamp(utcnow()), **library.quick_overview()}

    @app.post("/signup", response_model=UserOut, status_code=status.HTTP_201_CREATED)
    def signup(payload: SignupIn):
        with lock:
            user = library.session().signup(payload.username, payload.email, payload.password)
            persist()
        return _user_out(user)

    @app.get("/me", response_model=UserOut)
    def me(user: User = Depends(current_user)):
        return _user_out(user)

    @app.get("/overview")
    def overview(user: User = Depends(current_user)):
        return library.quick_overview()

    # --- Books ---
    @app.get("/books", response_model=List[BookOut])
    def list_books(
        title: Optional[str] = None,
        author: Optional[str] = None,
        user: User = Depends(current_user),
    ):
        books = library.books.list_definitions()
        if title:
            ids = {d.id for d in library.books.find_by_title(title)}
            books = [d for d in books if d.id in ids]
        if author:
            ids = {d.id for d in library.books.find_by_author(author)}
            books = [d for d in books if d.id in ids]
        return [_book_out(library, d) for d in books]

    @app.get("/books/{isbn}", response_model=BookOut)
    def get_book(isbn: str, user: User = Depends(current_user)):
        definition = library.books.find_by_isbn(isbn)
        if definition is None:
            raise NotFoundError(f"Book with ISBN {isbn} not found.")
        return _book_out(library, definition)

    @app.get("/books/{isbn}/available", response_model=List[CopyOut])
    def available_copies(isbn: str, user: User = Depends(current_user)):
        if library.books.find_by_isbn(isbn) is None:
            raise NotFoundError(f"Book with ISBN {isbn} not found.")
        return [
            CopyOut(id=c.id, barcode=c.barcode, status=c.status.name,
                    acquisition_date=format_timestamp(c.acquisition_date))
            for c in library.books.list_available_copies(isbn)
        ]

    @app.post("/books", response_model=BookOut, status_code=status.HTTP_201_CREATED)
    def add_book(payload: BookIn, user: User = Depends(admin_user)):
        with lock:
            definition = library.books.add_definition(
                payload.isbn, payload.title or "", payload.author or "", payload.publisher
            )
            persist()
        return _book_out(library, definition)

    @app.put("/books/{isbn}", response_model=BookOut)
    def update_book(isbn: str, payload: BookUpdateIn, user: User = Depends(admin_user)):
        with lock:
            current = library.books.find_by_isbn(isbn)
            if current is None:
                raise NotFoundError(f"Book with ISBN {isbn} not found.")
            definition = library.books.update_definition(
                isbn,
                payload.title or current.title,
                payload.author or current.author,
                payload.publisher if payload.publisher is not None else current.publisher,
            )
            persist()
        return _book_out(library, definition)

    @app.delete("/books/{isbn}", status_code=status.HTTP_204_NO_CONTENT)
    def remove_book(isbn: str, user: User = Depends(admin_user)):
        with lock:
            library.books.remove_definition(isbn)
            persist()

    @app.post("/books/{isbn}/copies", response_model=CopyOut, status_code=status.HTTP_201_CREATED)
    def add_copy(isbn: str, user: User = Depends(admin_user)):
        with lock:
            definition = library.books.find_by_isbn(isbn)
            if definition is None:
                raise NotFoundError(f"Book with ISBN {isbn} not found.")
            c = library.books.add_copy(definition.id)
            persist()
        return CopyOut(id=c.id, barcode=c.barcode, status=c.status.name,
                       acquisition_date=format_timestamp(c.acquisition_date))

    @app.delete("/copies/{barcode}", status_code=status.HTTP_204_NO_CONTENT)
    def remove_copy(barcode: str, user: User = Depends(admin_user)):
        with lock:
            library.books.remove_copy(barcode)
            persist()

    # --- Users ---
    @app.get("/users", response_model=List[UserOut])
    def list_users(user: User = Depends(admin_user)):
        return [_user_out(u) for u in library.users.list()]

    @app.post("/users", response_model=UserOut, status_code=status.HTTP_201_CREATED)
    def add_user(payload: UserIn, user: User = Depends(admin_user)):
        role = Role.ADMINISTRATOR if payload.admin else Role.MEMBER
        with lock:
            created = library.users.create(payload.username, payload.email, payload.password, role)
            persist()
        return _user_out(created)

    @app.put("/users/{user_id}", response_model=UserOut)
    def update_user(user_id: str, payload: UserUpdateIn, user: User = Depends(admin_user)):
        with lock:
            current = library.users.get(user_id)
            if current is None:
                raise NotFoundError(f"User with ID {user_id} not found.")
            updated = library.users.update(
                user_id,
                payload.username or current.username,
                payload.email or current.email,
                payload.password or current.password,
            )
            persist()
        return _user_out(updated)

    @app.post("/users/{user_id}/upgrade", response_model=UserOut)
    def upgrade_user(user_id: str, user: User = Depends(admin_user)):
        with lock:
            if not library.users.upgrade_role(user_id):
                if library.users.get(user_id) is None:
                    raise NotFoundError(f"User with ID {user_id} not found.")
                raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User is already an Administrator")
            persist()
        return _user_out(library.users.get(user_id))

    @app.delete("/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
    def remove_user(user_id: str, user: User = Depends(admin_user)):
        with lock:
            library.remove_user(user_id)
            persist()

    # --- Loans ---
    @app.get("/loans", response_model=List[LoanOut])
    def list_loans(user_id: Optional[str] = None, user: User = Depends(current_user)):
        if user_id is None:
            loans = library.accessible_loans(user)
        elif can_act_for(user, user_id):
            loans = library.loans.list_by_user(user_id)
        else:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Members can only view their own loans")
        return [_loan_out(library, l) for l in loans]

    @app.get("/loans/overdue", response_model=List[LoanOut])
    def overdue_loans(user: User = Depends(admin_user)):
        return [_loan_out(library, l) for l in library.loans.list_overdue()]

    @app.post("/loans", response_model=LoanOut, status_code=status.HTTP_201_CREATED)
    def issue_loan(payload: LoanIn, user: User = Depends(current_user)):
        borrower = payload.user_id or user.id
        if not can_act_for(user, borrower):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Members can only loan books for themselves")
        with lock:
            loan = library.loans.issue(borrower, payload.barcode)
            persist()
        return _loan_out(library, loan)

    @app.delete("/loans/{loan_id}", status_code=status.HTTP_204_NO_CONTENT)
    def return_loan(loan_id: str, user: User = Depends(current_user)):
        with lock:
            loan = library.loans.get(loan_id)
            if loan is None:
                raise NotFoundError(f"Loan with ID {loan_id} not found.")
            if not can_return(user, loan):
                raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Members can only return their own loans")
            library.loans.return_loan(loan_id)
            persist()

    return app

