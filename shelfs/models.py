from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Naive timestamps are taken to be UTC already."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Render a timestamp as sortable ISO-8601 text in UTC."""
    return as_utc(value).isoformat()


def parse_timestamp(raw: str) -> datetime:
    return as_utc(datetime.fromisoformat(raw))


class Role(Enum):
    ADMINISTRATOR = "ADMINISTRATOR"
    MEMBER = "MEMBER"

    def __str__(self) -> str:
        return self.name


class CopyStatus(Enum):
    AVAILABLE = "AVAILABLE"
    BORROWED = "BORROWED"

    def __str__(self) -> str:
        return self.name


@dataclass
class User:
    """A library account. ``id`` never changes once assigned."""

    id: str
    username: str
    email: str
    password: str
    role: Role = Role.MEMBER

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMINISTRATOR

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "password": self.password,
            "role": self.role.name,
        }

    @staticmethod
    def from_dict(data: dict) -> "User":
        return User(
            id=data["id"],
            username=data["username"],
            email=data["email"],
            password=data["password"],
            role=Role[data.get("role", Role.MEMBER.name)],
        )


@dataclass
class BookDefinition:
    """Catalog-level record keyed by ISBN; knows nothing about its copies."""

    id: str
    isbn: str
    title: str
    author: str
    publisher: str = ""

    def __str__(self) -> str:
        return f"{self.title} by {self.author} (ISBN: {self.isbn})"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "isbn": self.isbn,
            "publisher": self.publisher,
        }

    @staticmethod
    def from_dict(data: dict) -> "BookDefinition":
        return BookDefinition(
            id=data["id"],
            isbn=data["isbn"],
            title=data["title"],
            author=data["author"],
            publisher=data.get("publisher") or "",
        )


@dataclass
class BookCopy:
    """One physical, loanable item of a BookDefinition."""

    id: str
    barcode: str
    book_def_id: str
    status: CopyStatus
    acquisition_date: datetime

    @property
    def is_available(self) -> bool:
        return self.status is CopyStatus.AVAILABLE

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "barcode": self.barcode,
            "bookDefId": self.book_def_id,
            "status": self.status.name,
            "acquisitionDate": format_timestamp(self.acquisition_date),
        }

    @staticmethod
    def from_dict(data: dict) -> "BookCopy":
        return BookCopy(
            id=data["id"],
            barcode=data["barcode"],
            book_def_id=data["bookDefId"],
            status=CopyStatus[data["status"]],
            acquisition_date=parse_timestamp(data["acquisitionDate"]),
        )


@dataclass
class Loan:
    id: str
    user_id: str
    book_id: str
    created_at: datetime
    due_date: datetime

    def is_overdue(self, now: datetime | None = None) -> bool:
        now = as_utc(now) if now else utcnow()
        return self.due_date < now

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "bookId": self.book_id,
            "createdAt": format_timestamp(self.created_at),
            "dueDate": format_timestamp(self.due_date),
        }

    @staticmethod
    def from_dict(data: dict) -> "Loan":
        return Loan(
            id=data["id"],
            user_id=data["userId"],
            book_id=data["bookId"],
            created_at=parse_timestamp(data["createdAt"]),
            due_date=parse_timestamp(data["dueDate"]),
        )
