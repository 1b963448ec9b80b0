from __future__ import annotations

from typing import Dict, List, Optional

from shelfs.errors import DuplicateKeyError, NotFoundError
from shelfs.models import BookCopy, BookDefinition, Loan, User


class UserRepo:
    """Accounts keyed by id; usernames and emails are unique across the store."""

    def __init__(self) -> None:
        self._users: Dict[str, User] = {}

    def add(self, user: User) -> None:
        if user.id in self._users:
            raise DuplicateKeyError(f"User with ID '{user.id}' already exists.")
        self.ensure_unique(user)
        self._users[user.id] = user

    def replace(self, user: User) -> None:
        if user.id not in self._users:
            raise NotFoundError(f"User with ID '{user.id}' not found.")
        self.ensure_unique(user)
        self._users[user.id] = user

    def delete(self, user_id: str) -> None:
        if user_id not in self._users:
            raise NotFoundError(f"User with ID '{user_id}' not found.")
        del self._users[user_id]

    def get(self, user_id: str) -> Optional[User]:
        return self._users.get(user_id)

    def list_all(self) -> List[User]:
        return list(self._users.values())

    def find_by_username(self, username: str) -> Optional[User]:
        for u in self._users.values():
            if u.username == username:
                return u
        return None

    def find_by_email(self, email: str) -> Optional[User]:
        for u in self._users.values():
            if u.email == email:
                return u
        return None

    def count(self) -> int:
        return len(self._users)

    def ensure_unique(self, user: User) -> None:
        other = self.find_by_username(user.username)
        if other is not None and other.id != user.id:
            raise DuplicateKeyError(f"Username '{user.username}' is already taken.")
        other = self.find_by_email(user.email)
        if other is not None and other.id != user.id:
            raise DuplicateKeyError(f"Email '{user.email}' is already registered.")


class BookRepo:
    def __init__(self) -> None:
        self._definitions: Dict[str, BookDefinition] = {}
        self._copies: Dict[str, BookCopy] = {}

    # definitions
    def add_definition(self, definition: BookDefinition) -> None:
        if definition.id in self._definitions:
            raise DuplicateKeyError(f"Book definition with ID '{definition.id}' already exists.")
        if self.find_by_isbn(definition.isbn) is not None:
            raise DuplicateKeyError(f"Book with ISBN {definition.isbn} already exists.")
        self._definitions[definition.id] = definition

    def replace_definition(self, definition: BookDefinition) -> None:
        if definition.id not in self._definitions:
            raise NotFoundError(f"Book definition with ID '{definition.id}' not found.")
        self._definitions[definition.id] = definition

    def delete_definition(self, definition_id: str) -> None:
        if definition_id not in self._definitions:
            raise NotFoundError(f"Book definition with ID '{definition_id}' not found.")
        del self._definitions[definition_id]

    def get_definition(self, definition_id: str) -> Optional[BookDefinition]:
        return self._definitions.get(definition_id)

    def list_definitions(self) -> List[BookDefinition]:
        return list(self._definitions.values())

    def find_by_isbn(self, isbn: str) -> Optional[BookDefinition]:
        for d in self._definitions.values():
            if d.isbn == isbn:
                return d
        return None

    def search_title(self, text: str) -> List[BookDefinition]:
        t = text.lower()
        return [d for d in self._definitions.values() if t in d.title.lower()]

    def search_author(self, text: str) -> List[BookDefinition]:
        t = text.lower()
        return [d for d in self._definitions.values() if t in d.author.lower()]

    # copies
    def add_copy(self, copy: BookCopy) -> None:
        if copy.book_def_id not in self._definitions:
            raise NotFoundError(f"Book definition with ID '{copy.book_def_id}' does not exist.")
        if copy.id in self._copies:
            raise DuplicateKeyError(f"Book copy with ID '{copy.id}' already exists.")
        if self.find_by_barcode(copy.barcode) is not None:
            raise DuplicateKeyError(f"Barcode {copy.barcode} is already in use.")
        self._copies[copy.id] = copy

    def replace_copy(self, copy: BookCopy) -> None:
        if copy.id not in self._copies:
            raise NotFoundError(f"Book copy with ID '{copy.id}' not found.")
        self._copies[copy.id] = copy

    def delete_copy(self, copy_id: str) -> None:
        if copy_id not in self._copies:
            raise NotFoundError(f"Book copy with ID '{copy_id}' not found.")
        del self._copies[copy_id]

    def get_copy(self, copy_id: str) -> Optional[BookCopy]:
        return self._copies.get(copy_id)

    def list_copies(self) -> List[BookCopy]:
        return list(self._copies.values())

    def find_by_barcode(self, barcode: str) -> Optional[BookCopy]:
        for c in self._copies.values():
            if c.barcode == barcode:
                return c
        return None

    def copies_for(self, definition_id: str) -> List[BookCopy]:
        return [c for c in self._copies.values() if c.book_def_id == definition_id]


class LoanRepo:
    def __init__(self) -> None:
        self._loans: Dict[str, Loan] = {}

    def add(self, loan: Loan) -> None:
        if loan.id in self._loans:
            raise DuplicateKeyError(f"Loan with ID '{loan.id}' already exists.")
        self._loans[loan.id] = loan

    def delete(self, loan_id: str) -> None:
        if loan_id not in self._loans:
            raise NotFoundError(f"Loan with ID '{loan_id}' not found.")
        del self._loans[loan_id]

    def get(self, loan_id: str) -> Optional[Loan]:
        return self._loans.get(loan_id)

    def list_all(self) -> List[Loan]:
        return list(self._loans.values())

    def list_by_user(self, user_id: str) -> List[Loan]:
        return [l for l in self._loans.values() if l.user_id == user_id]

    def list_by_copy(self, copy_id: str) -> List[Loan]:
        return [l for l in self._loans.values() if l.book_id == copy_id]

    def count(self) -> int:
        return len(self._loans)
