"""JSON snapshot of the in-memory stores.

Three files are kept in the data directory:
- users.json  - users (administrators and members)
- books.json  - book definitions and book items (copies)
- loans.json  - active loans

Records are reinserted through the services' restore paths, which keep the
stored identifiers, in dependency order: users, definitions, copies, loans.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any, Union

from shelfs.errors import LibraryError, NotAvailableError, PersistenceError
from shelfs.models import BookCopy, BookDefinition, Loan, User

if TYPE_CHECKING:
    from shelfs.library import Library

logger = logging.getLogger(__name__)

USERS_FILE = "users.json"
BOOKS_FILE = "books.json"
LOANS_FILE = "loans.json"


class SnapshotStore:
    def __init__(self, data_dir: Union[str, os.PathLike]) -> None:
        self.data_dir = Path(data_dir)
        self.users_file = self.data_dir / USERS_FILE
        self.books_file = self.data_dir / BOOKS_FILE
        self.loans_file = self.data_dir / LOANS_FILE

    def exists(self) -> bool:
        return any(p.exists() for p in (self.users_file, self.books_file, self.loans_file))

    # ------------------------- Save ------------------------- #
    def save(self, library: "Library") -> None:
        """Write the full state of all three stores to disk."""
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError(f"Could not create data directory {self.data_dir}: {e}") from e

        users = [u.to_dict() for u in library.users.list()]
        books = {
            "definitions": [d.to_dict() for d in library.books.list_definitions()],
            "items": [c.to_dict() for c in library.books.list_copies()],
        }
        loans = [l.to_dict() for l in library.loans.list_all()]

        self._write(self.users_file, users)
        self._write(self.books_file, books)
        self._write(self.loans_file, loans)
        logger.info(
            f"Snapshot saved to {self.data_dir}: {len(users)} users, "
            f"{len(books['definitions'])} books, {len(books['items'])} items, {len(loans)} loans"
        )

    # ------------------------- Load ------------------------- #
    def load(self, library: "Library") -> bool:
        """Restore stores from disk. Returns False, touching nothing, when no snapshot exists."""
        if not self.exists():
            return False

        users = self._read(self.users_file, [])
        books = self._read(self.books_file, {})
        loans = self._read(self.loans_file, [])

        try:
            for data in users:
                library.users.restore(User.from_dict(data))
            # definitions first; items reference them
            for data in books.get("definitions", []):
                library.books.restore_definition(BookDefinition.from_dict(data))
            for data in books.get("items", []):
                library.books.restore_copy(BookCopy.from_dict(data))
            for data in loans:
                library.loans.restore(Loan.from_dict(data))
            for copy in library.books.list_copies():
                if not copy.is_available and not library.loans.list_by_copy(copy.id):
                    raise NotAvailableError(f"Book item {copy.barcode} is BORROWED without a loan.")
        except (KeyError, ValueError, TypeError, AttributeError, LibraryError) as e:
            raise PersistenceError(f"Snapshot in {self.data_dir} is invalid: {e}") from e

        logger.info(f"Snapshot loaded from {self.data_dir}")
        return True

    # ------------------------- File I/O ------------------------- #
    def _write(self, path: Path, payload: Any) -> None:
        try:
            with open(path, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, ensure_ascii=False)
        except OSError as e:
            raise PersistenceError(f"Could not write file {path}: {e}") from e

    def _read(self, path: Path, default: Any) -> Any:
        if not path.exists():
            return default
        try:
            with open(path, "r", encoding="utf-8") as f:
                content = f.read()
        except OSError as e:
            raise PersistenceError(f"Could not read file {path}: {e}") from e
        if not content.strip():
            return default
        try:
            return json.loads(content)
        except json.JSONDecodeError as e:
            raise PersistenceError(f"Could not parse file {path}: {e}") from e
