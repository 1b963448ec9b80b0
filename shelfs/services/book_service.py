import logging
from datetime import datetime
from typing import List, Optional

from shelfs.errors import InUseError, NotAvailableError, NotFoundError
from shelfs.identifiers import generate_barcode, new_id
from shelfs.models import BookCopy, BookDefinition, CopyStatus, utcnow
from shelfs.repositories import BookRepo

logger = logging.getLogger(__name__)


class BookService:
    """Manages book definitions (by ISBN) and their physical copies (by barcode)."""

    def __init__(self, books: Optional[BookRepo] = None) -> None:
        self.books = books or BookRepo()

    # ------------------------- Definitions ------------------------- #
    def add_definition(self, isbn: str, title: str, author: str, publisher: str = "") -> BookDefinition:
        """Register a book and one copy of it.

        A known ISBN never produces a second definition; the call adds one more
        copy to the existing definition and returns it unchanged.
        """
        isbn = (isbn or "").strip()
        if not isbn:
            raise ValueError("ISBN must not be empty.")

        existing = self.books.find_by_isbn(isbn)
        if existing is not None:
            logger.info(f"ISBN {isbn} already registered, adding a copy")
            self.add_copy(existing.id)
            return existing

        if not title or not title.strip():
            raise ValueError("Title must not be empty.")
        if not author or not author.strip():
            raise ValueError("Author must not be empty.")

        definition = BookDefinition(
            id=new_id(),
            isbn=isbn,
            title=title.strip(),
            author=author.strip(),
            publisher=(publisher or "").strip(),
        )
        self.books.add_definition(definition)
        logger.info(f"Book definition added: {definition}")
        self.add_copy(definition.id)
        return definition

    def update_definition(self, isbn: str, title: str, author: str, publisher: str) -> BookDefinition:
        definition = self.books.find_by_isbn(isbn)
        if definition is None:
            raise NotFoundError(f"Book with ISBN {isbn} not found.")
        definition.title = title
        definition.author = author
        definition.publisher = publisher
        self.books.replace_definition(definition)
        logger.info(f"Book definition updated: {definition}")
        return definition

    def remove_definition(self, isbn: str) -> None:
        definition = self.books.find_by_isbn(isbn)
        if definition is None:
            raise NotFoundError(f"Book with ISBN {isbn} not found.")
        copies = self.books.copies_for(definition.id)
        if copies:
            raise InUseError(f"Book with ISBN {isbn} still has {len(copies)} copies; remove them first.")
        self.books.delete_definition(definition.id)
        logger.info(f"Book definition removed: ISBN {isbn}")

    def restore_definition(self, definition: BookDefinition) -> None:
        self.books.add_definition(definition)

    def get_definition(self, definition_id: str) -> Optional[BookDefinition]:
        return self.books.get_definition(definition_id)

    def list_definitions(self) -> List[BookDefinition]:
        return self.books.list_definitions()

    def find_by_isbn(self, isbn: str) -> Optional[BookDefinition]:
        return self.books.find_by_isbn(isbn)

    def find_by_title(self, title: str) -> List[BookDefinition]:
        return self.books.search_title(title)

    def find_by_author(self, author: str) -> List[BookDefinition]:
        return self.books.search_author(author)

    # ------------------------- Copies ------------------------- #
    def add_copy(self, definition_id: str, acquired_at: Optional[datetime] = None) -> BookCopy:
        if self.books.get_definition(definition_id) is None:
            raise NotFoundError(f"Book definition with ID {definition_id} not found.")
        copy = BookCopy(
            id=new_id(),
            barcode=self._unused_barcode(),
            book_def_id=definition_id,
            status=CopyStatus.AVAILABLE,
            acquisition_date=acquired_at or utcnow(),
        )
        self.books.add_copy(copy)
        logger.info(f"Copy added: barcode={copy.barcode}, definition={definition_id}")
        return copy

    def remove_copy(self, barcode: str) -> None:
        copy = self.books.find_by_barcode(barcode)
        if copy is None:
            raise NotFoundError(f"Book item with barcode {barcode} not found.")
        if copy.status is CopyStatus.BORROWED:
            raise NotAvailableError(f"Book item with barcode {barcode} is on loan and cannot be removed.")
        self.books.delete_copy(copy.id)
        logger.info(f"Copy removed: barcode={barcode}")

    def set_copy_status(self, copy: BookCopy, status: CopyStatus) -> None:
        copy.status = status
        self.books.replace_copy(copy)

    def restore_copy(self, copy: BookCopy) -> None:
        self.books.add_copy(copy)

    def get_copy(self, copy_id: str) -> Optional[BookCopy]:
        return self.books.get_copy(copy_id)

    def find_by_barcode(self, barcode: str) -> Optional[BookCopy]:
        return self.books.find_by_barcode(barcode)

    def list_copies(self) -> List[BookCopy]:
        return self.books.list_copies()

    def copies_for(self, definition_id: str) -> List[BookCopy]:
        return self.books.copies_for(definition_id)

    def list_available_copies(self, isbn: str) -> List[BookCopy]:
        definition = self.books.find_by_isbn(isbn)
        if definition is None:
            return []
        return [c for c in self.books.copies_for(definition.id) if c.is_available]

    # ------------------------- Counts ------------------------- #
    def count_definitions(self) -> int:
        return len(self.books.list_definitions())

    def count_copies(self) -> int:
        return len(self.books.list_copies())

    def _unused_barcode(self) -> str:
        barcode = generate_barcode()
        while self.books.find_by_barcode(barcode) is not None:
            barcode = generate_barcode()
        return barcode
