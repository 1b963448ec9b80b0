import logging
import os
from typing import Dict, List, Optional, Union

from shelfs.config import settings
from shelfs.errors import InUseError, NotFoundError
from shelfs.models import Loan, User
from shelfs.persistence import SnapshotStore
from shelfs.seed import seed_default_users
from shelfs.services.auth_service import AuthService, can_view_all_loans
from shelfs.services.book_service import BookService
from shelfs.services.loan_service import LoanService
from shelfs.services.user_service import UserService

logger = logging.getLogger(__name__)


class Library:
    """Wires the user, book and loan services over shared in-memory stores."""

    def __init__(
        self,
        snapshot: Optional[SnapshotStore] = None,
        max_active_loans: Optional[int] = None,
        loan_period_days: Optional[int] = None,
    ) -> None:
        self.users = UserService()
        self.books = BookService()
        self.loans = LoanService(
            self.users,
            self.books,
            max_active_loans=max_active_loans,
            loan_period_days=loan_period_days,
        )
        self.snapshot = snapshot

    def session(self) -> AuthService:
        """A fresh, unauthenticated session over this library's accounts."""
        return AuthService(self.users)

    # ------------------------- Queries ------------------------- #
    def quick_overview(self) -> Dict[str, int]:
        return {
            "Book titles": self.books.count_definitions(),
            "Book items": self.books.count_copies(),
            "Users": self.users.count(),
            "Active loans": self.loans.count(),
            "Overdue loans": len(self.loans.list_overdue()),
        }

    def accessible_loans(self, user: Optional[User]) -> List[Loan]:
        """All loans for administrators, own loans for members, nothing otherwise."""
        if user is None:
            return []
        if can_view_all_loans(user):
            return self.loans.list_all()
        return self.loans.list_by_user(user.id)

    # ------------------------- Mutations ------------------------- #
    def remove_user(self, user_id: str) -> None:
        if self.users.get(user_id) is None:
            raise NotFoundError(f"User with ID {user_id} not found.")
        active = self.loans.list_by_user(user_id)
        if active:
            raise InUseError(f"User {user_id} still has {len(active)} active loans.")
        self.users.remove(user_id)

    # ------------------------- Persistence ------------------------- #
    def load(self) -> bool:
        if self.snapshot is None:
            return False
        return self.snapshot.load(self)

    def save(self) -> None:
        if self.snapshot is not None:
            self.snapshot.save(self)


def open_library(data_dir: Optional[Union[str, os.PathLike]] = None, seed: bool = True) -> Library:
    """Build a Library backed by ``data_dir``: load its snapshot, or seed defaults if there is none."""
    library = Library(snapshot=SnapshotStore(data_dir or settings.data_dir))
    if library.load():
        return library
    if seed:
        count = seed_default_users(library)
        logger.info(f"No snapshot found, seeded {count} default users")
    return library
