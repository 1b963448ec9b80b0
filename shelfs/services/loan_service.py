import logging
from datetime import datetime, timedelta
from typing import List, Optional

from shelfs.config import settings
from shelfs.errors import LoanLimitExceededError, NotAvailableError, NotFoundError
from shelfs.identifiers import new_id
from shelfs.models import CopyStatus, Loan, as_utc, utcnow
from shelfs.repositories import LoanRepo
from shelfs.services.book_service import BookService
from shelfs.services.user_service import UserService

logger = logging.getLogger(__name__)


class LoanService:
    """Issues and returns loans; the only place a copy changes status.

    Holds references to the user and book services so cross-entity rules can
    be checked without duplicating their data.
    """

    def __init__(
        self,
        users: UserService,
        books: BookService,
        loans: Optional[LoanRepo] = None,
        max_active_loans: Optional[int] = None,
        loan_period_days: Optional[int] = None,
    ) -> None:
        self.users = users
        self.books = books
        self.loans = loans or LoanRepo()
        self.max_active_loans = max_active_loans if max_active_loans is not None else settings.max_active_loans
        self.loan_period = timedelta(
            days=loan_period_days if loan_period_days is not None else settings.loan_period_days
        )

    def issue(self, user_id: str, barcode: str, now: Optional[datetime] = None) -> Loan:
        if self.users.get(user_id) is None:
            raise NotFoundError(f"User with ID {user_id} not found.")

        active = self.loans.list_by_user(user_id)
        if len(active) >= self.max_active_loans:
            logger.warning(f"Loan refused: user {user_id} already holds {len(active)} loans")
            raise LoanLimitExceededError(
                f"User {user_id} has reached the maximum of {self.max_active_loans} active loans."
            )

        copy = self.books.find_by_barcode(barcode)
        if copy is None:
            raise NotFoundError(f"Book item with barcode {barcode} not found.")
        if copy.status is not CopyStatus.AVAILABLE:
            raise NotAvailableError(
                f"Book item with barcode {barcode} is not available (status: {copy.status.name})."
            )

        now = as_utc(now) if now else utcnow()
        loan = Loan(
            id=new_id(),
            user_id=user_id,
            book_id=copy.id,
            created_at=now,
            due_date=now + self.loan_period,
        )

        self.books.set_copy_status(copy, CopyStatus.BORROWED)
        try:
            self.loans.add(loan)
        except Exception:
            self.books.set_copy_status(copy, CopyStatus.AVAILABLE)
            raise

        logger.info(f"Loan issued: id={loan.id}, user={user_id}, barcode={barcode}, due={loan.due_date:%Y-%m-%d}")
        return loan

    def return_loan(self, loan_id: str) -> bool:
        """Delete the loan and put its copy back on the shelf. False if unknown."""
        loan = self.loans.get(loan_id)
        if loan is None:
            logger.warning(f"Return refused: loan {loan_id} not found")
            return False

        self.loans.delete(loan_id)
        copy = self.books.get_copy(loan.book_id)
        if copy is not None:
            self.books.set_copy_status(copy, CopyStatus.AVAILABLE)
        logger.info(f"Loan returned: id={loan_id}")
        return True

    def restore(self, loan: Loan) -> None:
        """Reinsert a persisted loan; its user and its BORROWED copy must already be loaded."""
        if self.users.get(loan.user_id) is None:
            raise NotFoundError(f"User with ID {loan.user_id} not found.")
        copy = self.books.get_copy(loan.book_id)
        if copy is None:
            raise NotFoundError(f"Book item with ID {loan.book_id} not found.")
        if copy.status is not CopyStatus.BORROWED:
            raise NotAvailableError(f"Loan {loan.id} refers to book item {copy.barcode}, which is not BORROWED.")
        if self.loans.list_by_copy(copy.id):
            raise NotAvailableError(f"Book item {copy.barcode} already has a loan.")
        if len(self.loans.list_by_user(loan.user_id)) >= self.max_active_loans:
            raise LoanLimitExceededError(
                f"User {loan.user_id} would exceed the maximum of {self.max_active_loans} active loans."
            )
        self.loans.add(loan)

    def get(self, loan_id: str) -> Optional[Loan]:
        return self.loans.get(loan_id)

    def list_all(self) -> List[Loan]:
        return self.loans.list_all()

    def list_by_user(self, user_id: str) -> List[Loan]:
        return self.loans.list_by_user(user_id)

    def list_by_copy(self, copy_id: str) -> List[Loan]:
        return self.loans.list_by_copy(copy_id)

    def list_overdue(self, now: Optional[datetime] = None) -> List[Loan]:
        now = as_utc(now) if now else utcnow()
        return [l for l in self.loans.list_all() if l.is_overdue(now)]

    def count(self) -> int:
        return self.loans.count()
