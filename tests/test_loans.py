from datetime import datetime, timedelta, timezone

import pytest

from shelfs.errors import LoanLimitExceededError, NotAvailableError, NotFoundError
from shelfs.library import Library
from shelfs.models import CopyStatus, Role


@pytest.fixture
def barcodes(lib):
    definition = lib.books.add_definition("9780441013593", "Dune", "Frank Herbert")
    lib.books.add_copy(definition.id)
    lib.books.add_copy(definition.id)
    return [c.barcode for c in lib.books.copies_for(definition.id)]


def test_issue_loan(lib, barcodes):
    now = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
    loan = lib.loans.issue("1", barcodes[0], now=now)

    assert loan.user_id == "1"
    assert loan.created_at == now
    assert loan.due_date == now + timedelta(days=14)
    assert lib.books.find_by_barcode(barcodes[0]).status is CopyStatus.BORROWED
    assert lib.loans.list_by_user("1") == [loan]


def test_issue_respects_active_loan_cap(lib, barcodes):
    lib.loans.issue("1", barcodes[0])
    lib.loans.issue("1", barcodes[1])

    with pytest.raises(LoanLimitExceededError):
        lib.loans.issue("1", barcodes[2])

    assert len(lib.loans.list_by_user("1")) == 2
    assert lib.books.find_by_barcode(barcodes[2]).status is CopyStatus.AVAILABLE


def test_issue_borrowed_copy(lib, barcodes):
    lib.loans.issue("1", barcodes[0])

    with pytest.raises(NotAvailableError):
        lib.loans.issue("2", barcodes[0])
    assert lib.loans.list_by_user("2") == []


def test_issue_unknown_user_or_barcode(lib, barcodes):
    with pytest.raises(NotFoundError):
        lib.loans.issue("missing", barcodes[0])
    with pytest.raises(NotFoundError):
        lib.loans.issue("1", "BC-0000000000")
    assert lib.loans.count() == 0


def test_return_restores_availability_regression(lib, barcodes):
    # a returned copy must never stay BORROWED
    loan = lib.loans.issue("1", barcodes[0])

    assert lib.loans.return_loan(loan.id) is True
    assert lib.loans.get(loan.id) is None
    assert lib.books.find_by_barcode(barcodes[0]).status is CopyStatus.AVAILABLE

    # the copy can be loaned again
    again = lib.loans.issue("2", barcodes[0])
    assert again.user_id == "2"


def test_return_unknown_loan(lib):
    assert lib.loans.return_loan("missing") is False


def test_return_frees_a_slot(lib, barcodes):
    first = lib.loans.issue("1", barcodes[0])
    lib.loans.issue("1", barcodes[1])
    lib.loans.return_loan(first.id)

    lib.loans.issue("1", barcodes[2])
    assert len(lib.loans.list_by_user("1")) == 2


def test_failed_insert_rolls_back_copy_status(lib, barcodes, monkeypatch):
    def boom(loan):
        raise RuntimeError("store failure")

    monkeypatch.setattr(lib.loans.loans, "add", boom)

    with pytest.raises(RuntimeError):
        lib.loans.issue("1", barcodes[0])
    assert lib.books.find_by_barcode(barcodes[0]).status is CopyStatus.AVAILABLE


def test_overdue_loans(lib, barcodes):
    issued = datetime(2024, 1, 1, tzinfo=timezone.utc)
    old = lib.loans.issue("1", barcodes[0], now=issued)
    lib.loans.issue("2", barcodes[1], now=issued + timedelta(days=10))

    on_day_20 = issued + timedelta(days=20)
    assert lib.loans.list_overdue(now=on_day_20) == [old]
    assert old.is_overdue(issued + timedelta(days=14)) is False
    assert lib.loans.list_overdue(now=issued) == []


def test_custom_loan_rules():
    lib = Library(max_active_loans=1, loan_period_days=7)
    user = lib.users.create("reader", "reader@example.com", "pw")
    definition = lib.books.add_definition("1", "Emma", "Jane Austen")
    lib.books.add_copy(definition.id)
    first, second = lib.books.copies_for(definition.id)

    loan = lib.loans.issue(user.id, first.barcode)
    assert loan.due_date - loan.created_at == timedelta(days=7)
    with pytest.raises(LoanLimitExceededError):
        lib.loans.issue(user.id, second.barcode)


def test_overview_counts(lib, barcodes):
    lib.loans.issue("1", barcodes[0], now=datetime(2020, 1, 1, tzinfo=timezone.utc))
    lib.loans.issue("2", barcodes[1])

    assert lib.quick_overview() == {
        "Book titles": 1,
        "Book items": 3,
        "Users": 6,
        "Active loans": 2,
        "Overdue loans": 1,
    }


def test_issue_and_return_on_empty_library(empty_lib):
    empty_lib.users.create("admin", "admin@example.com", "pw", Role.ADMINISTRATOR)
    john = empty_lib.users.create("john", "john@example.com", "pw2")
    other = empty_lib.users.create("mary", "mary@example.com", "pw3")
    definition = empty_lib.books.add_definition("111", "X", "Someone")
    barcode = empty_lib.books.copies_for(definition.id)[0].barcode

    loan = empty_lib.loans.issue(john.id, barcode)
    assert empty_lib.books.find_by_barcode(barcode).status is CopyStatus.BORROWED

    with pytest.raises(NotAvailableError):
        empty_lib.loans.issue(other.id, barcode)

    assert empty_lib.loans.return_loan(loan.id) is True
    assert empty_lib.books.find_by_barcode(barcode).status is CopyStatus.AVAILABLE


def test_naive_now_is_treated_as_utc(lib, barcodes):
    loan = lib.loans.issue("1", barcodes[0], now=datetime(2024, 1, 1))

    assert loan.created_at == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert loan.due_date.tzinfo is not None
    assert lib.loans.list_overdue() == [loan]
    assert lib.loans.list_overdue(now=datetime(2024, 1, 2)) == []
    assert lib.quick_overview()["Overdue loans"] == 1
