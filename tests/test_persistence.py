import json

import pytest

from shelfs.errors import PersistenceError
from shelfs.library import open_library
from shelfs.models import CopyStatus, Role


def test_no_snapshot_seeds_defaults(data_dir):
    lib = open_library(data_dir)
    assert lib.users.count() == 6
    # nothing written until save
    assert not data_dir.exists()


def test_open_without_seed(data_dir):
    lib = open_library(data_dir, seed=False)
    assert lib.users.count() == 0


def test_save_writes_three_files(lib, data_dir):
    lib.save()
    assert sorted(p.name for p in data_dir.iterdir()) == ["books.json", "loans.json", "users.json"]

    users = json.loads((data_dir / "users.json").read_text(encoding="utf-8"))
    assert users[0] == {
        "id": "0",
        "username": "admin",
        "email": "admin@example.com",
        "password": "passwordsafe",
        "role": "ADMINISTRATOR",
    }
    books = json.loads((data_dir / "books.json").read_text(encoding="utf-8"))
    assert books == {"definitions": [], "items": []}


def test_round_trip(lib, data_dir):
    tricky = 'The "Quoted" \\ Backslash Book'
    definition = lib.books.add_definition("978-0", tricky, "Ö. Ünlü", "Kitap \"Evi\"")
    lib.books.add_copy(definition.id)
    copy = lib.books.copies_for(definition.id)[0]
    loan = lib.loans.issue("1", copy.barcode)
    lib.users.upgrade_role("2")
    lib.save()

    reloaded = open_library(data_dir)

    restored = reloaded.books.find_by_isbn("978-0")
    assert restored.id == definition.id
    assert restored.title == tricky
    assert restored.publisher == 'Kitap "Evi"'
    assert reloaded.books.count_copies() == 2
    assert reloaded.books.find_by_barcode(copy.barcode).status is CopyStatus.BORROWED

    restored_loan = reloaded.loans.get(loan.id)
    assert restored_loan.due_date == loan.due_date
    assert restored_loan.created_at == loan.created_at
    assert reloaded.users.get("2").role is Role.ADMINISTRATOR
    assert reloaded.users.count() == 6


def test_snapshot_is_not_reseeded(lib, data_dir):
    lib.remove_user("5")
    lib.save()

    reloaded = open_library(data_dir)
    assert reloaded.users.get("5") is None
    assert reloaded.users.count() == 5


def test_empty_files_load_as_empty(data_dir):
    data_dir.mkdir(parents=True)
    for name in ("users.json", "books.json", "loans.json"):
        (data_dir / name).write_text("", encoding="utf-8")

    lib = open_library(data_dir)
    assert lib.users.count() == 0
    assert lib.books.count_definitions() == 0


def test_corrupt_file_raises(data_dir):
    data_dir.mkdir(parents=True)
    (data_dir / "users.json").write_text("{not json", encoding="utf-8")

    with pytest.raises(PersistenceError):
        open_library(data_dir)


def test_dangling_loan_raises(lib, data_dir):
    lib.save()
    loans = [{
        "id": "l1",
        "userId": "1",
        "bookId": "no-such-copy",
        "createdAt": "2024-01-01T00:00:00+00:00",
        "dueDate": "2024-01-15T00:00:00+00:00",
    }]
    (data_dir / "loans.json").write_text(json.dumps(loans), encoding="utf-8")

    with pytest.raises(PersistenceError, match="invalid"):
        open_library(data_dir)


def test_save_into_unwritable_location(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("x", encoding="utf-8")

    lib = open_library(blocker / "data")
    with pytest.raises(PersistenceError):
        lib.save()


@pytest.fixture
def saved_loans(lib, data_dir):
    definition = lib.books.add_definition("111", "Dune", "Frank Herbert")
    lib.books.add_copy(definition.id)
    lib.books.add_copy(definition.id)
    copies = lib.books.copies_for(definition.id)
    lib.loans.issue("1", copies[0].barcode)
    lib.loans.issue("1", copies[1].barcode)
    lib.loans.issue("2", copies[2].barcode)
    lib.save()
    return json.loads((data_dir / "loans.json").read_text(encoding="utf-8"))


def _rewrite(path, payload):
    path.write_text(json.dumps(payload), encoding="utf-8")


def test_loaded_snapshot_keeps_loans(saved_loans, data_dir):
    reloaded = open_library(data_dir)
    assert reloaded.loans.count() == 3


def test_loan_on_available_copy_raises(saved_loans, data_dir):
    books = json.loads((data_dir / "books.json").read_text(encoding="utf-8"))
    books["items"][0]["status"] = "AVAILABLE"
    _rewrite(data_dir / "books.json", books)

    with pytest.raises(PersistenceError, match="not BORROWED"):
        open_library(data_dir)


def test_two_loans_on_one_copy_raise(saved_loans, data_dir):
    duplicate = dict(saved_loans[2], id="dup", userId="3")
    _rewrite(data_dir / "loans.json", saved_loans + [duplicate])

    with pytest.raises(PersistenceError, match="already has a loan"):
        open_library(data_dir)


def test_loans_over_the_cap_raise(saved_loans, data_dir):
    saved_loans[2]["userId"] = "1"
    _rewrite(data_dir / "loans.json", saved_loans)

    with pytest.raises(PersistenceError, match="maximum"):
        open_library(data_dir)


def test_borrowed_copy_without_loan_raises(saved_loans, data_dir):
    _rewrite(data_dir / "loans.json", saved_loans[:2])

    with pytest.raises(PersistenceError, match="without a loan"):
        open_library(data_dir)


def test_naive_timestamps_load_as_utc(saved_loans, data_dir):
    saved_loans[0]["createdAt"] = "2024-01-01T00:00:00"
    saved_loans[0]["dueDate"] = "2024-01-15T00:00:00"
    _rewrite(data_dir / "loans.json", saved_loans)

    reloaded = open_library(data_dir)
    loan = reloaded.loans.get(saved_loans[0]["id"])
    assert loan.due_date.tzinfo is not None
    assert reloaded.quick_overview()["Overdue loans"] == 1
