import pytest

from shelfs.errors import DuplicateKeyError, InUseError, NotFoundError
from shelfs.models import Role


def test_seeded_accounts(lib):
    assert lib.users.count() == 6
    admin = lib.users.get("0")
    assert admin.username == "admin"
    assert admin.role is Role.ADMINISTRATOR
    assert all(lib.users.get(str(i)).role is Role.MEMBER for i in range(1, 6))


def test_create_member(empty_lib):
    user = empty_lib.users.create("alice", "alice@example.com", "secret")
    assert user.role is Role.MEMBER
    assert empty_lib.users.get(user.id) is user
    assert empty_lib.users.find_by_email("alice@example.com") is user
    assert empty_lib.users.find_by_username("alice") is user


def test_create_rejects_duplicate_username_and_email(empty_lib):
    empty_lib.users.create("alice", "alice@example.com", "secret")

    with pytest.raises(DuplicateKeyError, match="Username 'alice' is already taken."):
        empty_lib.users.create("alice", "other@example.com", "secret")
    with pytest.raises(DuplicateKeyError, match="alice@example.com"):
        empty_lib.users.create("alice2", "alice@example.com", "secret")

    assert empty_lib.users.count() == 1


@pytest.mark.parametrize("username,email,password", [
    ("", "a@example.com", "pw"),
    ("alice", "   ", "pw"),
    ("alice", "a@example.com", ""),
])
def test_create_rejects_blank_fields(empty_lib, username, email, password):
    with pytest.raises(ValueError):
        empty_lib.users.create(username, email, password)
    assert empty_lib.users.count() == 0


def test_update_user(lib):
    updated = lib.users.update("1", "johnny", "johnny@example.com", "newpass")
    assert updated.username == "johnny"
    assert lib.users.get("1").email == "johnny@example.com"
    assert lib.users.find_by_email("john@example.com") is None


def test_update_keeps_own_email(lib):
    lib.users.update("1", "john", "john@example.com", "changed")
    assert lib.users.get("1").password == "changed"


def test_update_rejects_email_of_other_user(lib):
    with pytest.raises(DuplicateKeyError):
        lib.users.update("1", "john", "anna@example.com", "password123")
    # nothing changed
    assert lib.users.get("1").email == "john@example.com"


def test_update_unknown_user(lib):
    with pytest.raises(NotFoundError):
        lib.users.update("missing", "x", "x@example.com", "pw")


def test_upgrade_role(lib):
    assert lib.users.upgrade_role("2") is True
    assert lib.users.get("2").role is Role.ADMINISTRATOR
    # already administrator
    assert lib.users.upgrade_role("2") is False
    assert lib.users.upgrade_role("missing") is False


def test_remove_user(lib):
    lib.remove_user("5")
    assert lib.users.get("5") is None
    with pytest.raises(NotFoundError):
        lib.remove_user("5")


def test_remove_user_with_active_loan(lib):
    definition = lib.books.add_definition("111", "Dune", "Frank Herbert")
    copy = lib.books.copies_for(definition.id)[0]
    lib.loans.issue("1", copy.barcode)

    with pytest.raises(InUseError):
        lib.remove_user("1")
    assert lib.users.get("1") is not None
