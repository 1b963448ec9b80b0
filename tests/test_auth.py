import pytest

from shelfs.errors import DuplicateKeyError
from shelfs.models import Loan, Role, User, utcnow
from shelfs.services.auth_service import (
    Permission,
    can_act_for,
    can_manage_books,
    can_manage_users,
    can_return,
    can_upgrade_roles,
    can_view_all_loans,
    has_permission,
    is_authenticated,
)

MEMBER = User(id="m", username="m", email="m@example.com", password="pw")
ADMIN = User(id="a", username="a", email="a@example.com", password="pw", role=Role.ADMINISTRATOR)


def _loan(user_id):
    now = utcnow()
    return Loan(id="l1", user_id=user_id, book_id="c1", created_at=now, due_date=now)


def test_login_with_email_and_password(lib):
    session = lib.session()
    assert session.login("john@example.com", "password123") is True
    assert session.is_authenticated
    assert session.current_user.id == "1"


@pytest.mark.parametrize("email,password", [
    ("john@example.com", "wrong"),
    ("nobody@example.com", "password123"),
    ("john", "password123"),
    ("", ""),
])
def test_login_failure(lib, email, password):
    session = lib.session()
    assert session.login(email, password) is False
    assert session.current_user is None


def test_logout(admin_session):
    admin_session.logout()
    assert not admin_session.is_authenticated
    assert not admin_session.require_admin()


def test_signup_creates_member(lib):
    session = lib.session()
    user = session.signup("newbie", "newbie@example.com", "pw")
    assert user.role is Role.MEMBER
    # signing up does not log in
    assert session.current_user is None
    assert session.login("newbie@example.com", "pw")


def test_signup_rejects_taken_email(lib):
    with pytest.raises(DuplicateKeyError):
        lib.session().signup("someone", "anna@example.com", "pw")


def test_member_permissions():
    assert has_permission(MEMBER, Permission.LOAN_BOOKS)
    assert has_permission(MEMBER, Permission.VIEW_OWN_LOANS)
    assert not has_permission(MEMBER, Permission.MANAGE_BOOKS)
    assert not can_manage_books(MEMBER)
    assert not can_manage_users(MEMBER)
    assert not can_view_all_loans(MEMBER)
    assert not can_upgrade_roles(MEMBER)


def test_admin_permissions():
    assert all(has_permission(ADMIN, p) for p in Permission)
    assert can_manage_books(ADMIN)
    assert can_manage_users(ADMIN)
    assert can_upgrade_roles(ADMIN)


def test_anonymous_has_nothing():
    assert not is_authenticated(None)
    assert not any(has_permission(None, p) for p in Permission)
    assert not can_act_for(None, "m")


def test_acting_on_behalf_of_others():
    assert can_act_for(MEMBER, "m")
    assert not can_act_for(MEMBER, "a")
    assert can_act_for(ADMIN, "m")

    assert can_return(MEMBER, _loan("m"))
    assert not can_return(MEMBER, _loan("someone-else"))
    assert can_return(ADMIN, _loan("someone-else"))


def test_accessible_loans(lib):
    definition = lib.books.add_definition("1", "Emma", "Jane Austen")
    lib.books.add_copy(definition.id)
    first, second = lib.books.copies_for(definition.id)
    johns = lib.loans.issue("1", first.barcode)
    lib.loans.issue("2", second.barcode)

    assert lib.accessible_loans(lib.users.get("1")) == [johns]
    assert len(lib.accessible_loans(lib.users.get("0"))) == 2
    assert lib.accessible_loans(None) == []


def test_require_admin_reflects_role(lib):
    admin = lib.session()
    assert admin.login("admin@example.com", "passwordsafe")
    assert admin.require_authenticated()
    assert admin.require_admin()

    member = lib.session()
    assert member.login("john@example.com", "password123")
    assert member.require_authenticated()
    assert not member.require_admin()


def test_wrong_password_leaves_session_anonymous(lib):
    session = lib.session()
    assert session.login("admin@example.com", "nope") is False
    assert not session.is_authenticated
    assert not session.require_admin()


def test_password_is_kept_verbatim(lib):
    lib.session().signup("pad", "pad@example.com", " secret ")

    session = lib.session()
    assert session.login("pad@example.com", " secret ")
    assert not lib.session().login("pad@example.com", "secret")
    assert lib.users.find_by_email("pad@example.com").password == " secret "


def test_update_keeps_password_verbatim(lib):
    lib.users.update("1", "john", "john@example.com", "  new pass ")
    assert lib.session().login("john@example.com", "  new pass ")
