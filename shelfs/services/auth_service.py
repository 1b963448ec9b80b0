"""Session state and capability checks.

Accounts log in with their email address, the one login key guaranteed to be
unique. Capability checks are plain functions of the current user (or None),
so the CLI, the interactive menu and the HTTP API all ask the same questions.
"""

import logging
from enum import Enum
from typing import Optional

from shelfs.errors import DuplicateKeyError
from shelfs.models import Loan, Role, User
from shelfs.services.user_service import UserService

logger = logging.getLogger(__name__)


class Permission(Enum):
    VIEW_OWN_LOANS = "VIEW_OWN_LOANS"
    VIEW_ALL_BOOKS = "VIEW_ALL_BOOKS"
    LOAN_BOOKS = "LOAN_BOOKS"
    RETURN_BOOKS = "RETURN_BOOKS"
    VIEW_ALL_LOANS = "VIEW_ALL_LOANS"
    MANAGE_BOOKS = "MANAGE_BOOKS"
    MANAGE_USERS = "MANAGE_USERS"


MEMBER_PERMISSIONS = frozenset({
    Permission.VIEW_OWN_LOANS,
    Permission.VIEW_ALL_BOOKS,
    Permission.LOAN_BOOKS,
    Permission.RETURN_BOOKS,
})


def is_authenticated(user: Optional[User]) -> bool:
    return user is not None


def is_admin(user: Optional[User]) -> bool:
    return user is not None and user.role is Role.ADMINISTRATOR


def has_permission(user: Optional[User], permission: Permission) -> bool:
    """Administrators hold every permission; members hold MEMBER_PERMISSIONS."""
    if user is None:
        return False
    if user.role is Role.ADMINISTRATOR:
        return True
    return permission in MEMBER_PERMISSIONS


def can_manage_books(user: Optional[User]) -> bool:
    return is_admin(user)


def can_manage_users(user: Optional[User]) -> bool:
    return is_admin(user)


def can_view_all_loans(user: Optional[User]) -> bool:
    return is_admin(user)


def can_upgrade_roles(user: Optional[User]) -> bool:
    return is_admin(user)


def can_act_for(user: Optional[User], target_user_id: str) -> bool:
    """Members may only loan, view or return on their own behalf."""
    if user is None:
        return False
    return is_admin(user) or user.id == target_user_id


def can_return(user: Optional[User], loan: Loan) -> bool:
    return has_permission(user, Permission.RETURN_BOOKS) and can_act_for(user, loan.user_id)


class AuthService:
    """Holds the currently logged-in account for one presentation session."""

    def __init__(self, users: UserService) -> None:
        self.users = users
        self.current_user: Optional[User] = None

    @property
    def is_authenticated(self) -> bool:
        return self.current_user is not None

    def login(self, email: str, password: str) -> bool:
        """Authenticate by email and plain-text password. Never raises on bad credentials."""
        if not email or not email.strip() or not password or not password.strip():
            return False
        user = self.users.find_by_email(email.strip())
        if user is None or user.password != password:
            logger.warning(f"Failed login attempt for {email!r}")
            return False
        self.current_user = user
        logger.info(f"Logged in: {user.username}")
        return True

    def logout(self) -> None:
        if self.current_user is not None:
            logger.info(f"Logged out: {self.current_user.username}")
        self.current_user = None

    def signup(self, username: str, email: str, password: str) -> User:
        """Create a Member account; elevation happens through the admin panel only."""
        if email and self.users.find_by_email(email.strip()) is not None:
            raise DuplicateKeyError(f"Email '{email.strip()}' is already registered.")
        return self.users.create(username, email, password, Role.MEMBER)

    # --- guards ---
    def require_authenticated(self) -> bool:
        return is_authenticated(self.current_user)

    def require_admin(self) -> bool:
        return is_admin(self.current_user)

    def has_permission(self, permission: Permission) -> bool:
        return has_permission(self.current_user, permission)

    def can_view_all_loans(self) -> bool:
        return can_view_all_loans(self.current_user)

    def can_manage_books(self) -> bool:
        return can_manage_books(self.current_user)

    def can_manage_users(self) -> bool:
        return can_manage_users(self.current_user)

    def can_act_for(self, target_user_id: str) -> bool:
        return can_act_for(self.current_user, target_user_id)
