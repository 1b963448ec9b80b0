import dataclasses
import logging
from typing import List, Optional

from shelfs.errors import NotFoundError
from shelfs.identifiers import new_id
from shelfs.models import Role, User
from shelfs.repositories import UserRepo

logger = logging.getLogger(__name__)


def _require(value: Optional[str], name: str) -> str:
    if value is None or not value.strip():
        raise ValueError(f"{name} must not be empty.")
    return value.strip()


def _require_password(value: Optional[str]) -> str:
    # stored and compared exactly as given
    if value is None or not value.strip():
        raise ValueError("Password must not be empty.")
    return value


class UserService:
    def __init__(self, users: Optional[UserRepo] = None) -> None:
        self.users = users or UserRepo()

    def create(self, username: str, email: str, password: str, role: Role = Role.MEMBER) -> User:
        """Register a new account. Raises DuplicateKeyError on username/email collision."""
        user = User(
            id=new_id(),
            username=_require(username, "Username"),
            email=_require(email, "Email"),
            password=_require_password(password),
            role=role,
        )
        self.users.add(user)
        logger.info(f"User created: id={user.id}, username={user.username}, role={user.role.name}")
        return user

    def restore(self, user: User) -> None:
        """Insert a pre-built record keeping its id (snapshot load, seeding)."""
        self.users.add(user)

    def get(self, user_id: str) -> Optional[User]:
        return self.users.get(user_id)

    def list(self) -> List[User]:
        return self.users.list_all()

    def update(self, user_id: str, username: str, email: str, password: str) -> User:
        user = self.users.get(user_id)
        if user is None:
            raise NotFoundError(f"User with ID {user_id} not found.")
        candidate = dataclasses.replace(
            user,
            username=_require(username, "Username"),
            email=_require(email, "Email"),
            password=_require_password(password),
        )
        self.users.ensure_unique(candidate)
        user.username = candidate.username
        user.email = candidate.email
        user.password = candidate.password
        logger.info(f"User updated: id={user_id}")
        return user

    def upgrade_role(self, user_id: str) -> bool:
        """Promote a Member to Administrator. False if missing or already admin."""
        user = self.users.get(user_id)
        if user is None or user.role is Role.ADMINISTRATOR:
            return False
        self.users.replace(dataclasses.replace(user, role=Role.ADMINISTRATOR))
        logger.info(f"User upgraded to administrator: id={user_id}")
        return True

    def remove(self, user_id: str) -> None:
        if self.users.get(user_id) is None:
            raise NotFoundError(f"User with ID {user_id} not found.")
        self.users.delete(user_id)
        logger.info(f"User removed: id={user_id}")

    def find_by_username(self, username: str) -> Optional[User]:
        return self.users.find_by_username(username)

    def find_by_email(self, email: str) -> Optional[User]:
        return self.users.find_by_email(email)

    def count(self) -> int:
        return self.users.count()
