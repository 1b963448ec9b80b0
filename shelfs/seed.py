import dataclasses

from shelfs.models import Role, User

# Stable ids so the default accounts can be referenced in docs and tests.
DEFAULT_USERS = [
    User(id="0", username="admin", email="admin@example.com", password="passwordsafe", role=Role.ADMINISTRATOR),
    User(id="1", username="john", email="john@example.com", password="password123"),
    User(id="2", username="anna", email="anna@example.com", password="password123"),
    User(id="3", username="scarlet", email="scarlet@example.com", password="password123"),
    User(id="4", username="nathan", email="nathan@example.com", password="password123"),
    User(id="5", username="magnus", email="magnus@example.com", password="password123"),
]


def seed_default_users(library) -> int:
    """Insert the default administrator and sample members. Returns how many were added."""
    for template in DEFAULT_USERS:
        library.users.restore(dataclasses.replace(template))
    return len(DEFAULT_USERS)
