"""
Shared test fixtures.
"""

from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from schoolhub.modules.users.models import User, UserRole


@pytest.fixture
def mock_db():
    """Create a mock database session."""
    db = AsyncMock()
    db.commit = AsyncMock()
    db.flush = AsyncMock()
    db.refresh = AsyncMock()
    db.get = AsyncMock()
    db.execute = AsyncMock()
    db.add = MagicMock()
    # Supports ``async with db.begin_nested():``
    db.begin_nested = MagicMock()
    return db


def make_user(
    role: UserRole,
    email: str,
    first_name: str = "Test",
    last_name: str = "User",
) -> MagicMock:
    """Build a user model double with the given role."""
    user = MagicMock(spec=User)
    user.id = str(uuid4())
    user.email = email
    user.first_name = first_name
    user.last_name = last_name
    user.role = role
    user.grade = None
    user.profile_picture = None
    user.phone_number = None
    user.email_verified = False
    user.account_locked = False
    user.account_suspended = False
    user.failed_login_attempts = 0
    return user


@pytest.fixture
def student():
    """A student account."""
    user = make_user(UserRole.STUDENT, "ama.mensah@test.com", "Ama", "Mensah")
    user.grade = "Grade 8"
    return user


@pytest.fixture
def parent():
    """A parent account."""
    return make_user(UserRole.PARENT, "kofi.mensah@test.com", "Kofi", "Mensah")


@pytest.fixture
def teacher():
    """A teacher account (neither student nor parent)."""
    return make_user(UserRole.TEACHER, "teacher@test.com", "Jane", "Teacher")


@pytest.fixture
def user_factory():
    """Build additional user doubles inside a test."""
    return make_user
