"""
Fixtures for parent relationship tests.
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock
from uuid import uuid4

import pytest

from schoolhub.modules.relationships.models import (
    ParentStudentRelationship,
    RelationshipStatus,
    RelationshipType,
)


def make_relationship(
    student_id: str,
    parent_id: str | None = None,
    status: RelationshipStatus = RelationshipStatus.PENDING,
    parent_email: str | None = None,
    expires_in: timedelta = timedelta(days=7),
) -> MagicMock:
    """Build a relationship model double with every serialized field set."""
    now = datetime.now(UTC)
    relationship = MagicMock(spec=ParentStudentRelationship)
    relationship.id = str(uuid4())
    relationship.parent_id = parent_id
    relationship.student_id = student_id
    relationship.relationship_type = RelationshipType.PARENT
    relationship.description = ""
    relationship.status = status
    relationship.verification_token = "a" * 64
    relationship.token_expiry = now + expires_in
    relationship.parent_email = parent_email
    relationship.parent_first_name = "Kofi" if parent_email else None
    relationship.parent_last_name = "Mensah" if parent_email else None
    relationship.created_at = now
    relationship.updated_at = now
    return relationship


@pytest.fixture
def pending_relationship(student, parent):
    """A parent-initiated relationship awaiting verification."""
    return make_relationship(student.id, parent_id=parent.id)


@pytest.fixture
def email_only_relationship(student):
    """A student-initiated relationship naming a parent without an account."""
    return make_relationship(
        student.id,
        status=RelationshipStatus.PENDING_PARENT_REGISTRATION,
        parent_email="kofi.mensah@test.com",
        expires_in=timedelta(hours=48),
    )


@pytest.fixture
def verified_relationship(student, parent):
    """A relationship the parent has already verified."""
    return make_relationship(student.id, parent_id=parent.id, status=RelationshipStatus.VERIFIED)


@pytest.fixture
def rejected_relationship(student, parent):
    """A relationship the parent has rejected."""
    return make_relationship(student.id, parent_id=parent.id, status=RelationshipStatus.REJECTED)


@pytest.fixture
def relationship_factory():
    """Build additional relationship doubles inside a test."""
    return make_relationship
