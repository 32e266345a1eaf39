"""
Unit tests for parent relationship repository layer.

These tests focus on the status machine, row construction and the
commit/flush behaviour of each write.
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest

from schoolhub.modules.relationships import repository
from schoolhub.modules.relationships.models import (
    ParentStudentRelationship,
    RelationshipStatus,
    RelationshipType,
)
from schoolhub.modules.relationships.repository import (
    VALID_STATUS_TRANSITIONS,
    InvalidStatusTransitionError,
    validate_transition,
)
from schoolhub.modules.relationships.schemas import RelationshipCreate


class TestStatusTransitions:
    """Tests for the relationship status machine."""

    @pytest.mark.parametrize(
        "pending",
        [RelationshipStatus.PENDING, RelationshipStatus.PENDING_PARENT_REGISTRATION],
    )
    def test_pending_statuses_can_be_decided(self, pending):
        """Both pending statuses move to verified or rejected."""
        assert VALID_STATUS_TRANSITIONS[pending] == {
            RelationshipStatus.VERIFIED,
            RelationshipStatus.REJECTED,
        }

    def test_terminal_states_have_no_transitions(self):
        """Verified and rejected never change again."""
        assert VALID_STATUS_TRANSITIONS[RelationshipStatus.VERIFIED] == set()
        assert VALID_STATUS_TRANSITIONS[RelationshipStatus.REJECTED] == set()

    def test_all_statuses_are_in_transition_map(self):
        for status in RelationshipStatus:
            assert status in VALID_STATUS_TRANSITIONS

    def test_validate_transition_allows_pending_to_verified(self):
        validate_transition(RelationshipStatus.PENDING, RelationshipStatus.VERIFIED)

    @pytest.mark.parametrize(
        "current,new",
        [
            (RelationshipStatus.VERIFIED, RelationshipStatus.REJECTED),
            (RelationshipStatus.REJECTED, RelationshipStatus.VERIFIED),
            (RelationshipStatus.VERIFIED, RelationshipStatus.VERIFIED),
            (RelationshipStatus.PENDING, RelationshipStatus.PENDING_PARENT_REGISTRATION),
        ],
    )
    def test_validate_transition_refuses(self, current, new):
        with pytest.raises(InvalidStatusTransitionError):
            validate_transition(current, new)


class TestInvalidStatusTransitionError:
    """Tests for InvalidStatusTransitionError."""

    def test_error_message_contains_both_statuses(self):
        error = InvalidStatusTransitionError(
            RelationshipStatus.VERIFIED, RelationshipStatus.REJECTED
        )
        assert "verified" in str(error)
        assert "rejected" in str(error)
        assert error.current_status == RelationshipStatus.VERIFIED
        assert error.new_status == RelationshipStatus.REJECTED

    def test_is_value_error(self):
        error = InvalidStatusTransitionError(
            RelationshipStatus.REJECTED, RelationshipStatus.VERIFIED
        )
        assert isinstance(error, ValueError)


class TestRelationshipCreate:
    """Tests for the insert schema."""

    def test_defaults(self):
        data = RelationshipCreate(student_id="s1")
        assert data.relationship_type == RelationshipType.PARENT
        assert data.status == RelationshipStatus.PENDING
        assert data.description == ""

    def test_pending_identity_without_parent_account(self):
        data = RelationshipCreate(student_id="s1", parent_email="p@test.com")
        assert data.has_pending_identity is True

    def test_no_pending_identity_when_parent_bound(self):
        data = RelationshipCreate(student_id="s1", parent_id="p1", parent_email="p@test.com")
        assert data.has_pending_identity is False

    def test_no_pending_identity_without_email_or_names(self):
        assert RelationshipCreate(student_id="s1").has_pending_identity is False


class TestBuild:
    """Tests for row construction."""

    def test_generates_token_and_default_expiry(self):
        before = datetime.now(UTC)
        relationship = repository._build(RelationshipCreate(student_id="s1", parent_id="p1"))

        assert len(relationship.verification_token) == 43
        assert relationship.token_expiry >= before + timedelta(days=7)
        assert relationship.token_expiry <= datetime.now(UTC) + timedelta(days=7)

    def test_keeps_supplied_token_and_expiry(self):
        expiry = datetime.now(UTC) + timedelta(hours=48)
        relationship = repository._build(
            RelationshipCreate(
                student_id="s1", parent_id="p1", verification_token="tok", token_expiry=expiry
            )
        )
        assert relationship.verification_token == "tok"
        assert relationship.token_expiry == expiry

    def test_email_identity_stored_lowercased_when_no_parent(self):
        relationship = repository._build(
            RelationshipCreate(
                student_id="s1",
                status=RelationshipStatus.PENDING_PARENT_REGISTRATION,
                parent_email="Kofi.Mensah@Test.com",
                parent_first_name="Kofi",
            )
        )
        assert relationship.parent_id is None
        assert relationship.parent_email == "kofi.mensah@test.com"
        assert relationship.parent_first_name == "Kofi"

    def test_email_identity_dropped_when_parent_bound(self):
        relationship = repository._build(
            RelationshipCreate(
                student_id="s1",
                parent_id="p1",
                parent_email="kofi@test.com",
                parent_first_name="Kofi",
            )
        )
        assert relationship.parent_id == "p1"
        assert relationship.parent_email is None
        assert relationship.parent_first_name is None

    def test_generate_token_is_unique(self):
        assert repository.generate_token() != repository.generate_token()


class TestWrites:
    """Tests for commit and flush behaviour."""

    @pytest.mark.asyncio
    async def test_create_commits_and_returns_stored_row(self, mock_db):
        stored = MagicMock(spec=ParentStudentRelationship)
        mock_db.get.return_value = stored

        result = await repository.create(mock_db, RelationshipCreate(student_id="s1"))

        mock_db.add.assert_called_once()
        mock_db.commit.assert_awaited_once()
        assert result is stored

    @pytest.mark.asyncio
    async def test_create_with_connection_never_commits(self, mock_db):
        result = await repository.create_with_connection(
            mock_db, RelationshipCreate(student_id="s1", parent_id="p1")
        )

        mock_db.flush.assert_awaited_once()
        mock_db.commit.assert_not_called()
        assert isinstance(result, ParentStudentRelationship)

    @pytest.mark.asyncio
    async def test_update_status_unknown_id_returns_none(self, mock_db):
        mock_db.get.return_value = None

        result = await repository.update_status(mock_db, "missing", RelationshipStatus.VERIFIED)

        assert result is None
        mock_db.commit.assert_not_called()

    @pytest.mark.asyncio
    async def test_update_status_sets_and_commits(self, mock_db, pending_relationship):
        mock_db.get.return_value = pending_relationship

        result = await repository.update_status(
            mock_db, pending_relationship.id, RelationshipStatus.VERIFIED
        )

        assert result.status == RelationshipStatus.VERIFIED
        mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_update_verification_token_issues_fresh_token(
        self, mock_db, pending_relationship
    ):
        old_token = pending_relationship.verification_token
        pending_relationship.token_expiry = datetime.now(UTC) - timedelta(days=1)
        mock_db.get.return_value = pending_relationship

        result = await repository.update_verification_token(mock_db, pending_relationship.id)

        assert result.verification_token != old_token
        assert result.token_expiry > datetime.now(UTC) + timedelta(days=6)
        mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_assign_parent_clears_email_identity(self, mock_db, email_only_relationship):
        result = await repository.assign_parent(mock_db, email_only_relationship, "p1")

        assert result.parent_id == "p1"
        assert result.parent_email is None
        assert result.parent_first_name is None
        assert result.parent_last_name is None
        mock_db.flush.assert_awaited_once()
        mock_db.commit.assert_not_called()


class TestQueries:
    """Tests for lookups that short-circuit or unwrap results."""

    @pytest.mark.asyncio
    async def test_is_token_valid_true_when_row_found(self, mock_db):
        result = MagicMock()
        result.scalar_one_or_none.return_value = "rel-id"
        mock_db.execute.return_value = result

        assert await repository.is_token_valid(mock_db, "tok") is True

    @pytest.mark.asyncio
    async def test_is_token_valid_false_when_missing_or_expired(self, mock_db):
        result = MagicMock()
        result.scalar_one_or_none.return_value = None
        mock_db.execute.return_value = result

        assert await repository.is_token_valid(mock_db, "tok") is False

    @pytest.mark.asyncio
    async def test_find_open_relationship_needs_a_parent_matcher(self, mock_db):
        result = await repository.find_open_relationship(mock_db, "s1", RelationshipType.PARENT)

        assert result is None
        mock_db.execute.assert_not_called()
