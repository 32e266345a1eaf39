"""
Parent Relationship Repository

Database operations for parent-student relationships. Only data access
lives here: role checks, email and transition rules are the service's job.

Two write styles exist:
- ``create`` commits on its own and re-reads the stored row.
- ``create_with_connection`` and ``assign_parent`` only flush, so they take
  part in the caller's transaction (user registration).

Storage errors propagate unchanged.
"""

import secrets
from datetime import UTC, datetime, timedelta

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import ParentStudentRelationship, RelationshipStatus, RelationshipType
from .schemas import RelationshipCreate

DEFAULT_TOKEN_TTL = timedelta(days=7)
TOKEN_BYTES = 32  # token_urlsafe(32) yields 43 characters


def generate_token() -> str:
    """Opaque URL-safe verification token."""
    return secrets.token_urlsafe(TOKEN_BYTES)


def _now() -> datetime:
    return datetime.now(UTC)


def _build(data: RelationshipCreate) -> ParentStudentRelationship:
    relationship = ParentStudentRelationship(
        student_id=data.student_id,
        parent_id=data.parent_id,
        relationship_type=data.relationship_type,
        description=data.description or "",
        status=data.status,
        verification_token=data.verification_token or generate_token(),
        token_expiry=data.token_expiry or _now() + DEFAULT_TOKEN_TTL,
    )

    # Email identity is only stored while there is no parent account
    if data.has_pending_identity:
        relationship.parent_email = data.parent_email.lower() if data.parent_email else None
        relationship.parent_first_name = data.parent_first_name
        relationship.parent_last_name = data.parent_last_name

    return relationship


async def create(db: AsyncSession, data: RelationshipCreate) -> ParentStudentRelationship:
    """
    Insert a relationship, commit, and return the stored row.

    ``parent_email`` is stored lower-cased; every other field is kept as given.
    """
    relationship = _build(data)

    db.add(relationship)
    await db.commit()
    await db.refresh(relationship)

    stored = await get_by_id(db, relationship.id)
    return stored or relationship


async def create_with_connection(
    db: AsyncSession, data: RelationshipCreate
) -> ParentStudentRelationship:
    """Insert a relationship inside the caller's transaction (flush, no commit)."""
    relationship = _build(data)

    db.add(relationship)
    await db.flush()
    await db.refresh(relationship)

    return relationship


async def get_by_id(db: AsyncSession, id: str) -> ParentStudentRelationship | None:
    """Get relationship by ID."""
    return await db.get(ParentStudentRelationship, str(id))


async def get_by_token(db: AsyncSession, token: str) -> ParentStudentRelationship | None:
    """Get relationship by verification token."""
    result = await db.execute(
        select(ParentStudentRelationship).where(
            ParentStudentRelationship.verification_token == token
        )
    )
    return result.scalar_one_or_none()


async def get_by_parent_id(
    db: AsyncSession,
    parent_id: str,
    status: RelationshipStatus | None = None,
) -> list[ParentStudentRelationship]:
    """List relationships bound to a parent account, optionally filtered by status."""
    query = select(ParentStudentRelationship).where(
        ParentStudentRelationship.parent_id == str(parent_id)
    )
    if status is not None:
        query = query.where(ParentStudentRelationship.status == status)

    result = await db.execute(query.order_by(ParentStudentRelationship.created_at.desc()))
    return list(result.scalars().all())


async def get_by_parent_email(
    db: AsyncSession,
    email: str,
    status: RelationshipStatus,
) -> list[ParentStudentRelationship]:
    """List relationships still keyed by a prospective parent's email."""
    result = await db.execute(
        select(ParentStudentRelationship)
        .where(
            func.lower(ParentStudentRelationship.parent_email) == email.lower(),
            ParentStudentRelationship.status == status,
        )
        .order_by(ParentStudentRelationship.created_at.desc())
    )
    return list(result.scalars().all())


async def get_verified_children(
    db: AsyncSession, parent_id: str
) -> list[ParentStudentRelationship]:
    """Verified relationships of a parent."""
    return await get_by_parent_id(db, parent_id, RelationshipStatus.VERIFIED)


async def find_open_relationship(
    db: AsyncSession,
    student_id: str,
    relationship_type: RelationshipType,
    parent_id: str | None = None,
    parent_email: str | None = None,
) -> ParentStudentRelationship | None:
    """
    Find a non-rejected relationship linking the same parent and student.

    The parent side matches by account id or by prospective email, whichever
    is given.
    """
    parent_matches = []
    if parent_id:
        parent_matches.append(ParentStudentRelationship.parent_id == str(parent_id))
    if parent_email:
        parent_matches.append(
            func.lower(ParentStudentRelationship.parent_email) == parent_email.lower()
        )
    if not parent_matches:
        return None

    result = await db.execute(
        select(ParentStudentRelationship)
        .where(
            ParentStudentRelationship.student_id == str(student_id),
            ParentStudentRelationship.relationship_type == relationship_type,
            ParentStudentRelationship.status != RelationshipStatus.REJECTED,
            or_(*parent_matches),
        )
        .limit(1)
    )
    return result.scalars().first()


# Monotonic status machine: terminal states never change
VALID_STATUS_TRANSITIONS: dict[RelationshipStatus, set[RelationshipStatus]] = {
    RelationshipStatus.PENDING: {
        RelationshipStatus.VERIFIED,
        RelationshipStatus.REJECTED,
    },
    RelationshipStatus.PENDING_PARENT_REGISTRATION: {
        RelationshipStatus.VERIFIED,
        RelationshipStatus.REJECTED,
    },
    RelationshipStatus.VERIFIED: set(),
    RelationshipStatus.REJECTED: set(),
}


class InvalidStatusTransitionError(ValueError):
    """Raised when a status change would leave a terminal state."""

    def __init__(
        self,
        current_status: RelationshipStatus,
        new_status: RelationshipStatus,
    ):
        self.current_status = current_status
        self.new_status = new_status
        valid_transitions = VALID_STATUS_TRANSITIONS.get(current_status, set())
        super().__init__(
            f"Invalid status transition: {current_status.value} -> {new_status.value}. "
            f"Valid transitions: {sorted(s.value for s in valid_transitions)}"
        )


def validate_transition(current: RelationshipStatus, new: RelationshipStatus) -> None:
    """Raise InvalidStatusTransitionError unless ``current -> new`` is allowed."""
    if new not in VALID_STATUS_TRANSITIONS.get(current, set()):
        raise InvalidStatusTransitionError(current, new)


async def update_status(
    db: AsyncSession,
    id: str,
    status: RelationshipStatus,
) -> ParentStudentRelationship | None:
    """
    Overwrite the status of a relationship and commit.

    No transition check happens here; callers validate first.

    Returns:
        The refreshed relationship, or None if the id is unknown
    """
    relationship = await get_by_id(db, id)
    if relationship is None:
        return None

    relationship.status = status
    await db.commit()
    await db.refresh(relationship)

    return relationship


async def update_verification_token(
    db: AsyncSession, id: str
) -> ParentStudentRelationship | None:
    """Issue a fresh token valid for 7 days and commit."""
    relationship = await get_by_id(db, id)
    if relationship is None:
        return None

    relationship.verification_token = generate_token()
    relationship.token_expiry = _now() + DEFAULT_TOKEN_TTL
    await db.commit()
    await db.refresh(relationship)

    return relationship


async def assign_parent(
    db: AsyncSession,
    relationship: ParentStudentRelationship,
    parent_id: str,
) -> ParentStudentRelationship:
    """
    Bind an email-only relationship to a parent account (flush, no commit).

    The prospective identity is cleared once the account owns the row.
    """
    relationship.parent_id = str(parent_id)
    relationship.parent_email = None
    relationship.parent_first_name = None
    relationship.parent_last_name = None
    await db.flush()
    return relationship


async def is_token_valid(db: AsyncSession, token: str) -> bool:
    """
    True iff a relationship carries ``token`` and its expiry is in the future.

    The status is not consulted.
    """
    result = await db.execute(
        select(ParentStudentRelationship.id).where(
            ParentStudentRelationship.verification_token == token,
            ParentStudentRelationship.token_expiry > _now(),
        )
    )
    return result.scalar_one_or_none() is not None
