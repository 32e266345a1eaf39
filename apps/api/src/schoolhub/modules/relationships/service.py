"""
Parent Relationship Service Layer

Business logic for linking parents and students. Orchestrates repository
operations, user lookups, and verification emails.

This module implements:
1. Parent-initiated requests:
   - An existing parent names a student; the parent confirms by email link
   - Tokens live 7 days

2. Student-initiated requests:
   - A student names a parent by email, who may not have an account yet
   - Tokens live 48 hours
   - A transactional variant creates the parent account inside the
     student's registration transaction

3. Verification:
   - Verify / reject by token, register-and-verify for new parents
   - Terminal relationships (verified, rejected) never change again

4. Parent views:
   - Verified children, pending requests (matched by account and by email)
   - Resend of the verification email with a fresh token

Emails are best-effort: a failed send is logged and the relationship stays.
"""

import logging
import secrets
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from schoolhub.core.email import (
    send_parent_account_created,
    send_parent_invitation,
    send_relationship_verification,
    send_student_link_verification,
)
from schoolhub.core.security import hash_password
from schoolhub.modules.relationships import repository
from schoolhub.modules.relationships.helpers import (
    display_name,
    relationship_response,
    student_summary,
    unique_by_id,
)
from schoolhub.modules.relationships.models import (
    ParentStudentRelationship,
    RelationshipStatus,
    RelationshipType,
)
from schoolhub.modules.relationships.repository import (
    InvalidStatusTransitionError,
    validate_transition,
)
from schoolhub.modules.relationships.schemas import (
    ChildResponse,
    PendingRelationshipResponse,
    RelationshipCreate,
    RelationshipWithStudent,
)
from schoolhub.modules.users.models import User, UserRole
from schoolhub.modules.users.repository import UserRepository

logger = logging.getLogger(__name__)

# Constants
PARENT_REQUEST_TTL = timedelta(days=7)
STUDENT_REQUEST_TTL = timedelta(hours=48)
RESEND_TTL_LABEL = "7 days"
STUDENT_TTL_LABEL = "48 hours"
STUDENT_TOKEN_BYTES = 32  # token_hex(32) yields 64 characters
TEMP_PASSWORD_BYTES = 12
DEFAULT_PARENT_FIRST_NAME = "Parent"
DEFAULT_PARENT_LAST_NAME = "User"


# ============================================
# Errors
# ============================================


class RelationshipServiceError(Exception):
    """Base exception for relationship service errors."""

    def __init__(self, message: str, error_code: str, status_code: int = 400):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


class StudentNotFoundError(RelationshipServiceError):
    """Raised when the named student does not exist."""

    def __init__(self, message: str = "Student not found"):
        super().__init__(message=message, error_code="STUDENT_NOT_FOUND", status_code=404)


class NotAStudentError(RelationshipServiceError):
    """Raised when the named user exists but is not a student."""

    def __init__(self, message: str = "The specified user is not a student"):
        super().__init__(message=message, error_code="NOT_A_STUDENT", status_code=400)


class ParentNotFoundError(RelationshipServiceError):
    """Raised when the parent account does not exist."""

    def __init__(self, message: str = "Parent user not found"):
        super().__init__(message=message, error_code="PARENT_NOT_FOUND", status_code=404)


class NotAParentAccountError(RelationshipServiceError):
    """Raised when the parent side resolves to a non-parent account."""

    def __init__(self, message: str = "Email is registered to a non-parent account"):
        super().__init__(message=message, error_code="NOT_A_PARENT_ACCOUNT", status_code=400)


class InvalidOrExpiredTokenError(RelationshipServiceError):
    """Raised when a verification token is unknown or past its expiry."""

    def __init__(self):
        super().__init__(
            message="Invalid or expired verification token",
            error_code="INVALID_OR_EXPIRED_TOKEN",
            status_code=400,
        )


class RelationshipNotFoundError(RelationshipServiceError):
    """Raised when a relationship cannot be found (or is not the caller's)."""

    def __init__(self, message: str = "Relationship not found"):
        super().__init__(message=message, error_code="RELATIONSHIP_NOT_FOUND", status_code=404)


class AlreadyVerifiedError(RelationshipServiceError):
    """Raised when resending for a relationship that is already verified."""

    def __init__(self):
        super().__init__(
            message="Relationship already verified",
            error_code="ALREADY_VERIFIED",
            status_code=409,
        )


class RelationshipAlreadyFinalizedError(RelationshipServiceError):
    """Raised when a verified or rejected relationship would change status."""

    def __init__(self, status: RelationshipStatus):
        self.status = status
        super().__init__(
            message=f"Relationship has already been {status.value}",
            error_code="RELATIONSHIP_ALREADY_FINALIZED",
            status_code=409,
        )


class DuplicateRelationshipError(RelationshipServiceError):
    """Raised when an open relationship already links the same parent and student."""

    def __init__(self):
        super().__init__(
            message="A relationship request for this parent and student already exists",
            error_code="DUPLICATE_RELATIONSHIP",
            status_code=409,
        )


class RelationshipAlreadyBoundError(RelationshipServiceError):
    """Raised when registering a new account against a row owned by another parent."""

    def __init__(self):
        super().__init__(
            message="This relationship already belongs to a parent account. Sign in to verify it.",
            error_code="RELATIONSHIP_ALREADY_BOUND",
            status_code=409,
        )


class EmailAlreadyRegisteredError(RelationshipServiceError):
    """Raised when registering with an email that already has an account."""

    def __init__(self, status_code: int = 400):
        super().__init__(
            message="Email is already registered",
            error_code="EMAIL_ALREADY_REGISTERED",
            status_code=status_code,
        )


@dataclass
class StudentInitiatedResult:
    """Outcome of the transactional student-initiated flow, before commit."""

    relationship: ParentStudentRelationship
    student: User
    parent: User
    parent_created: bool
    temporary_password: str | None = field(default=None, repr=False)

    @property
    def relationship_id(self) -> str:
        return str(self.relationship.id)

    @property
    def parent_id(self) -> str:
        return str(self.parent.id)

    @property
    def verification_token(self) -> str:
        return self.relationship.verification_token

    @property
    def token_expiry(self) -> datetime:
        return self.relationship.token_expiry


# ============================================
# Internal helpers
# ============================================


def _now() -> datetime:
    return datetime.now(UTC)


async def _get_student(db: AsyncSession, student_id: str) -> User:
    student = await UserRepository.get_by_id(db, student_id)
    if student is None:
        raise StudentNotFoundError()
    if student.role != UserRole.STUDENT:
        raise NotAStudentError()
    return student


async def _ensure_no_open_relationship(
    db: AsyncSession,
    student_id: str,
    relationship_type: RelationshipType,
    parent_id: str | None,
    parent_email: str | None,
) -> None:
    existing = await repository.find_open_relationship(
        db,
        student_id,
        relationship_type,
        parent_id=parent_id,
        parent_email=parent_email,
    )
    if existing is not None:
        logger.info(f"Duplicate relationship request refused, existing={existing.id}")
        raise DuplicateRelationshipError()


async def _send_best_effort(send, **kwargs) -> bool:
    """Run an email sender, logging (never raising) on failure."""
    try:
        return bool(await send(**kwargs))
    except Exception as e:
        logger.error(f"Failed to send relationship email to {kwargs.get('to_email')}: {e}")
        return False


async def _transition(
    db: AsyncSession,
    token: str,
    new_status: RelationshipStatus,
) -> ParentStudentRelationship:
    if not await repository.is_token_valid(db, token):
        raise InvalidOrExpiredTokenError()

    relationship = await repository.get_by_token(db, token)
    if relationship is None:
        raise RelationshipNotFoundError()

    try:
        validate_transition(relationship.status, new_status)
    except InvalidStatusTransitionError as e:
        raise RelationshipAlreadyFinalizedError(relationship.status) from e

    if (
        new_status == RelationshipStatus.VERIFIED
        and relationship.parent_id is None
        and relationship.parent_email
    ):
        # The prospective parent may have registered since the request was made
        parent = await UserRepository.get_by_email(db, relationship.parent_email)
        if parent is not None and parent.role == UserRole.PARENT:
            await repository.assign_parent(db, relationship, parent.id)

    updated = await repository.update_status(db, relationship.id, new_status)
    if updated is None:
        raise RelationshipNotFoundError()

    logger.info(f"Relationship {updated.id} {new_status.value}")
    return updated


# ============================================
# Creation
# ============================================


async def create_relationship_request(
    db: AsyncSession,
    parent_id: str,
    student_id: str,
    relationship_type: RelationshipType = RelationshipType.PARENT,
    description: str = "",
) -> ParentStudentRelationship:
    """
    Create a parent-initiated relationship request.

    Args:
        db: Database session
        parent_id: The requesting parent's user id
        student_id: The student's user id
        relationship_type: parent / guardian / other
        description: Optional free text

    Returns:
        The created relationship (status pending, token valid 7 days)

    Raises:
        StudentNotFoundError: If the student does not exist
        NotAStudentError: If the user is not a student
        ParentNotFoundError: If the parent account does not exist
        NotAParentAccountError: If the requester is not a parent
        DuplicateRelationshipError: If an open request already links the pair
    """
    student = await _get_student(db, student_id)

    parent = await UserRepository.get_by_id(db, parent_id)
    if parent is None:
        raise ParentNotFoundError()
    if parent.role != UserRole.PARENT:
        raise NotAParentAccountError("Only parent accounts can request a relationship")

    await _ensure_no_open_relationship(
        db, student.id, relationship_type, parent_id=parent.id, parent_email=parent.email
    )

    relationship = await repository.create(
        db,
        RelationshipCreate(
            student_id=str(student.id),
            parent_id=str(parent.id),
            relationship_type=relationship_type,
            description=description or "",
            status=RelationshipStatus.PENDING,
            token_expiry=_now() + PARENT_REQUEST_TTL,
        ),
    )
    logger.info(f"Relationship request created: id={relationship.id}, student={student.id}")

    await _send_best_effort(
        send_relationship_verification,
        to_email=parent.email,
        parent_first_name=parent.first_name,
        student_name=display_name(student),
        relationship_type=relationship.relationship_type.value,
        token=relationship.verification_token,
    )

    return relationship


async def create_relationship_request_by_email(
    db: AsyncSession,
    parent_email: str,
    student_email: str,
    relationship_type: RelationshipType = RelationshipType.PARENT,
) -> ParentStudentRelationship:
    """
    Parent-initiated request naming both sides by email (parent sign-up form).

    Raises:
        StudentNotFoundError: no student account owns ``student_email``
        ParentNotFoundError: no parent account owns ``parent_email``
    """
    student = await UserRepository.get_by_email(db, student_email)
    if student is None or student.role != UserRole.STUDENT:
        raise StudentNotFoundError(
            "Student not found or the email does not belong to a student account"
        )

    parent = await UserRepository.get_by_email(db, parent_email)
    if parent is None or parent.role != UserRole.PARENT:
        raise ParentNotFoundError(
            "Parent not found or the email does not belong to a parent account"
        )

    return await create_relationship_request(db, parent.id, student.id, relationship_type, "")


async def create_student_initiated_relationship(
    db: AsyncSession,
    student_id: str,
    parent_email: str,
    parent_first_name: str | None = None,
    parent_last_name: str | None = None,
    parent_id: str | None = None,
) -> ParentStudentRelationship:
    """
    Create a relationship requested by a student.

    When ``parent_id`` is not supplied the email is looked up: an existing
    parent account is linked directly (status pending), otherwise the row is
    keyed by email (status pending_parent_registration). Tokens live 48 hours.

    Raises:
        StudentNotFoundError / NotAStudentError: invalid student
        NotAParentAccountError: the email belongs to a non-parent account
        DuplicateRelationshipError: an open request already links the pair
    """
    student = await _get_student(db, student_id)
    parent_email = parent_email.lower()

    if parent_id is None:
        existing_user = await UserRepository.get_by_email(db, parent_email)
        if existing_user is not None:
            if existing_user.role != UserRole.PARENT:
                raise NotAParentAccountError()
            parent_id = str(existing_user.id)

    await _ensure_no_open_relationship(
        db, student.id, RelationshipType.PARENT, parent_id=parent_id, parent_email=parent_email
    )

    status = (
        RelationshipStatus.PENDING if parent_id else RelationshipStatus.PENDING_PARENT_REGISTRATION
    )
    relationship = await repository.create(
        db,
        RelationshipCreate(
            student_id=str(student.id),
            parent_id=parent_id,
            relationship_type=RelationshipType.PARENT,
            status=status,
            verification_token=secrets.token_hex(STUDENT_TOKEN_BYTES),
            token_expiry=_now() + STUDENT_REQUEST_TTL,
            parent_email=parent_email,
            parent_first_name=parent_first_name,
            parent_last_name=parent_last_name,
        ),
    )
    logger.info(f"Student-initiated relationship created: id={relationship.id} ({status.value})")

    sender = send_student_link_verification if parent_id else send_parent_invitation
    await _send_best_effort(
        sender,
        to_email=parent_email,
        parent_first_name=parent_first_name,
        student_name=display_name(student),
        token=relationship.verification_token,
        expires_in=STUDENT_TTL_LABEL,
    )

    return relationship


async def create_student_initiated_relationship_with_connection(
    db: AsyncSession,
    student_id: str,
    parent_email: str,
    parent_first_name: str | None = None,
    parent_last_name: str | None = None,
    parent_id: str | None = None,
) -> StudentInitiatedResult:
    """
    Student-initiated flow run inside the caller's transaction.

    Reads the student with the caller's session, creates a parent account
    with a temporary password when none owns ``parent_email``, and inserts
    the relationship (status pending, 48 hours). Nothing is committed and no
    email is sent: the caller commits, then calls
    ``notify_student_initiated_parent``.
    """
    student = await _get_student(db, student_id)
    parent_email = parent_email.lower()

    if parent_id:
        parent = await UserRepository.get_by_id(db, parent_id)
        if parent is None:
            raise ParentNotFoundError()
    else:
        parent = await UserRepository.get_by_email(db, parent_email)

    if parent is not None and parent.role != UserRole.PARENT:
        raise NotAParentAccountError()

    temporary_password = None
    parent_created = False
    if parent is None:
        temporary_password = secrets.token_hex(TEMP_PASSWORD_BYTES)
        parent = await UserRepository.create(
            db,
            email=parent_email,
            password_hash=hash_password(temporary_password),
            first_name=parent_first_name or DEFAULT_PARENT_FIRST_NAME,
            last_name=parent_last_name or DEFAULT_PARENT_LAST_NAME,
            role=UserRole.PARENT,
        )
        parent_created = True
    else:
        await _ensure_no_open_relationship(
            db, student.id, RelationshipType.PARENT, parent_id=parent.id, parent_email=parent_email
        )

    relationship = await repository.create_with_connection(
        db,
        RelationshipCreate(
            student_id=str(student.id),
            parent_id=str(parent.id),
            relationship_type=RelationshipType.PARENT,
            status=RelationshipStatus.PENDING,
            verification_token=secrets.token_hex(STUDENT_TOKEN_BYTES),
            token_expiry=_now() + STUDENT_REQUEST_TTL,
        ),
    )
    logger.info(
        f"Student-initiated relationship staged: id={relationship.id}, "
        f"parent_created={parent_created}"
    )

    return StudentInitiatedResult(
        relationship=relationship,
        student=student,
        parent=parent,
        parent_created=parent_created,
        temporary_password=temporary_password,
    )


async def notify_student_initiated_parent(result: StudentInitiatedResult) -> bool:
    """Email the parent named during student registration. Call after commit."""
    common = {
        "to_email": result.parent.email,
        "parent_first_name": result.parent.first_name,
        "student_name": display_name(result.student),
        "token": result.verification_token,
        "expires_in": STUDENT_TTL_LABEL,
    }
    if result.parent_created:
        return await _send_best_effort(
            send_parent_account_created,
            temporary_password=result.temporary_password,
            **common,
        )
    return await _send_best_effort(send_student_link_verification, **common)


# ============================================
# Verification
# ============================================


async def verify_relationship(db: AsyncSession, token: str) -> ParentStudentRelationship:
    """
    Mark the relationship behind ``token`` as verified.

    Raises:
        InvalidOrExpiredTokenError: token unknown or expired (nothing changes)
        RelationshipNotFoundError: token vanished between checks
        RelationshipAlreadyFinalizedError: already verified or rejected
    """
    return await _transition(db, token, RelationshipStatus.VERIFIED)


async def reject_relationship(db: AsyncSession, token: str) -> ParentStudentRelationship:
    """Mark the relationship behind ``token`` as rejected. Raises as verify does."""
    return await _transition(db, token, RelationshipStatus.REJECTED)


async def register_parent_and_verify(
    db: AsyncSession,
    token: str,
    email: str,
    password: str,
    first_name: str,
    last_name: str,
    phone_number: str | None = None,
) -> tuple[User, ParentStudentRelationship]:
    """
    Create a parent account and verify the relationship in one commit.

    Raises:
        EmailAlreadyRegisteredError: the email already has an account
        RelationshipNotFoundError: no relationship carries ``token``
        InvalidOrExpiredTokenError: the token has expired
        RelationshipAlreadyFinalizedError: already verified or rejected
        RelationshipAlreadyBoundError: a parent account already owns the row
    """
    if await UserRepository.email_exists(db, email):
        raise EmailAlreadyRegisteredError()

    relationship = await repository.get_by_token(db, token)
    if relationship is None:
        raise RelationshipNotFoundError("Relationship not found or token is invalid")

    if not await repository.is_token_valid(db, token):
        raise InvalidOrExpiredTokenError()

    try:
        validate_transition(relationship.status, RelationshipStatus.VERIFIED)
    except InvalidStatusTransitionError as e:
        raise RelationshipAlreadyFinalizedError(relationship.status) from e

    # Only email-only rows can be claimed by a new account
    if relationship.parent_id is not None:
        raise RelationshipAlreadyBoundError()

    # Following the emailed link proves ownership of the invited address
    invited = relationship.parent_email or ""
    parent = await UserRepository.create(
        db,
        email=email,
        password_hash=hash_password(password),
        first_name=first_name,
        last_name=last_name,
        role=UserRole.PARENT,
        phone_number=phone_number,
        email_verified=invited.lower() == email.lower(),
    )
    await repository.assign_parent(db, relationship, parent.id)

    # Commits the new account together with the relationship change
    verified = await repository.update_status(db, relationship.id, RelationshipStatus.VERIFIED)
    if verified is None:
        raise RelationshipNotFoundError()

    logger.info(f"Parent {parent.id} registered and verified relationship {verified.id}")
    return parent, verified


# ============================================
# Queries
# ============================================


async def get_relationship_by_token(
    db: AsyncSession, token: str
) -> RelationshipWithStudent | None:
    """Relationship plus student summary, or None if either is missing."""
    relationship = await repository.get_by_token(db, token)
    if relationship is None:
        return None

    student = await UserRepository.get_by_id(db, relationship.student_id)
    if student is None:
        return None

    return RelationshipWithStudent(
        relationship=relationship_response(relationship),
        student=student_summary(student),
    )


async def get_children(db: AsyncSession, parent_id: str) -> list[ChildResponse]:
    """Verified children of a parent; rows whose student vanished are skipped."""
    children = []
    for relationship in await repository.get_verified_children(db, parent_id):
        student = await UserRepository.get_by_id(db, relationship.student_id)
        if student is None:
            logger.warning(f"Relationship {relationship.id} points at a missing student")
            continue
        children.append(
            ChildResponse(
                relationship_id=str(relationship.id),
                relationship_type=relationship.relationship_type,
                student=student_summary(student),
            )
        )
    return children


async def has_verified_relationship(db: AsyncSession, parent_id: str, student_id: str) -> bool:
    """True if ``student_id`` is among the parent's verified children."""
    children = await repository.get_verified_children(db, parent_id)
    return any(str(child.student_id) == str(student_id) for child in children)


async def get_pending_relationships(
    db: AsyncSession, parent_id: str
) -> list[PendingRelationshipResponse]:
    """
    Relationships awaiting this parent's decision.

    Unions rows bound to the parent's id (status pending) with rows still
    keyed by the parent's email (status pending_parent_registration), without
    duplicates.

    Raises:
        ParentNotFoundError: If the parent account does not exist
    """
    parent = await UserRepository.get_by_id(db, parent_id)
    if parent is None:
        raise ParentNotFoundError()

    by_id = await repository.get_by_parent_id(db, parent_id, RelationshipStatus.PENDING)
    by_email = await repository.get_by_parent_email(
        db, parent.email, RelationshipStatus.PENDING_PARENT_REGISTRATION
    )

    pending = []
    for relationship in unique_by_id([*by_id, *by_email]):
        student = await UserRepository.get_by_id(db, relationship.student_id)
        if student is None:
            continue
        pending.append(
            PendingRelationshipResponse(
                id=str(relationship.id),
                student_id=str(student.id),
                student_name=display_name(student),
                student_email=student.email,
                relationship_type=relationship.relationship_type,
                created_at=relationship.created_at,
                status=relationship.status,
            )
        )
    return pending


# ============================================
# Resend
# ============================================


async def _is_party_to(
    db: AsyncSession, relationship: ParentStudentRelationship, user_id: str
) -> bool:
    if str(relationship.student_id) == str(user_id):
        return True
    if relationship.parent_id and str(relationship.parent_id) == str(user_id):
        return True
    if relationship.parent_email:
        user = await UserRepository.get_by_id(db, user_id)
        return user is not None and user.email.lower() == relationship.parent_email.lower()
    return False


async def resend_verification_email(
    db: AsyncSession,
    relationship_id: str,
    requester_id: str | None = None,
) -> ParentStudentRelationship:
    """
    Issue a fresh token (valid 7 days) and resend the verification email.

    Args:
        db: Database session
        relationship_id: Relationship to resend for
        requester_id: When given, the caller must be the student or the parent
            side of the relationship; otherwise it is reported as not found

    Raises:
        RelationshipNotFoundError: unknown id, or not the caller's relationship
        AlreadyVerifiedError: already verified (the token is left unchanged)
        RelationshipAlreadyFinalizedError: already rejected
    """
    relationship = await repository.get_by_id(db, relationship_id)
    if relationship is None:
        raise RelationshipNotFoundError()

    if requester_id is not None and not await _is_party_to(db, relationship, requester_id):
        logger.warning(f"User {requester_id} tried to resend for relationship {relationship_id}")
        raise RelationshipNotFoundError()

    if relationship.status == RelationshipStatus.VERIFIED:
        raise AlreadyVerifiedError()
    if relationship.status == RelationshipStatus.REJECTED:
        raise RelationshipAlreadyFinalizedError(relationship.status)

    updated = await repository.update_verification_token(db, relationship.id)
    if updated is None:
        raise RelationshipNotFoundError()

    student = await UserRepository.get_by_id(db, updated.student_id)
    student_name = display_name(student) if student else "your student"

    if updated.parent_id:
        parent = await UserRepository.get_by_id(db, updated.parent_id)
        if parent is not None:
            await _send_best_effort(
                send_relationship_verification,
                to_email=parent.email,
                parent_first_name=parent.first_name,
                student_name=student_name,
                relationship_type=updated.relationship_type.value,
                token=updated.verification_token,
                expires_in=RESEND_TTL_LABEL,
            )
    elif updated.parent_email:
        await _send_best_effort(
            send_parent_invitation,
            to_email=updated.parent_email,
            parent_first_name=updated.parent_first_name,
            student_name=student_name,
            token=updated.verification_token,
            expires_in=RESEND_TTL_LABEL,
        )

    logger.info(f"Verification resent for relationship {updated.id}")
    return updated
