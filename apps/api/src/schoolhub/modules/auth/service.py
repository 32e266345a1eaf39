"""
Authentication Service

Registration and login. Registration writes the user and, for a student
naming a parent, the parent account and relationship in one transaction.
"""

import logging
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from schoolhub.core.security import (
    create_access_token,
    create_refresh_token,
    hash_password,
    verify_password,
)
from schoolhub.modules.auth.schemas import RegisterRequest
from schoolhub.modules.relationships import service as relationship_service
from schoolhub.modules.relationships.service import (
    RelationshipServiceError,
    StudentInitiatedResult,
)
from schoolhub.modules.users.models import User, UserRole
from schoolhub.modules.users.repository import UserRepository

logger = logging.getLogger(__name__)

MAX_FAILED_ATTEMPTS = 5


class AuthServiceError(Exception):
    """Base exception for authentication errors."""

    def __init__(self, message: str, error_code: str, status_code: int = 400):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


class EmailAlreadyExistsError(AuthServiceError):
    def __init__(self):
        super().__init__(
            message="An account with this email already exists.",
            error_code="EMAIL_ALREADY_EXISTS",
            status_code=409,
        )


class InvalidCredentialsError(AuthServiceError):
    """Same message whether the email or the password was wrong."""

    def __init__(self):
        super().__init__(
            message="Invalid email or password.",
            error_code="INVALID_CREDENTIALS",
            status_code=401,
        )


class AccountLockedError(AuthServiceError):
    def __init__(self):
        super().__init__(
            message="Your account is locked after too many failed login attempts.",
            error_code="ACCOUNT_LOCKED",
            status_code=403,
        )


class AccountSuspendedError(AuthServiceError):
    def __init__(self):
        super().__init__(
            message="Your account has been suspended.",
            error_code="ACCOUNT_SUSPENDED",
            status_code=403,
        )


@dataclass
class RegistrationResult:
    user: User
    access_token: str
    parent_link: StudentInitiatedResult | None = None


@dataclass
class LoginResult:
    user: User
    access_token: str
    refresh_token: str


def _access_token_for(user: User) -> str:
    return create_access_token(
        subject=str(user.id),
        additional_claims={
            "email": user.email,
            "role": user.role.value,
            "name": f"{user.first_name} {user.last_name}",
        },
    )


async def _link_named_parent(
    db: AsyncSession, student: User, data: RegisterRequest
) -> StudentInitiatedResult | None:
    """Stage the parent link in a savepoint; a failure leaves the student account intact."""
    try:
        async with db.begin_nested():
            return await relationship_service.create_student_initiated_relationship_with_connection(
                db,
                student_id=student.id,
                parent_email=data.parent_email,
                parent_first_name=data.parent_first_name,
                parent_last_name=data.parent_last_name,
            )
    except (RelationshipServiceError, SQLAlchemyError) as e:
        logger.error(f"Could not link parent during registration of {student.id}: {e}")
        return None


async def _request_named_student(db: AsyncSession, parent: User, student_email: str) -> None:
    """Best-effort relationship request for a parent naming a student at sign-up."""
    student = await UserRepository.get_by_email(db, student_email)
    if student is None:
        logger.info(f"Parent {parent.id} named an unknown student email at registration")
        return
    try:
        await relationship_service.create_relationship_request(db, parent.id, student.id)
    except (RelationshipServiceError, SQLAlchemyError) as e:
        logger.error(f"Could not request relationship for parent {parent.id}: {e}")


async def register_user(db: AsyncSession, data: RegisterRequest) -> RegistrationResult:
    """
    Create an account and the relationship it names.

    Raises:
        EmailAlreadyExistsError: If the email is taken
    """
    if await UserRepository.email_exists(db, data.email):
        raise EmailAlreadyExistsError()

    user = await UserRepository.create(
        db,
        email=data.email,
        password_hash=hash_password(data.password),
        first_name=data.first_name,
        last_name=data.last_name,
        role=data.role,
        phone_number=data.phone_number,
    )

    parent_link = None
    if user.role == UserRole.STUDENT and data.parent_email:
        parent_link = await _link_named_parent(db, user, data)

    await db.commit()
    logger.info(f"Registered user {user.id} ({user.role.value})")

    # Emails go out only after the commit
    if parent_link is not None:
        await relationship_service.notify_student_initiated_parent(parent_link)

    if user.role == UserRole.PARENT and data.student_email:
        await _request_named_student(db, user, data.student_email)

    return RegistrationResult(
        user=user,
        access_token=_access_token_for(user),
        parent_link=parent_link,
    )


async def authenticate(db: AsyncSession, email: str, password: str) -> LoginResult:
    """
    Check credentials and issue tokens.

    After MAX_FAILED_ATTEMPTS consecutive failures the account is locked.

    Raises:
        InvalidCredentialsError: Unknown email or wrong password
        AccountLockedError / AccountSuspendedError: Account may not log in
    """
    user = await UserRepository.get_by_email(db, email)
    if user is None:
        logger.warning("Login attempt for unknown email")
        raise InvalidCredentialsError()

    if user.account_suspended:
        raise AccountSuspendedError()
    if user.account_locked:
        raise AccountLockedError()

    if not verify_password(password, user.password_hash):
        await UserRepository.record_failed_login(db, user, MAX_FAILED_ATTEMPTS)
        await db.commit()
        logger.warning(f"Invalid password for user {user.id}")
        raise InvalidCredentialsError()

    await UserRepository.reset_failed_logins(db, user)
    await db.commit()

    logger.info(f"User logged in: {user.id} (role: {user.role.value})")
    return LoginResult(
        user=user,
        access_token=_access_token_for(user),
        refresh_token=create_refresh_token(subject=str(user.id)),
    )
