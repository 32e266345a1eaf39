"""
User Repository

Database operations for users. Methods flush but never commit, so they can
take part in a caller's transaction (registration creates a user and a
relationship in one commit).
"""

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from schoolhub.modules.users.models import User, UserRole

logger = logging.getLogger(__name__)


class UserRepository:
    """Repository for user database operations."""

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        email: str,
        password_hash: str,
        first_name: str,
        last_name: str,
        role: UserRole,
        phone_number: str | None = None,
        email_verified: bool = False,
    ) -> User:
        """
        Create a new user record.

        Args:
            db: Database session
            email: User's email address (unique, stored lower-cased)
            password_hash: Hashed password
            first_name: User's first name
            last_name: User's last name
            role: User's role
            phone_number: Phone number (optional)
            email_verified: Whether the email is already verified

        Returns:
            Created User instance
        """
        user = User(
            email=email.lower(),
            password_hash=password_hash,
            first_name=first_name,
            last_name=last_name,
            role=role,
            phone_number=phone_number,
            email_verified=email_verified,
            account_locked=False,
            account_suspended=False,
            failed_login_attempts=0,
        )

        db.add(user)
        await db.flush()
        await db.refresh(user)

        logger.info(f"Created user: {user.id} ({user.role.value})")
        return user

    @staticmethod
    async def get_by_id(db: AsyncSession, user_id: str) -> User | None:
        """Get a user by ID, or None if not found."""
        result = await db.execute(select(User).where(User.id == str(user_id)))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_email(db: AsyncSession, email: str) -> User | None:
        """Get a user by email address (case-insensitive), or None if not found."""
        result = await db.execute(select(User).where(func.lower(User.email) == email.lower()))
        return result.scalar_one_or_none()

    @staticmethod
    async def email_exists(db: AsyncSession, email: str) -> bool:
        """Check if an email address is already registered."""
        user = await UserRepository.get_by_email(db, email)
        return user is not None

    @staticmethod
    async def record_failed_login(db: AsyncSession, user: User, max_attempts: int) -> User:
        """
        Count a failed login and lock the account once ``max_attempts`` is reached.

        Returns:
            The updated user
        """
        user.failed_login_attempts += 1
        if user.failed_login_attempts >= max_attempts:
            user.account_locked = True
            logger.warning(f"Account locked after {user.failed_login_attempts} failures: {user.id}")
        await db.flush()
        return user

    @staticmethod
    async def reset_failed_logins(db: AsyncSession, user: User) -> User:
        """Clear the failed-login counter after a successful login."""
        if user.failed_login_attempts:
            user.failed_login_attempts = 0
            await db.flush()
        return user
