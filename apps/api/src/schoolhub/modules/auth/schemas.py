"""Authentication schemas."""

from datetime import datetime

from pydantic import EmailStr, Field, field_validator

from schoolhub.modules.shared import CamelModel
from schoolhub.modules.users.models import UserRole


class RegisterRequest(CamelModel):
    """
    Registration request.

    A parent may name a student (``studentEmail``) and a student may name a
    parent (``parentEmail``); the matching relationship is created alongside
    the account.
    """

    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    role: UserRole = UserRole.STUDENT
    phone_number: str | None = Field(None, max_length=20)
    student_email: EmailStr | None = None
    parent_email: EmailStr | None = None
    parent_first_name: str | None = Field(None, max_length=100)
    parent_last_name: str | None = Field(None, max_length=100)

    @field_validator("role")
    @classmethod
    def no_self_service_admin(cls, role: UserRole) -> UserRole:
        if role == UserRole.ADMIN:
            raise ValueError("admin accounts cannot be self-registered")
        return role


class LoginRequest(CamelModel):
    """Login request schema."""

    email: EmailStr
    password: str


class UserResponse(CamelModel):
    """Public view of a user account."""

    id: str
    email: str
    first_name: str
    last_name: str
    role: UserRole
    email_verified: bool
    created_at: datetime | None = None


class ParentLinkSummary(CamelModel):
    """Relationship created for a student's named parent during registration."""

    relationship_id: str
    parent_created: bool


class RegisterResponse(CamelModel):
    user: UserResponse
    access_token: str
    token_type: str = "bearer"
    parent_link: ParentLinkSummary | None = None


class LoginResponse(CamelModel):
    """Login response schema."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    user: UserResponse
