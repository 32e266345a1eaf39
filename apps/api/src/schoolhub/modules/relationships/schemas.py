"""
Parent Relationship Schemas

Pydantic schemas for request validation and response serialization.
JSON payloads use camelCase keys.
"""

from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Discriminator, EmailStr, Field, Tag

from schoolhub.modules.relationships.models import RelationshipStatus, RelationshipType
from schoolhub.modules.shared import CamelModel

# ============================================
# Internal
# ============================================


class RelationshipCreate(BaseModel):
    """Attributes for inserting a relationship row."""

    student_id: str
    parent_id: str | None = None
    relationship_type: RelationshipType = RelationshipType.PARENT
    description: str = ""
    status: RelationshipStatus = RelationshipStatus.PENDING
    verification_token: str | None = None
    token_expiry: datetime | None = None
    parent_email: str | None = None
    parent_first_name: str | None = None
    parent_last_name: str | None = None

    @property
    def has_pending_identity(self) -> bool:
        """True when the parent side is carried by email identity rather than an account."""
        return self.parent_id is None and any(
            (self.parent_email, self.parent_first_name, self.parent_last_name)
        )


# ============================================
# Requests
# ============================================


class RelationshipRequestById(CamelModel):
    """Request from an authenticated parent naming a student by id."""

    student_id: str = Field(..., min_length=1)
    relationship_type: RelationshipType = RelationshipType.PARENT
    description: str = Field("", max_length=1000)


class RelationshipRequestByEmail(CamelModel):
    """Legacy request naming both sides by email (sent during parent sign-up)."""

    parent_email: EmailStr
    student_email: EmailStr
    relation_type: RelationshipType = RelationshipType.PARENT


def _request_shape(value: Any) -> str:
    if isinstance(value, dict):
        has_emails = value.get("parentEmail") and value.get("studentEmail")
        return "by_email" if has_emails else "by_id"
    return "by_email" if isinstance(value, RelationshipRequestByEmail) else "by_id"


RelationshipRequestBody = Annotated[
    Annotated[RelationshipRequestById, Tag("by_id")]
    | Annotated[RelationshipRequestByEmail, Tag("by_email")],
    Discriminator(_request_shape),
]


class RegisterAndVerifyRequest(CamelModel):
    """Create a parent account and verify the relationship behind ``token``."""

    token: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    phone_number: str | None = Field(None, max_length=20)


class StudentInitiatedRequest(CamelModel):
    """A student naming their parent by email."""

    student_id: str = Field(..., min_length=1)
    parent_email: EmailStr
    parent_first_name: str | None = Field(None, max_length=100)
    parent_last_name: str | None = Field(None, max_length=100)


# ============================================
# Responses
# ============================================


class RelationshipResponse(CamelModel):
    """A relationship as shown to clients (the token is never echoed)."""

    id: str
    parent_id: str | None = None
    student_id: str
    relationship_type: RelationshipType
    description: str = ""
    status: RelationshipStatus
    token_expiry: datetime
    parent_email: str | None = None
    parent_first_name: str | None = None
    parent_last_name: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class StudentSummary(CamelModel):
    id: str
    first_name: str
    last_name: str
    email: str
    grade: str | None = None
    profile_picture: str | None = None


class RelationshipWithStudent(CamelModel):
    relationship: RelationshipResponse
    student: StudentSummary


class ChildResponse(CamelModel):
    relationship_id: str
    relationship_type: RelationshipType
    student: StudentSummary


class PendingRelationshipResponse(CamelModel):
    id: str
    student_id: str
    student_name: str
    student_email: str
    relationship_type: RelationshipType
    created_at: datetime | None = None
    status: RelationshipStatus


class RelationshipRequestResult(CamelModel):
    relationship_id: str
    status: RelationshipStatus


class StudentInitiatedResponse(CamelModel):
    relationship_id: str
    status: Literal["pending_parent_action"] = "pending_parent_action"
    parent_exists: bool


class ParentAccountResponse(CamelModel):
    id: str
    email: str
    first_name: str
    last_name: str
    role: str


class RegisterAndVerifyResponse(CamelModel):
    user: ParentAccountResponse
    relationship: RelationshipResponse


class ResendVerificationResponse(CamelModel):
    relationship_id: str
    token_expiry: datetime
