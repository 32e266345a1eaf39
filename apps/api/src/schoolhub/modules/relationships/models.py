"""
Parent Relationship Models

A relationship links a student to a parent, either by account (parent_id) or,
before the parent has registered, by email identity (parent_email plus names).
"""

import enum
from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, Index, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from schoolhub.modules.shared import BaseModel


class RelationshipType(str, enum.Enum):
    """How the parent side relates to the student."""

    PARENT = "parent"
    GUARDIAN = "guardian"
    OTHER = "other"


class RelationshipStatus(str, enum.Enum):
    """Verification status of a relationship."""

    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"
    PENDING_PARENT_REGISTRATION = "pending_parent_registration"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class ParentStudentRelationship(BaseModel):
    """
    Parent-student relationship awaiting or holding verification.

    Tokens are stored in plain text: the token itself is the lookup key for
    the public verify/reject endpoints.
    """

    __tablename__ = "parent_relationships"

    # ON DELETE SET NULL: the relationship survives, keyed by email again
    parent_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    student_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    relationship_type: Mapped[RelationshipType] = mapped_column(
        Enum(RelationshipType, name="relationship_type", values_callable=_enum_values),
        nullable=False,
        default=RelationshipType.PARENT,
    )
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[RelationshipStatus] = mapped_column(
        Enum(RelationshipStatus, name="relationship_status", values_callable=_enum_values),
        nullable=False,
        default=RelationshipStatus.PENDING,
    )

    verification_token: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    token_expiry: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Prospective parent identity, only set while parent_id is empty
    parent_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    parent_first_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    parent_last_name: Mapped[str | None] = mapped_column(String(100), nullable=True)

    __table_args__ = (
        Index("ix_parent_relationships_parent_id", "parent_id"),
        Index("ix_parent_relationships_student_id", "student_id"),
        Index("ix_parent_relationships_parent_email", "parent_email"),
        Index("ix_parent_relationships_status", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<ParentStudentRelationship(id={self.id}, student_id={self.student_id}, "
            f"status={self.status.value})>"
        )
