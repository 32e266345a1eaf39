"""
Parent Relationship Helpers

Small conversions shared by the service and the router.
"""

from collections.abc import Iterable

from schoolhub.modules.relationships.models import ParentStudentRelationship
from schoolhub.modules.relationships.schemas import RelationshipResponse, StudentSummary
from schoolhub.modules.users.models import User


def student_summary(student: User) -> StudentSummary:
    """Display fields of a student shown to parents."""
    return StudentSummary(
        id=str(student.id),
        first_name=student.first_name,
        last_name=student.last_name,
        email=student.email,
        grade=student.grade,
        profile_picture=student.profile_picture,
    )


def display_name(user: User) -> str:
    return f"{user.first_name} {user.last_name}".strip()


def relationship_response(relationship: ParentStudentRelationship) -> RelationshipResponse:
    return RelationshipResponse.model_validate(relationship)


def unique_by_id(
    relationships: Iterable[ParentStudentRelationship],
) -> list[ParentStudentRelationship]:
    """Drop repeated rows, keeping the first occurrence of each id."""
    seen: set[str] = set()
    unique = []
    for relationship in relationships:
        key = str(relationship.id)
        if key in seen:
            continue
        seen.add(key)
        unique.append(relationship)
    return unique
