"""
Parent Relationships module - Parent-student linking and email verification.
"""

from schoolhub.modules.relationships.models import (
    ParentStudentRelationship,
    RelationshipStatus,
    RelationshipType,
)
from schoolhub.modules.relationships.router import router

__all__ = [
    "router",
    "ParentStudentRelationship",
    "RelationshipStatus",
    "RelationshipType",
]
