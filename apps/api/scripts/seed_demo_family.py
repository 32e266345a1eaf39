"""
Seed Demo Family

Creates a demo parent, a demo student and a verified relationship between
them, for local development. Safe to re-run: existing rows are reused.

Usage:
    cd apps/api
    python scripts/seed_demo_family.py
"""

import asyncio
import os
import sys
from pathlib import Path

# Add the src directory to the path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from schoolhub.core.database import async_session_maker, engine
from schoolhub.core.security import hash_password
from schoolhub.modules.relationships import repository as relationships
from schoolhub.modules.relationships.models import RelationshipStatus, RelationshipType
from schoolhub.modules.relationships.schemas import RelationshipCreate
from schoolhub.modules.users.models import UserRole
from schoolhub.modules.users.repository import UserRepository

PARENT_EMAIL = "parent@schoolhub.dev"
STUDENT_EMAIL = "student@schoolhub.dev"
DEMO_PASSWORD = os.getenv("SEED_DEMO_PASSWORD", "ChangeMe123!")


async def _get_or_create(db, email: str, first_name: str, last_name: str, role: UserRole):
    user = await UserRepository.get_by_email(db, email)
    if user:
        print(f"{role.value.title()} already exists: {email} ({user.id})")
        return user

    user = await UserRepository.create(
        db,
        email=email,
        password_hash=hash_password(DEMO_PASSWORD),
        first_name=first_name,
        last_name=last_name,
        role=role,
        email_verified=True,
    )
    print(f"{role.value.title()} created: {email} ({user.id})")
    return user


async def seed_demo_family() -> None:
    """Create the demo parent, student and verified relationship."""
    async with async_session_maker() as db:
        parent = await _get_or_create(db, PARENT_EMAIL, "Demo", "Parent", UserRole.PARENT)
        student = await _get_or_create(db, STUDENT_EMAIL, "Demo", "Student", UserRole.STUDENT)
        await db.commit()

        existing = await relationships.find_open_relationship(
            db, student.id, RelationshipType.PARENT, parent_id=parent.id
        )
        if existing:
            print(f"Relationship already exists: {existing.id} ({existing.status.value})")
        else:
            relationship = await relationships.create(
                db,
                RelationshipCreate(
                    student_id=student.id,
                    parent_id=parent.id,
                    relationship_type=RelationshipType.PARENT,
                    status=RelationshipStatus.VERIFIED,
                ),
            )
            print(f"Verified relationship created: {relationship.id}")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(seed_demo_family())
