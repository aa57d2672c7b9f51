from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from mat_program.crud.base import BaseCRUD
from mat_program.models.guardian_relationship import GuardianRelationship
from mat_program.models.user import SYSTEM_USER_EMAIL, User

users = BaseCRUD(User, case_insensitive=("email",))
guardian_relationships = BaseCRUD(GuardianRelationship)


async def get_system_user(session: AsyncSession) -> User:
    """Return the actor used for provider/webhook driven changes, creating it on first use."""

    user = await users.find_one(session, email=SYSTEM_USER_EMAIL)
    if user is None:
        user = await users.create(
            session,
            obj_in={"email": SYSTEM_USER_EMAIL, "first_name": "System", "last_name": "User", "role": "system"},
        )
    return user


async def list_admins(session: AsyncSession) -> list[User]:
    res = await session.execute(select(User).where(User.role == "admin", User.is_active.is_(True)))
    return list(res.scalars().all())


async def get_guardian_relationship(
    session: AsyncSession,
    *,
    guardian_id: UUID,
    dependent_id: UUID,
) -> GuardianRelationship | None:
    return await guardian_relationships.find_one(session, guardian_id=guardian_id, dependent_id=dependent_id)


async def find_guardian_for_dependent(session: AsyncSession, *, dependent_id: UUID) -> GuardianRelationship | None:
    stmt = (
        select(GuardianRelationship)
        .where(GuardianRelationship.dependent_id == dependent_id)
        .order_by(GuardianRelationship.created_at.asc())
        .limit(1)
    )
    res = await session.execute(stmt)
    return res.scalar_one_or_none()
