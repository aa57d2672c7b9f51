from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from mat_program.models.notification import Notification


async def find_by_fax_sid(session: AsyncSession, *, fax_sid: str | None) -> Notification | None:
    if not fax_sid:
        return None

    stmt = select(Notification).where(Notification.meta["fax_sid"].as_string() == fax_sid)
    res = await session.execute(stmt.limit(1))
    return res.scalar_one_or_none()


async def latest_for_notifiable(
    session: AsyncSession,
    *,
    notifiable_type: str,
    notifiable_id: UUID,
    action: str | None = None,
) -> Notification | None:
    stmt = select(Notification).where(
        Notification.notifiable_type == notifiable_type,
        Notification.notifiable_id == notifiable_id,
    )
    if action is not None:
        stmt = stmt.where(Notification.action == action)

    res = await session.execute(stmt.order_by(Notification.created_at.desc()).limit(1))
    return res.scalar_one_or_none()
