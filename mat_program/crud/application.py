from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from mat_program.domain.statuses import INACTIVE_STATUSES
from mat_program.models.application import Application
from mat_program.models.application_status_change import ApplicationStatusChange
from mat_program.models.audit_log import AuditLog


async def get_application(
    session: AsyncSession,
    *,
    application_id,
    for_update: bool = False,
) -> Application | None:
    stmt = select(Application).where(Application.id == application_id)
    if for_update:
        # Row lock on PostgreSQL; SQLite ignores FOR UPDATE.
        stmt = stmt.with_for_update()
        stmt = stmt.execution_options(populate_existing=True)

    res = await session.execute(stmt)
    return res.scalar_one_or_none()


async def find_by_signing_submission(
    session: AsyncSession,
    *,
    submission_id: str | None,
    service: str = "docuseal",
    for_update: bool = False,
) -> Application | None:
    if not submission_id:
        return None

    stmt = select(Application).where(
        Application.document_signing_submission_id == str(submission_id),
        Application.document_signing_service == service,
    )
    if for_update:
        # Serialises replayed deliveries of the same provider event.
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    res = await session.execute(stmt.limit(1))
    return res.scalar_one_or_none()


async def latest_application_for_user(
    session: AsyncSession,
    *,
    user_id: UUID,
    exclude_id: UUID | None = None,
) -> Application | None:
    stmt = select(Application).where(Application.user_id == user_id)
    if exclude_id is not None:
        stmt = stmt.where(Application.id != exclude_id)

    stmt = stmt.order_by(Application.application_date.desc()).limit(1)
    res = await session.execute(stmt)
    return res.scalar_one_or_none()


async def has_active_application(session: AsyncSession, *, user_id: UUID) -> bool:
    inactive = [s.value for s in INACTIVE_STATUSES]
    stmt = select(Application.id).where(Application.user_id == user_id, Application.status.not_in(inactive))
    res = await session.execute(stmt.limit(1))
    return res.first() is not None


async def list_status_changes(session: AsyncSession, *, application_id: UUID) -> list[ApplicationStatusChange]:
    stmt = (
        select(ApplicationStatusChange)
        .where(ApplicationStatusChange.application_id == application_id)
        .order_by(ApplicationStatusChange.changed_at.asc())
    )
    res = await session.execute(stmt)
    return list(res.scalars().all())


async def list_audit_events(
    session: AsyncSession,
    *,
    entity_id: UUID,
    action: str | None = None,
    limit: int = 100,
) -> list[AuditLog]:
    """Return audit events for an application (newest first)."""

    stmt = select(AuditLog).where(AuditLog.entity_type == "application", AuditLog.entity_id == entity_id)
    if action is not None:
        stmt = stmt.where(AuditLog.action == action)

    stmt = stmt.order_by(AuditLog.created_at.desc()).limit(limit)
    res = await session.execute(stmt)
    return list(res.scalars().all())
