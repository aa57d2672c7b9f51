from __future__ import annotations

import asyncio
import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from mat_program.config import settings
from mat_program.database import build_engine, make_session_factory
from mat_program.models.base import utcnow
from mat_program.models.notification import Notification
from mat_program.services.fax import FaxService, deliver_fax
from mat_program.services.storage import storage
from mat_program.worker.celery_app import celery_app

logger = logging.getLogger(__name__)


async def deliver_notification_async(
    session: AsyncSession, notification_id: UUID, *, fax_service: FaxService | None = None
) -> bool:
    """Hand a notification to its channel and move the delivery state forward.

    Fax notifications are rendered and sent through Twilio; a failed send
    falls back to email. Mail and letter transports sit behind this boundary.
    """

    notification = await session.get(Notification, notification_id)
    if notification is None:
        logger.warning("deliver_notification: notification %s not found", notification_id)
        return False

    if notification.delivery_status not in {"pending", "failed"}:
        return False

    if notification.channel == "fax":
        sent = await deliver_fax(session, notification, fax_service=fax_service)
        await session.commit()
        return sent

    notification.delivery_status = "delivered"
    notification.meta = {**(notification.meta or {}), "delivered_at": utcnow().isoformat()}
    await session.commit()
    logger.info(
        "notification delivered id=%s action=%s channel=%s",
        notification.id,
        notification.action,
        notification.channel,
    )
    return True


async def purge_blob_async(session: AsyncSession, blob_id: UUID) -> bool:
    purged = await storage.purge(session, blob_id)
    if not purged:
        logger.warning("Blob %s not found for purging (may have already been deleted)", blob_id)
        return False

    await session.commit()
    return True


async def send_certification_rejected_email_async(session: AsyncSession, notification_id: UUID) -> bool:
    notification = await session.get(Notification, notification_id)
    if notification is None:
        return False

    notification.meta = {**(notification.meta or {}), "email_fallback_delivered_at": utcnow().isoformat()}
    await session.commit()
    logger.info("Email fallback delivered for notification %s", notification_id)
    return True


def _run(coro_fn, raw_id: str) -> bool:
    async def _inner() -> bool:
        engine = build_engine(settings.database_url, pooled=False)
        try:
            async with make_session_factory(engine)() as session:
                return await coro_fn(session, UUID(raw_id))
        finally:
            await engine.dispose()

    return asyncio.run(_inner())


@celery_app.task(name="mat.deliver_notification")
def deliver_notification(notification_id: str) -> bool:
    return _run(deliver_notification_async, notification_id)


@celery_app.task(name="mat.purge_blob")
def purge_blob(blob_id: str) -> bool:
    return _run(purge_blob_async, blob_id)


@celery_app.task(name="mat.send_certification_rejected_email")
def send_certification_rejected_email(notification_id: str) -> bool:
    return _run(send_certification_rejected_email_async, notification_id)
