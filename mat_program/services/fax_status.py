from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from mat_program.crud.notification import find_by_fax_sid
from mat_program.domain.statuses import (
    FAX_FAILED_PROVIDER_STATUSES,
    FAX_TERMINAL_PROVIDER_STATUSES,
    FaxDeliveryStatus,
)
from mat_program.models.application import Application
from mat_program.models.base import utcnow
from mat_program.models.notification import Notification
from mat_program.models.stored_blob import StoredBlob
from mat_program.worker import dispatch

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FaxStatusOutcome:
    found: bool
    status: str | None = None
    fallback_triggered: bool = False
    purge_requested: bool = False


def delivery_status_for(internal: FaxDeliveryStatus) -> str:
    if internal in {FaxDeliveryStatus.DELIVERED, FaxDeliveryStatus.RECEIVED}:
        return internal.value
    if internal == FaxDeliveryStatus.FAILED:
        return "failed"
    return "sending"


async def update_fax_status(session: AsyncSession, *, fax_sid: str | None, provider_status: str | None) -> FaxStatusOutcome:
    logger.info("Received fax status update fax_sid=%s status=%s", fax_sid, provider_status)

    notification = await find_by_fax_sid(session, fax_sid=fax_sid)
    if notification is None:
        logger.warning("Could not find notification for fax SID: %s", fax_sid)
        return FaxStatusOutcome(found=False)

    status = (provider_status or "").strip().lower()
    internal = FaxDeliveryStatus.from_provider(status)
    notification.meta = {
        **(notification.meta or {}),
        "fax_status": internal.value,
        "fax_status_updated_at": utcnow().isoformat(),
        "fax_status_details": provider_status,
    }
    notification.delivery_status = delivery_status_for(internal)
    await session.flush()

    fallback = purge = False
    if status in FAX_TERMINAL_PROVIDER_STATUSES:
        logger.info("Fax reached terminal status: %s for notification %s", status, notification.id)
        if status in FAX_FAILED_PROVIDER_STATUSES:
            fallback = await trigger_email_fallback(session, notification, status)
        # The provider has already fetched the document once the fax is terminal.
        purge = await purge_fax_blob(session, notification)

    return FaxStatusOutcome(found=True, status=status, fallback_triggered=fallback, purge_requested=purge)


async def trigger_email_fallback(session: AsyncSession, notification: Notification, provider_status: str) -> bool:
    """Queue the certification email once per notification. Best effort."""

    try:
        if (notification.meta or {}).get("email_fallback_sent_at"):
            return False
        if notification.notifiable_type != "application" or notification.notifiable_id is None:
            return False

        application = await session.get(Application, notification.notifiable_id)
        if application is None or not application.medical_provider_email:
            return False

        logger.info(
            "Fax delivery failed with status: %s, triggering email fallback application_id=%s",
            provider_status,
            application.id,
        )
        notification.meta = {
            **(notification.meta or {}),
            "email_fallback_sent_at": utcnow().isoformat(),
            "reason": (notification.meta or {}).get("reason")
            or application.medical_certification_rejection_reason
            or "Not specified",
        }
        await session.flush()
        dispatch.enqueue_certification_rejected_email(notification_id=notification.id)
        return True
    except Exception:
        logger.exception("Failed to trigger email fallback notification_id=%s", notification.id)
        return False


async def purge_fax_blob(session: AsyncSession, notification: Notification) -> bool:
    blob_id = (notification.meta or {}).get("blob_id")
    if not blob_id:
        return False

    try:
        blob = await session.get(StoredBlob, _as_uuid(blob_id))
        if blob is None or blob.is_purged:
            logger.warning("Blob %s not found for purging (may have already been deleted)", blob_id)
            return False

        logger.info("Purging fax blob %s after terminal status for notification %s", blob_id, notification.id)
        dispatch.enqueue_blob_purge(blob_id=blob.id)
        return True
    except Exception:
        logger.exception("Failed to purge fax blob %s", blob_id)
        return False


def _as_uuid(value) -> uuid.UUID:
    return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
