from __future__ import annotations

import logging
from uuid import UUID

from mat_program.config import settings

logger = logging.getLogger(__name__)


def _send(task_name: str, *args: str) -> None:
    if not settings.celery_enabled:
        logger.debug("celery disabled; skipping %s args=%s", task_name, args)
        return

    try:
        # Imported lazily so the HTTP app can start without a broker.
        from mat_program.worker import tasks

        getattr(tasks, task_name).delay(*args)
    except Exception:
        logger.exception("Failed to enqueue %s args=%s", task_name, args)


def enqueue_notification_delivery(*, notification_id: UUID) -> None:
    """Hand a persisted notification to the worker for delivery. Never raises."""

    _send("deliver_notification", str(notification_id))


def enqueue_blob_purge(*, blob_id: UUID) -> None:
    _send("purge_blob", str(blob_id))


def enqueue_certification_rejected_email(*, notification_id: UUID) -> None:
    """Email fallback for a medical provider whose fax was not delivered."""

    _send("send_certification_rejected_email", str(notification_id))
