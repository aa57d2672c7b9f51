from __future__ import annotations

from celery import Celery

from mat_program.config import settings

NOTIFICATIONS_QUEUE = "notifications"
MAINTENANCE_QUEUE = "maintenance"


def make_celery() -> Celery:
    """Celery app for notification delivery, fax email fallback and blob purges.

    The HTTP app only reaches it through `mat_program.worker.dispatch`.
    """

    celery = Celery(
        "mat_program",
        broker=settings.redis_url,
        backend=settings.redis_url,
        include=["mat_program.worker.tasks"],
    )

    celery.conf.update(
        task_serializer="json",
        result_serializer="json",
        accept_content=["json"],
        timezone="UTC",
        enable_utc=True,
        # Tasks are idempotent (they re-check row state), so redelivery is safe.
        task_acks_late=True,
        task_default_queue=NOTIFICATIONS_QUEUE,
        task_routes={
            "mat.deliver_notification": {"queue": NOTIFICATIONS_QUEUE},
            "mat.send_certification_rejected_email": {"queue": NOTIFICATIONS_QUEUE},
            "mat.purge_blob": {"queue": MAINTENANCE_QUEUE},
        },
        result_expires=24 * 3600,
    )

    return celery


celery_app = make_celery()
