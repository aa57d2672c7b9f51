from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession

from mat_program.models.notification import Notification
from mat_program.services.audit import to_jsonable
from mat_program.worker import dispatch

logger = logging.getLogger(__name__)

_PENDING_KEY = "mat_pending_notifications"


def _notifiable_type(obj: Any) -> str | None:
    table = getattr(obj, "__tablename__", None)
    if table is None:
        return None
    return table[:-1] if table.endswith("s") else table


def _flush_pending_after_commit(sync_session) -> None:
    pending = sync_session.info.pop(_PENDING_KEY, [])
    for notification_id, _ in pending:
        dispatch.enqueue_notification_delivery(notification_id=notification_id)


def _within(transaction, ancestor) -> bool:
    while transaction is not None:
        if transaction is ancestor:
            return True
        transaction = transaction.parent
    return False


def _drop_pending_after_rollback(sync_session, previous_transaction) -> None:
    """Forget deliveries whose rows were rolled back.

    A SAVEPOINT rollback only discards notifications scheduled inside it; the
    rest still go out when the outer transaction commits.
    """

    if not previous_transaction.nested:
        sync_session.info.pop(_PENDING_KEY, None)
        return

    pending = sync_session.info.get(_PENDING_KEY)
    if pending:
        pending[:] = [item for item in pending if not _within(item[1], previous_transaction)]


class NotificationService:
    """Persist a notification and hand it to the worker once the transaction commits.

    Fire-and-forget: nothing here raises into the calling workflow.
    """

    @staticmethod
    async def create_and_deliver(
        session: AsyncSession,
        *,
        type: str,
        recipient,
        actor=None,
        notifiable=None,
        metadata: dict[str, Any] | None = None,
        channel: str = "email",
    ) -> Notification | None:
        if recipient is None:
            logger.error(
                "[NOTIFICATION_MISSING_RECIPIENT] type=%s notifiable_id=%s",
                type,
                getattr(notifiable, "id", None),
            )
            return None

        notification = Notification(
            recipient_id=recipient.id,
            actor_id=getattr(actor, "id", None),
            notifiable_type=_notifiable_type(notifiable),
            notifiable_id=getattr(notifiable, "id", None),
            action=type,
            channel=channel,
            delivery_status="pending",
            meta=to_jsonable(metadata or {}),
        )

        try:
            async with session.begin_nested():
                session.add(notification)
        except Exception:
            logger.exception("notification_create_failed type=%s recipient_id=%s", type, recipient.id)
            return None

        _schedule_delivery(session, notification)
        return notification

    @staticmethod
    async def notify_medical_provider(
        session: AsyncSession,
        *,
        type: str,
        application,
        actor=None,
        metadata: dict[str, Any] | None = None,
    ) -> Notification | None:
        """Providers are not users; their contact details travel in the metadata.

        Fax is preferred when a fax number is on file.
        """

        if not (application.medical_provider_email or application.medical_provider_fax):
            logger.warning(
                "medical provider has no contact details application_id=%s type=%s",
                application.id,
                type,
            )
            return None

        channel = "fax" if application.medical_provider_fax else "email"
        notification = Notification(
            recipient_id=None,
            actor_id=getattr(actor, "id", None),
            notifiable_type="application",
            notifiable_id=application.id,
            action=type,
            channel=channel,
            delivery_status="pending",
            meta=to_jsonable(
                {
                    "provider_name": application.medical_provider_name,
                    "provider_email": application.medical_provider_email,
                    "provider_fax": application.medical_provider_fax,
                    **(metadata or {}),
                }
            ),
        )

        try:
            async with session.begin_nested():
                session.add(notification)
        except Exception:
            logger.exception("provider_notification_create_failed type=%s application_id=%s", type, application.id)
            return None

        _schedule_delivery(session, notification)
        return notification


def _schedule_delivery(session: AsyncSession, notification: Notification) -> None:
    sync_session = session.sync_session
    pending = sync_session.info.setdefault(_PENDING_KEY, [])
    # Remember the innermost open savepoint so its rollback can drop this entry.
    pending.append((notification.id, sync_session.get_nested_transaction() or sync_session.get_transaction()))

    if not event.contains(sync_session, "after_commit", _flush_pending_after_commit):
        event.listen(sync_session, "after_commit", _flush_pending_after_commit)
        event.listen(sync_session, "after_soft_rollback", _drop_pending_after_rollback)
