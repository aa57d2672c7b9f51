import uuid

import pytest

from mat_program.config import settings
from mat_program.models import Notification, StoredBlob
from mat_program.worker import dispatch, tasks
from mat_program.worker.celery_app import celery_app


def test_dispatch_is_noop_when_disabled(monkeypatch):
    called = []
    monkeypatch.setattr(tasks.deliver_notification, "delay", lambda *args: called.append(args))

    dispatch.enqueue_notification_delivery(notification_id=uuid.uuid4())

    assert called == []


def test_dispatch_sends_task_when_enabled(monkeypatch):
    called = []
    monkeypatch.setattr(settings, "celery_enabled", True)
    monkeypatch.setattr(tasks.purge_blob, "delay", lambda *args: called.append(args))

    blob_id = uuid.uuid4()
    dispatch.enqueue_blob_purge(blob_id=blob_id)

    assert called == [(str(blob_id),)]


def test_dispatch_never_raises(monkeypatch):
    def broken(*args):
        raise ConnectionError("broker down")

    monkeypatch.setattr(settings, "celery_enabled", True)
    monkeypatch.setattr(tasks.send_certification_rejected_email, "delay", broken)

    dispatch.enqueue_certification_rejected_email(notification_id=uuid.uuid4())


@pytest.mark.anyio
async def test_deliver_notification(session, constituent):
    email = Notification(recipient_id=constituent.id, action="proof_approved", channel="email")
    # No application to read a fax number from.
    fax = Notification(action="medical_certification_requested", channel="fax")
    session.add_all([email, fax])
    await session.commit()

    assert await tasks.deliver_notification_async(session, email.id) is True
    assert await tasks.deliver_notification_async(session, fax.id) is False

    assert email.delivery_status == "delivered"
    assert fax.delivery_status == "pending"
    assert "delivered_at" in email.meta

    # Already delivered.
    assert await tasks.deliver_notification_async(session, email.id) is False
    assert await tasks.deliver_notification_async(session, uuid.uuid4()) is False


@pytest.mark.anyio
async def test_purge_blob(session, make_blob):
    blob = await make_blob()

    assert await tasks.purge_blob_async(session, blob.id) is True
    assert await tasks.purge_blob_async(session, blob.id) is False

    purged = await session.get(StoredBlob, blob.id)
    assert purged.data is None
    assert purged.purged_at is not None


@pytest.mark.anyio
async def test_certification_rejected_email(session):
    notification = Notification(action="medical_certification_rejected", channel="fax", meta={"fax_sid": "FX1"})
    session.add(notification)
    await session.commit()

    assert await tasks.send_certification_rejected_email_async(session, notification.id) is True
    assert notification.meta["fax_sid"] == "FX1"
    assert notification.meta["email_fallback_delivered_at"]


def test_purges_run_on_the_maintenance_queue():
    routes = celery_app.conf.task_routes

    assert routes["mat.purge_blob"]["queue"] == "maintenance"
    assert routes["mat.deliver_notification"]["queue"] == "notifications"
    assert celery_app.conf.task_acks_late is True
