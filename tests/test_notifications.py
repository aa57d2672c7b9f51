import pytest

from mat_program.services.notifications import NotificationService
from mat_program.worker import dispatch


@pytest.fixture
def delivered(monkeypatch):
    ids = []
    monkeypatch.setattr(dispatch, "enqueue_notification_delivery", lambda *, notification_id: ids.append(notification_id))
    return ids


async def _notify(session, recipient):
    return await NotificationService.create_and_deliver(session, type="proof_approved", recipient=recipient)


@pytest.mark.anyio
async def test_delivery_waits_for_commit(session, constituent, delivered):
    notification = await _notify(session, constituent)

    assert delivered == []
    await session.commit()
    assert delivered == [notification.id]


@pytest.mark.anyio
async def test_failed_savepoint_keeps_earlier_deliveries(session, constituent, delivered):
    notification = await _notify(session, constituent)

    with pytest.raises(RuntimeError):
        async with session.begin_nested():
            raise RuntimeError("audit insert failed")
    await session.commit()

    assert delivered == [notification.id]


@pytest.mark.anyio
async def test_rolled_back_savepoint_drops_its_own_deliveries(session, constituent, delivered):
    kept = await _notify(session, constituent)

    with pytest.raises(RuntimeError):
        async with session.begin_nested():
            await _notify(session, constituent)
            raise RuntimeError("step failed")
    await session.commit()

    assert delivered == [kept.id]


@pytest.mark.anyio
async def test_rollback_drops_pending_deliveries(session, constituent, delivered):
    await _notify(session, constituent)
    await session.rollback()
    await session.commit()

    assert delivered == []


@pytest.mark.anyio
async def test_missing_recipient_is_skipped(session, delivered):
    assert await NotificationService.create_and_deliver(session, type="proof_approved", recipient=None) is None
    await session.commit()

    assert delivered == []
