import pytest
from sqlalchemy import select

from mat_program.models import ApplicationStatusChange, AuditLog, Notification
from mat_program.services.status import ApplicationStatusService, status_service


async def _changes(session, app):
    res = await session.execute(
        select(ApplicationStatusChange)
        .where(ApplicationStatusChange.application_id == app.id)
        .order_by(ApplicationStatusChange.changed_at)
    )
    return list(res.scalars().all())


async def _audit_actions(session, app):
    res = await session.execute(select(AuditLog.action).where(AuditLog.entity_id == app.id))
    return list(res.scalars().all())


@pytest.mark.anyio
async def test_transition_records_change_and_audit(session, constituent, admin, make_application):
    app = await make_application(constituent)

    result = await status_service.transition(session, app, "needs_information", actor=admin, notes="Missing page 2")
    await session.commit()

    assert result.ok, result.message
    assert app.status == "needs_information"

    changes = await _changes(session, app)
    assert [(c.from_status, c.to_status, c.change_type) for c in changes] == [
        ("in_progress", "needs_information", "status")
    ]
    assert changes[0].user_id == admin.id
    assert changes[0].notes == "Missing page 2"
    assert "application_status_changed" in await _audit_actions(session, app)


@pytest.mark.anyio
async def test_invalid_transition_is_refused(session, constituent, admin, make_application):
    app = await make_application(constituent, status="archived")

    result = await status_service.transition(session, app, "in_progress", actor=admin)

    assert not result.ok
    assert "Invalid status transition" in result.message
    assert app.status == "archived"
    assert await _changes(session, app) == []


@pytest.mark.anyio
async def test_same_status_is_a_no_op(session, constituent, make_application):
    app = await make_application(constituent)

    result = await status_service.transition(session, app, "in_progress")

    assert result.ok
    assert await _changes(session, app) == []


@pytest.mark.anyio
async def test_approval_requires_every_proof(session, constituent, admin, make_application):
    app = await make_application(constituent, income_proof_status="approved", residency_proof_status="approved")

    result = await status_service.transition(session, app, "approved", actor=admin)

    assert not result.ok
    assert app.status == "in_progress"


@pytest.mark.anyio
async def test_awaiting_documents_requests_medical_certification(session, constituent, admin, make_application):
    app = await make_application(constituent, income_proof_status="approved", residency_proof_status="approved")

    result = await status_service.transition(session, app, "awaiting_documents", actor=admin)
    await session.commit()

    assert result.ok
    assert app.medical_certification_status == "requested"
    assert app.medical_certification_request_count == 1
    assert app.medical_certification_requested_at is not None

    res = await session.execute(select(Notification).where(Notification.notifiable_id == app.id))
    notification = res.scalar_one()
    assert notification.action == "medical_certification_requested"
    assert notification.recipient_id is None
    assert notification.meta["provider_email"] == "rivera@clinic.example"


@pytest.mark.anyio
async def test_awaiting_documents_without_approved_proofs_does_not_request(session, constituent, make_application):
    app = await make_application(constituent, income_proof_status="approved")

    result = await status_service.transition(session, app, "awaiting_documents")

    assert result.ok
    assert app.medical_certification_status == "not_requested"


@pytest.mark.anyio
async def test_failing_hook_does_not_undo_transition(session, constituent, make_application):
    async def broken_hook(session, change):
        raise RuntimeError("boom")

    app = await make_application(constituent)
    service = ApplicationStatusService(hooks=[broken_hook])

    result = await service.transition(session, app, "needs_information")
    await session.commit()

    assert result.ok
    await session.refresh(app)
    assert app.status == "needs_information"


@pytest.mark.anyio
async def test_auto_approval_is_idempotent(session, constituent, admin, make_application):
    app = await make_application(
        constituent,
        status="awaiting_documents",
        income_proof_status="approved",
        residency_proof_status="approved",
        medical_certification_status="approved",
    )

    assert await status_service.evaluate_auto_approval(session, app, actor=admin) is True
    assert await status_service.evaluate_auto_approval(session, app, actor=admin) is False
    await session.commit()

    assert app.status == "approved"
    changes = await _changes(session, app)
    assert [c.to_status for c in changes] == ["approved"]
    assert changes[0].meta == {"auto_approval": True}

    actions = await _audit_actions(session, app)
    assert actions.count("application_auto_approved") == 1


@pytest.mark.anyio
async def test_auto_approval_waits_for_medical_certification(session, constituent, make_application):
    app = await make_application(
        constituent,
        income_proof_status="approved",
        residency_proof_status="approved",
        medical_certification_status="received",
    )

    assert await status_service.evaluate_auto_approval(session, app) is False
    assert app.status == "in_progress"
