from datetime import timedelta

import pytest
from sqlalchemy import select

from mat_program.models import AuditLog, GuardianRelationship, Notification, User
from mat_program.models.base import utcnow
from mat_program.services.intake import add_years
from mat_program.services.paper_application import PaperApplicationService, calculate_income_threshold

APPLICATION = {
    "household_size": 2,
    "annual_income": "30,000",
    "maryland_resident": True,
    "self_certify_disability": True,
    "medical_provider_name": "Dr. Rivera",
    "medical_provider_phone": "410-555-0100",
    "medical_provider_email": "rivera@clinic.example",
}


def _self_params(**overrides):
    params = {
        "applicant_type": "self",
        "constituent": {"first_name": "Pat", "last_name": "Paper", "email": "pat@example.com"},
        "application": dict(APPLICATION),
    }
    params.update(overrides)
    return params


@pytest.mark.anyio
async def test_income_threshold(session, policies):
    assert await calculate_income_threshold(session, 2) == 81760
    assert await calculate_income_threshold(session, "1") == 60240
    # Households above eight use the eight-person figure.
    assert await calculate_income_threshold(session, 12) == 210880
    assert await calculate_income_threshold(session, 0) is None
    assert await calculate_income_threshold(session, "many") is None


@pytest.mark.anyio
async def test_income_threshold_without_fpl_table(session):
    assert await calculate_income_threshold(session, 2) is None


@pytest.mark.anyio
async def test_create_self_applicant_with_proof_decisions(session, admin, policies, make_blob):
    blob = await make_blob()
    params = _self_params(
        income_proof_action="accept",
        income_proof_signed_id=blob.signed_id,
        residency_proof_action="reject",
        residency_proof_rejection_reason="Lease has expired",
    )

    result = await PaperApplicationService(params, admin).create(session)

    assert result.ok, result.message
    app = result.data
    assert app.submission_method == "paper"
    assert app.status == "awaiting_documents"
    assert app.annual_income == 30000
    assert app.income_proof_status == "approved"
    assert app.income_proof_blob_id == blob.id
    assert app.residency_proof_status == "rejected"
    assert app.total_rejections == 1

    user = await session.get(User, app.user_id)
    assert user.email == "pat@example.com"
    assert user.role == "constituent"

    res = await session.execute(select(Notification).where(Notification.recipient_id == user.id))
    actions = sorted(n.action for n in res.scalars().all())
    assert actions == ["account_created", "proof_rejected"]

    res = await session.execute(select(AuditLog.action).where(AuditLog.entity_id == app.id))
    assert "application_created" in list(res.scalars().all())


@pytest.mark.anyio
async def test_initial_status(admin):
    assert PaperApplicationService({}, admin).initial_status() == "in_progress"
    assert (
        PaperApplicationService({"income_proof_action": "accept", "residency_proof_action": "accept"}, admin).initial_status()
        == "in_progress"
    )
    assert PaperApplicationService({"residency_proof_action": "none"}, admin).initial_status() == "awaiting_documents"
    assert PaperApplicationService({"no_medical_provider_information": True}, admin).initial_status() == "awaiting_documents"


@pytest.mark.anyio
async def test_income_over_threshold_rolls_back(session, admin, policies):
    params = _self_params(application={**APPLICATION, "annual_income": 90000})

    result = await PaperApplicationService(params, admin).create(session)

    assert not result.ok
    assert result.message == "Income exceeds the maximum threshold for the household size."

    res = await session.execute(select(User).where(User.email == "pat@example.com"))
    assert res.scalar_one_or_none() is None


@pytest.mark.anyio
async def test_skip_income_validation(session, admin, policies):
    params = _self_params(application={**APPLICATION, "annual_income": 90000})

    result = await PaperApplicationService(params, admin, skip_income_validation=True).create(session)

    assert result.ok, result.message
    assert result.data.annual_income == 90000


@pytest.mark.anyio
async def test_duplicate_email_is_refused(session, admin, policies, make_user):
    await make_user(email="pat@example.com")

    result = await PaperApplicationService(_self_params(), admin).create(session)

    assert not result.ok
    assert result.message == "Email pat@example.com has already been taken"


@pytest.mark.anyio
async def test_missing_applicant_parameters(session, admin, policies):
    result = await PaperApplicationService({"applicant_type": "dependent", "application": APPLICATION}, admin).create(session)

    assert not result.ok
    assert result.message == "Sufficient constituent or guardian/dependent parameters missing."


@pytest.mark.anyio
async def test_existing_guardian_and_dependent(session, admin, policies, make_user):
    guardian = await make_user(first_name="Gale", last_name="Guardian")
    dependent = await make_user(first_name="Dana", last_name="Dependent")
    guardian_id, dependent_id = guardian.id, dependent.id

    params = {
        "applicant_type": "dependent",
        "guardian_id": str(guardian_id),
        "dependent_id": str(dependent_id),
        "relationship_type": "Parent",
        "constituent": {"dependent_phone": "410-555-0199"},
        "application": APPLICATION,
    }
    result = await PaperApplicationService(params, admin).create(session)

    assert result.ok, result.message
    assert result.data.user_id == dependent_id
    assert result.data.managing_guardian_id == guardian_id

    res = await session.execute(select(GuardianRelationship).where(GuardianRelationship.dependent_id == dependent_id))
    assert res.scalar_one().relationship_type == "Parent"

    refreshed = await session.get(User, dependent_id)
    assert refreshed.phone == "410-555-0199"


@pytest.mark.anyio
async def test_relationship_type_is_required(session, admin, policies, make_user):
    guardian = await make_user()
    dependent = await make_user()
    params = {
        "applicant_type": "dependent",
        "guardian_id": str(guardian.id),
        "dependent_id": str(dependent.id),
        "application": APPLICATION,
    }

    result = await PaperApplicationService(params, admin).create(session)

    assert not result.ok
    assert result.message == "Relationship type required to relate guardian and dependent"


@pytest.mark.anyio
async def test_new_guardian_with_new_dependent(session, admin, policies):
    params = {
        "applicant_type": "dependent",
        "new_guardian_attributes": {"first_name": "Gale", "last_name": "Guardian", "email": "gale@example.com"},
        "constituent": {"first_name": "Dana", "last_name": "Dependent"},
        "relationship_type": "Legal Guardian",
        "application": APPLICATION,
    }

    result = await PaperApplicationService(params, admin).create(session)

    assert result.ok, result.message
    guardian = await session.get(User, result.data.managing_guardian_id)
    assert guardian.email == "gale@example.com"

    res = await session.execute(select(Notification.action).where(Notification.action == "account_created"))
    assert len(list(res.scalars().all())) == 2


@pytest.mark.anyio
async def test_dependent_not_yet_eligible(session, admin, policies, make_user, make_application):
    guardian = await make_user()
    dependent = await make_user()
    previous = await make_application(dependent, status="archived", application_date=utcnow() - timedelta(days=365))
    eligible_on = add_years(previous.application_date, 3)
    params = {
        "applicant_type": "dependent",
        "guardian_id": str(guardian.id),
        "dependent_id": str(dependent.id),
        "relationship_type": "Parent",
        "application": APPLICATION,
    }

    result = await PaperApplicationService(params, admin).create(session)

    assert not result.ok
    assert result.message == f"Dependent is not yet eligible. Reapply after {eligible_on.strftime('%B %d, %Y')}"


@pytest.mark.anyio
async def test_update_records_changes_and_proof_actions(session, admin, constituent, make_application, make_blob):
    app = await make_application(constituent, submission_method="paper")
    blob = await make_blob()
    params = {
        "application": {"household_size": 3, "annual_income": 30000},
        "income_proof_action": "accept",
        "income_proof_signed_id": blob.signed_id,
    }

    result = await PaperApplicationService(params, admin).update(session, app)

    assert result.ok, result.message
    assert app.household_size == 3
    assert app.income_proof_status == "approved"

    res = await session.execute(
        select(AuditLog).where(AuditLog.entity_id == app.id, AuditLog.action == "application_updated")
    )
    audit = res.scalar_one()
    assert audit.meta["updated_attributes"] == ["household_size"]
    assert audit.meta["proof_actions"] == {"income": "accept"}


@pytest.mark.anyio
async def test_paper_application_endpoint(client, admin, policies):
    r = await client.post(
        "/api/v1/paper_applications",
        json={
            "applicant_type": "self",
            "constituent": {"first_name": "Pat", "last_name": "Paper", "email": "pat@example.com"},
            "application": {**APPLICATION, "annual_income": 30000},
        },
        headers={"X-User-ID": str(admin.id)},
    )
    assert r.status_code == 201, r.text
    assert r.json()["submission_method"] == "paper"

    r = await client.post(
        "/api/v1/paper_applications",
        json={
            "applicant_type": "self",
            "constituent": {"first_name": "Sam", "last_name": "Rich", "email": "sam@example.com"},
            "application": {**APPLICATION, "annual_income": 500000},
        },
        headers={"X-User-ID": str(admin.id)},
    )
    assert r.status_code == 422
    assert r.json()["detail"] == "Income exceeds the maximum threshold for the household size."


@pytest.mark.anyio
async def test_paper_application_endpoint_requires_admin(client, constituent):
    r = await client.post(
        "/api/v1/paper_applications",
        json={"applicant_type": "self"},
        headers={"X-User-ID": str(constituent.id)},
    )
    assert r.status_code == 403
