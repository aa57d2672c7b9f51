from datetime import datetime, timedelta, timezone

import pytest

from mat_program.crud.policy import set_policy_value
from mat_program.models import GuardianRelationship
from mat_program.models.base import utcnow
from mat_program.services.intake import add_years, clean_attrs, create_application

COMPLETE = {
    "household_size": 2,
    "annual_income": 30000,
    "medical_provider_name": "Dr. Rivera",
    "medical_provider_phone": "410-555-0100",
    "medical_provider_email": "rivera@clinic.example",
}


def test_add_years_handles_leap_day():
    leap = datetime(2024, 2, 29, 12, 0, tzinfo=timezone.utc)
    assert add_years(leap, 3) == datetime(2027, 2, 28, 12, 0, tzinfo=timezone.utc)
    assert add_years(leap, 4) == datetime(2028, 2, 29, 12, 0, tzinfo=timezone.utc)


def test_clean_attrs_parses_numbers_and_drops_unknown_fields():
    data = clean_attrs({"household_size": "3", "annual_income": "45,000.50", "status": "approved"})
    assert data == {"household_size": 3, "annual_income": 45000}

    with pytest.raises(ValueError):
        clean_attrs({"annual_income": "lots"})


@pytest.mark.anyio
async def test_create_draft_application(session, constituent):
    result = await create_application(session, user=constituent, attrs={"household_size": 1})
    await session.commit()

    assert result.ok, result.message
    app = result.data
    assert app.status == "draft"
    assert app.submission_method == "online"
    assert app.household_size == 1


@pytest.mark.anyio
async def test_waiting_period_blocks_recent_applicants(session, constituent, make_application):
    await make_application(constituent, status="archived", application_date=utcnow() - timedelta(days=365))

    result = await create_application(session, user=constituent, attrs=COMPLETE, status="in_progress")

    assert not result.ok
    assert result.message == "You must wait 3 years before submitting a new application."


@pytest.mark.anyio
async def test_waiting_period_elapsed(session, constituent, make_application):
    await make_application(constituent, status="archived", application_date=utcnow() - timedelta(days=4 * 365))

    result = await create_application(session, user=constituent, attrs=COMPLETE, status="in_progress")

    assert result.ok, result.message
    assert result.data.status == "in_progress"


@pytest.mark.anyio
async def test_waiting_period_follows_policy(session, constituent, make_application):
    await set_policy_value(session, "waiting_period_years", 1)
    await make_application(constituent, status="archived", application_date=utcnow() - timedelta(days=400))

    result = await create_application(session, user=constituent, attrs=COMPLETE, status="in_progress")

    assert result.ok, result.message


@pytest.mark.anyio
async def test_waiting_period_can_be_skipped(session, constituent, make_application):
    await make_application(constituent, status="rejected", application_date=utcnow() - timedelta(days=30))

    result = await create_application(
        session, user=constituent, attrs=COMPLETE, status="in_progress", skip_waiting_period=True
    )

    assert result.ok, result.message


@pytest.mark.anyio
async def test_active_application_blocks_a_second_one(session, constituent, make_application):
    await make_application(constituent, status="needs_information", application_date=utcnow() - timedelta(days=5 * 365))

    result = await create_application(session, user=constituent, attrs=COMPLETE)

    assert not result.ok
    assert result.message == "This constituent already has an active or pending application."


@pytest.mark.anyio
async def test_online_submission_requires_fields(session, constituent):
    result = await create_application(
        session, user=constituent, attrs={"household_size": 2}, status="in_progress"
    )

    assert not result.ok
    assert result.data["missing"] == [
        "annual_income",
        "medical_provider_name",
        "medical_provider_phone",
        "medical_provider_email",
    ]


@pytest.mark.anyio
async def test_guardian_is_set_from_relationship(session, make_user):
    guardian = await make_user(first_name="Gale")
    dependent = await make_user(first_name="Dana")
    session.add(GuardianRelationship(guardian_id=guardian.id, dependent_id=dependent.id, relationship_type="Parent"))
    await session.commit()

    result = await create_application(session, user=dependent, attrs={})

    assert result.ok, result.message
    assert result.data.managing_guardian_id == guardian.id
    assert result.data.for_dependent


@pytest.mark.anyio
async def test_dependent_active_application_message(session, make_user, make_application):
    guardian = await make_user()
    dependent = await make_user()
    session.add(GuardianRelationship(guardian_id=guardian.id, dependent_id=dependent.id, relationship_type="Parent"))
    await session.commit()
    await make_application(dependent, application_date=utcnow() - timedelta(days=5 * 365))

    result = await create_application(session, user=dependent, attrs={})

    assert not result.ok
    assert result.message == "This dependent already has an active or pending application."


@pytest.mark.anyio
async def test_create_application_endpoint(client, session, constituent):
    r = await client.post(
        "/api/v1/applications",
        json={**COMPLETE, "submit": True},
        headers={"X-User-ID": str(constituent.id)},
    )
    assert r.status_code == 201, r.text

    body = r.json()
    assert body["status"] == "in_progress"
    assert body["user_id"] == str(constituent.id)

    r = await client.post(
        "/api/v1/applications",
        json={**COMPLETE, "submit": True, "skip_waiting_period": True},
        headers={"X-User-ID": str(constituent.id)},
    )
    assert r.status_code == 403

    r = await client.post("/api/v1/applications", json=COMPLETE, headers={"X-User-ID": str(constituent.id)})
    assert r.status_code == 422
    assert r.json()["detail"] == "You must wait 3 years before submitting a new application."
