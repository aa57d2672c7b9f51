from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from mat_program.config import settings
from mat_program.crud.application import has_active_application, latest_application_for_user
from mat_program.crud.policy import get_policy_value
from mat_program.crud.user import find_guardian_for_dependent
from mat_program.domain.context import ONLINE, SubmissionContext
from mat_program.domain.statuses import ApplicationStatus
from mat_program.models.application import Application
from mat_program.models.base import as_utc, utcnow
from mat_program.services.audit import AuditEventService
from mat_program.services.result import Failure, ServiceResult, Success

logger = logging.getLogger(__name__)

APPLICATION_FIELDS = (
    "household_size",
    "annual_income",
    "maryland_resident",
    "self_certify_disability",
    "medical_provider_name",
    "medical_provider_phone",
    "medical_provider_fax",
    "medical_provider_email",
)

# Only checked for online submissions leaving draft.
ONLINE_REQUIRED_FIELDS = (
    "household_size",
    "annual_income",
    "medical_provider_name",
    "medical_provider_phone",
    "medical_provider_email",
)


def add_years(value: datetime, years: int) -> datetime:
    try:
        return value.replace(year=value.year + years)
    except ValueError:
        # Feb 29 -> Feb 28
        return value.replace(year=value.year + years, day=28)


async def waiting_period_years(session: AsyncSession) -> int:
    return int(await get_policy_value(session, "waiting_period_years", settings.waiting_period_years))


async def reapplication_date(session: AsyncSession, *, user_id, exclude_id=None) -> datetime | None:
    """Earliest date the user may apply again, or None when there is no prior application."""

    last = await latest_application_for_user(session, user_id=user_id, exclude_id=exclude_id)
    if last is None:
        return None
    return add_years(as_utc(last.application_date), await waiting_period_years(session))


def clean_attrs(attrs: dict[str, Any] | None) -> dict[str, Any]:
    data = {k: v for k, v in (attrs or {}).items() if k in APPLICATION_FIELDS}
    for key in ("household_size", "annual_income"):
        if data.get(key) not in (None, ""):
            data[key] = int(str(data[key]).replace(",", "").split(".")[0])
        elif key in data:
            data[key] = None
    return data


async def create_application(
    session: AsyncSession,
    *,
    user,
    attrs: dict[str, Any] | None = None,
    status: ApplicationStatus | str = ApplicationStatus.DRAFT,
    managing_guardian=None,
    context: SubmissionContext = ONLINE,
    skip_waiting_period: bool = False,
    audit: bool = True,
) -> ServiceResult:
    try:
        initial = ApplicationStatus(status)
    except ValueError:
        return Failure(f"Unknown application status: {status}")

    try:
        data = clean_attrs(attrs)
    except ValueError:
        return Failure("Household size and annual income must be numbers")

    if not skip_waiting_period:
        eligible_on = await reapplication_date(session, user_id=user.id)
        if eligible_on is not None and eligible_on > utcnow():
            years = await waiting_period_years(session)
            return Failure(f"You must wait {years} years before submitting a new application.")

    guardian_id = getattr(managing_guardian, "id", None)
    if guardian_id is None:
        rel = await find_guardian_for_dependent(session, dependent_id=user.id)
        guardian_id = rel.guardian_id if rel is not None else None

    if await has_active_application(session, user_id=user.id):
        who = "dependent" if guardian_id is not None else "constituent"
        return Failure(f"This {who} already has an active or pending application.")

    if not context.is_paper and initial != ApplicationStatus.DRAFT:
        missing = [f for f in ONLINE_REQUIRED_FIELDS if data.get(f) in (None, "")]
        if missing:
            return Failure(f"Missing required fields: {', '.join(missing)}", data={"missing": missing})

    application = Application(
        user_id=user.id,
        managing_guardian_id=guardian_id,
        status=initial.value,
        submission_method=context.submission_method.value,
        application_date=utcnow(),
        **data,
    )
    session.add(application)
    await session.flush()

    if audit:
        await AuditEventService.log(
            session,
            action="application_created",
            actor=user,
            auditable=application,
            metadata={"submission_method": application.submission_method, "initial_status": initial.value},
            request_id=context.request_id,
        )

    logger.info(
        "application created application_id=%s user_id=%s status=%s method=%s",
        application.id,
        user.id,
        application.status,
        application.submission_method,
    )
    return Success(application, "Application created")
