"""Application status transitions.

Every status mutation goes through `ApplicationStatusService.transition`,
which validates the move and then runs an explicit list of hooks (status
change trail, audit event, follow-up requests). Hooks run in the same
transaction, right after the mutation; a failing hook is logged and does not
undo the transition.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from mat_program.domain.context import ONLINE, SubmissionContext
from mat_program.domain.statuses import (
    ApplicationStatus,
    MedicalCertificationStatus,
    ProofStatus,
    TERMINAL_STATUSES,
    all_proofs_approved,
    can_transition,
)
from mat_program.models.application import Application
from mat_program.models.application_status_change import ApplicationStatusChange
from mat_program.models.base import utcnow
from mat_program.services.audit import AuditEventService
from mat_program.services.notifications import NotificationService
from mat_program.services.result import Failure, ServiceResult, Success

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatusChange:
    application: Application
    from_status: str
    to_status: str
    actor: Any = None
    notes: str | None = None
    context: SubmissionContext = ONLINE
    metadata: dict[str, Any] = field(default_factory=dict)


StatusHook = Callable[[AsyncSession, StatusChange], Awaitable[None]]


async def record_status_change(session: AsyncSession, change: StatusChange) -> None:
    async with session.begin_nested():
        session.add(
            ApplicationStatusChange(
                application_id=change.application.id,
                user_id=getattr(change.actor, "id", None),
                change_type="status",
                from_status=change.from_status,
                to_status=change.to_status,
                notes=change.notes,
                meta=dict(change.metadata),
            )
        )


async def audit_status_change(session: AsyncSession, change: StatusChange) -> None:
    await AuditEventService.log(
        session,
        action="application_status_changed",
        actor=change.actor,
        auditable=change.application,
        metadata={
            "application_id": change.application.id,
            "old_status": change.from_status,
            "new_status": change.to_status,
            "submission_method": change.application.submission_method,
            **change.metadata,
        },
        request_id=change.context.request_id,
    )


async def request_medical_certification(session: AsyncSession, change: StatusChange) -> None:
    """Entering awaiting_documents with both proofs approved asks the provider for certification."""

    app = change.application
    if change.to_status != ApplicationStatus.AWAITING_DOCUMENTS.value:
        return
    if app.income_proof_status != ProofStatus.APPROVED.value or app.residency_proof_status != ProofStatus.APPROVED.value:
        return
    if app.medical_certification_status != MedicalCertificationStatus.NOT_REQUESTED.value:
        return

    app.medical_certification_status = MedicalCertificationStatus.REQUESTED.value
    app.medical_certification_requested_at = utcnow()
    app.medical_certification_request_count = (app.medical_certification_request_count or 0) + 1
    await session.flush()

    await NotificationService.notify_medical_provider(
        session,
        type="medical_certification_requested",
        application=app,
        actor=change.actor,
    )


async def record_dimension_change(
    session: AsyncSession,
    application: Application,
    *,
    change_type: str,
    from_status: str | None,
    to_status: str,
    actor=None,
    notes: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> None:
    """Trail entry for a proof or medical certification status move."""

    if from_status == to_status:
        return
    async with session.begin_nested():
        session.add(
            ApplicationStatusChange(
                application_id=application.id,
                user_id=getattr(actor, "id", None),
                change_type=change_type,
                from_status=from_status,
                to_status=to_status,
                notes=notes,
                meta=dict(metadata or {}),
            )
        )


DEFAULT_HOOKS: tuple[StatusHook, ...] = (
    record_status_change,
    audit_status_change,
    request_medical_certification,
)


class ApplicationStatusService:
    def __init__(self, hooks: Sequence[StatusHook] | None = None) -> None:
        self.hooks: list[StatusHook] = list(DEFAULT_HOOKS if hooks is None else hooks)

    async def transition(
        self,
        session: AsyncSession,
        application: Application,
        to_status: ApplicationStatus | str,
        *,
        actor=None,
        notes: str | None = None,
        context: SubmissionContext = ONLINE,
        metadata: dict[str, Any] | None = None,
    ) -> ServiceResult:
        try:
            target = ApplicationStatus(to_status)
        except ValueError:
            return Failure(f"Unknown application status: {to_status}")

        current = ApplicationStatus(application.status)
        if current == target:
            return Success(application, "Status unchanged")

        if not can_transition(current, target):
            return Failure(f"Invalid status transition: {current.value} -> {target.value}")

        if target == ApplicationStatus.APPROVED and not all_proofs_approved(
            application.income_proof_status,
            application.residency_proof_status,
            application.medical_certification_status,
        ):
            return Failure("Application cannot be approved until income, residency and medical certification are approved")

        application.status = target.value
        await session.flush()

        change = StatusChange(
            application=application,
            from_status=current.value,
            to_status=target.value,
            actor=actor,
            notes=notes,
            context=context,
            metadata=dict(metadata or {}),
        )
        await self._run_hooks(session, change)
        return Success(application, f"Status changed to {target.value}")

    async def _run_hooks(self, session: AsyncSession, change: StatusChange) -> None:
        for hook in self.hooks:
            try:
                await hook(session, change)
            except Exception:
                logger.exception(
                    "status_hook_failed hook=%s application_id=%s",
                    getattr(hook, "__name__", hook),
                    change.application.id,
                )

    async def evaluate_auto_approval(
        self,
        session: AsyncSession,
        application: Application,
        *,
        actor=None,
        context: SubmissionContext = ONLINE,
    ) -> bool:
        """Approve once income, residency and medical certification are all approved.

        Safe to call after any proof event; returns False without side effects
        when nothing needs to change.
        """

        if ApplicationStatus(application.status) in TERMINAL_STATUSES:
            return False
        if not all_proofs_approved(
            application.income_proof_status,
            application.residency_proof_status,
            application.medical_certification_status,
        ):
            return False

        previous = application.status
        result = await self.transition(
            session,
            application,
            ApplicationStatus.APPROVED,
            actor=actor,
            notes="Auto-approved based on all requirements being met",
            context=context,
            metadata={"auto_approval": True},
        )
        if not result.ok:
            logger.warning("auto_approval_blocked application_id=%s reason=%s", application.id, result.message)
            return False

        await AuditEventService.log(
            session,
            action="application_auto_approved",
            actor=actor,
            auditable=application,
            metadata={
                "application_id": application.id,
                "old_status": previous,
                "new_status": application.status,
                "auto_approval": True,
                "triggered_by_user_id": getattr(actor, "id", None),
            },
            request_id=context.request_id,
        )
        logger.info("application auto-approved application_id=%s", application.id)
        return True


status_service = ApplicationStatusService()
