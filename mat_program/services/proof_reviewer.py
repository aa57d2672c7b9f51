from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from mat_program.domain.context import ONLINE, SubmissionContext
from mat_program.domain.statuses import (
    ApplicationStatus,
    MedicalCertificationStatus,
    ProofStatus,
    ReviewStatus,
    can_transition_proof,
)
from mat_program.models.application import Application
from mat_program.models.user import User
from mat_program.services.audit import AuditEventService
from mat_program.services.notifications import NotificationService
from mat_program.services.proof_attachment import (
    enforce_max_rejections,
    remaining_attempts,
    resolve_rejection_text,
    upsert_review,
)
from mat_program.services.result import Failure, ServiceResult, Success
from mat_program.services.status import ApplicationStatusService, record_dimension_change, status_service
from mat_program.services.storage import storage

logger = logging.getLogger(__name__)

REVIEWABLE_TYPES = ("income", "residency", "medical_certification")


class ProofReviewer:
    """Admin review of a single proof on an application."""

    def __init__(
        self,
        application: Application,
        admin,
        *,
        context: SubmissionContext = ONLINE,
        statuses: ApplicationStatusService | None = None,
    ) -> None:
        self.application = application
        self.admin = admin
        self.context = context
        self.statuses = statuses or status_service

    async def review(
        self,
        session: AsyncSession,
        *,
        proof_type: str,
        status: ReviewStatus | str,
        rejection_reason: str | None = None,
        rejection_reason_code: str | None = None,
        notes: str | None = None,
    ) -> ServiceResult:
        app = self.application
        proof_type = str(getattr(proof_type, "value", proof_type))
        if proof_type not in REVIEWABLE_TYPES:
            return Failure(f"Unknown proof type: {proof_type}")

        try:
            decision = ReviewStatus(status)
        except ValueError:
            return Failure(f"Unknown review status: {status}")

        if decision == ReviewStatus.REJECTED and app.status == ApplicationStatus.APPROVED.value:
            return Failure("Proofs of an approved application cannot be rejected")

        blob_id = app.proof_blob_id(proof_type)
        if decision == ReviewStatus.APPROVED and blob_id is None:
            return Failure(f"Please upload a file for {proof_type} proof before approving")

        if proof_type != "medical_certification":
            current = ProofStatus(app.proof_status(proof_type))
            target = ProofStatus(decision.value)
            if current != target and not can_transition_proof(current, target):
                return Failure(f"Invalid {proof_type} proof transition: {current.value} -> {target.value}")

        text = code = None
        if decision == ReviewStatus.REJECTED:
            text, code = await resolve_rejection_text(
                session,
                code=rejection_reason_code,
                proof_type=proof_type,
                fallback=rejection_reason,
            )
            if not text:
                return Failure("A rejection reason is required")

        method = self.context.submission_method.value
        review = await upsert_review(
            session,
            application=app,
            proof_type=proof_type,
            status=decision,
            admin=self.admin,
            rejection_reason=text,
            rejection_reason_code=code,
            notes=notes,
            submission_method=method,
        )

        previous = app.proof_status(proof_type)
        self._apply_status(proof_type, decision, text, code)
        await session.flush()
        await record_dimension_change(
            session,
            app,
            change_type="medical_certification" if proof_type == "medical_certification" else "proof",
            from_status=previous,
            to_status=app.proof_status(proof_type),
            actor=self.admin,
            notes=notes,
            metadata={"proof_type": proof_type},
        )

        if decision == ReviewStatus.REJECTED and blob_id is not None:
            # The rejected file is not kept; constituents upload a new one.
            setattr(app, _blob_attr(proof_type), None)
            await session.flush()
            await self._purge_blob(session, blob_id)

        await AuditEventService.log(
            session,
            action="proof_reviewed",
            actor=self.admin,
            auditable=app,
            metadata={
                "proof_type": proof_type,
                "status": decision.value,
                "rejection_reason": text,
                "rejection_reason_code": code,
                "review_id": review.id,
            },
            request_id=self.context.request_id,
        )

        await self._notify(session, review, decision)

        if decision == ReviewStatus.APPROVED:
            await self.statuses.evaluate_auto_approval(session, app, actor=self.admin, context=self.context)
        elif proof_type != "medical_certification":
            await enforce_max_rejections(session, app, actor=self.admin, context=self.context, statuses=self.statuses)

        logger.info(
            "proof reviewed application_id=%s proof_type=%s status=%s",
            app.id,
            proof_type,
            decision.value,
        )
        return Success(review, f"{proof_type} proof {decision.value}")

    def _apply_status(self, proof_type: str, decision: ReviewStatus, text: str | None, code: str | None) -> None:
        app = self.application
        if proof_type == "medical_certification":
            app.medical_certification_status = MedicalCertificationStatus(decision.value).value
            if decision == ReviewStatus.APPROVED:
                app.medical_certification_verified_by_id = getattr(self.admin, "id", None)
                app.medical_certification_rejection_reason = None
                app.medical_certification_rejection_reason_code = None
            else:
                app.medical_certification_rejection_reason = text
                app.medical_certification_rejection_reason_code = code
            return

        setattr(app, f"{proof_type}_proof_status", decision.value)
        app.needs_review_since = None
        if decision == ReviewStatus.REJECTED:
            app.total_rejections = (app.total_rejections or 0) + 1
        elif proof_type == "income":
            app.income_verified_by_id = getattr(self.admin, "id", None)

    async def _purge_blob(self, session: AsyncSession, blob_id) -> None:
        try:
            async with session.begin_nested():
                await storage.purge(session, blob_id)
        except Exception:
            logger.exception("blob_purge_failed application_id=%s blob_id=%s", self.application.id, blob_id)

    async def _notify(self, session: AsyncSession, review, decision: ReviewStatus) -> None:
        app = self.application
        if review.proof_type == "medical_certification":
            if decision == ReviewStatus.REJECTED:
                await NotificationService.notify_medical_provider(
                    session,
                    type="medical_certification_rejected",
                    application=app,
                    actor=self.admin,
                    metadata={"reason": review.rejection_reason},
                )
            return

        constituent = await session.get(User, app.user_id)
        metadata = {"application_id": app.id, "proof_type": review.proof_type}
        if decision == ReviewStatus.REJECTED:
            metadata["rejection_reason"] = review.rejection_reason
            metadata["remaining_attempts"] = await remaining_attempts(session, app)

        await NotificationService.create_and_deliver(
            session,
            type=f"proof_{decision.value}",
            recipient=constituent,
            actor=self.admin,
            notifiable=review,
            metadata=metadata,
            channel=getattr(constituent, "communication_preference", None) or "email",
        )


def _blob_attr(proof_type: str) -> str:
    if proof_type == "medical_certification":
        return "medical_certification_blob_id"
    return f"{proof_type}_proof_blob_id"
