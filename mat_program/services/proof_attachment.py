from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from mat_program.config import settings
from mat_program.crud.policy import get_policy_value, resolve_rejection_reason
from mat_program.crud.proof_review import find_current_review
from mat_program.crud.user import list_admins
from mat_program.domain.context import ONLINE, SubmissionContext
from mat_program.domain.statuses import (
    ApplicationStatus,
    MedicalCertificationStatus,
    ProofStatus,
    ReviewStatus,
    can_transition_proof,
)
from mat_program.models.application import Application
from mat_program.models.base import utcnow
from mat_program.models.proof_review import ProofReview
from mat_program.models.user import User
from mat_program.services.audit import AuditEventService
from mat_program.services.notifications import NotificationService
from mat_program.services.result import Failure, ServiceResult, Success
from mat_program.services.status import ApplicationStatusService, status_service
from mat_program.services.storage import BlobStorage, StorageError, has_usable_file, storage

logger = logging.getLogger(__name__)

PROOF_TYPES = ("income", "residency")


async def resolve_rejection_text(
    session: AsyncSession,
    *,
    code: str | None,
    proof_type: str,
    fallback: str | None,
    locale: str = "en",
) -> tuple[str | None, str | None]:
    """Return (text, code) to persist for a rejection.

    An unknown code is dropped and the free-text fallback is kept.
    """

    if not code:
        return (fallback or None), None

    reason = await resolve_rejection_reason(session, code=code, proof_type=proof_type, locale=locale)
    if reason is None:
        return (fallback or None), None
    return reason.body, code


async def upsert_review(
    session: AsyncSession,
    *,
    application: Application,
    proof_type: str,
    status: ReviewStatus,
    admin=None,
    rejection_reason: str | None = None,
    rejection_reason_code: str | None = None,
    notes: str | None = None,
    submission_method: str | None = None,
) -> ProofReview:
    """Create a review row, or refresh the current rejection for this proof type.

    There is at most one current rejected review per (application, proof type).
    """

    review = None
    if status == ReviewStatus.REJECTED:
        review = await find_current_review(
            session,
            application_id=application.id,
            proof_type=proof_type,
            status=ReviewStatus.REJECTED.value,
        )

    if review is None:
        review = ProofReview(
            application_id=application.id,
            proof_type=proof_type,
            status=status.value,
        )
        session.add(review)

    review.admin_id = getattr(admin, "id", None)
    review.notes = notes
    review.submission_method = submission_method
    review.reviewed_at = utcnow()
    if status == ReviewStatus.REJECTED:
        review.rejection_reason = rejection_reason
        review.rejection_reason_code = rejection_reason_code
    else:
        review.rejection_reason = None
        review.rejection_reason_code = None

    await session.flush()
    return review


class ProofAttachmentService:
    """Attach or reject income/residency proofs.

    Storage happens before any status write so that a failed upload leaves the
    application untouched.
    """

    def __init__(
        self,
        *,
        blob_storage: BlobStorage | None = None,
        statuses: ApplicationStatusService | None = None,
    ) -> None:
        self.storage = blob_storage or storage
        self.statuses = statuses or status_service

    async def attach_proof(
        self,
        session: AsyncSession,
        *,
        application: Application,
        proof_type: str,
        blob_or_file: Any,
        status: ProofStatus | str = ProofStatus.NOT_REVIEWED,
        admin=None,
        submission_method: str | None = None,
        metadata: dict[str, Any] | None = None,
        context: SubmissionContext = ONLINE,
        rejection_reason: str | None = None,
        rejection_reason_code: str | None = None,
        notes: str | None = None,
    ) -> ServiceResult:
        proof_type = str(getattr(proof_type, "value", proof_type))
        if proof_type not in PROOF_TYPES:
            return Failure(f"Unknown proof type: {proof_type}")

        try:
            target = ProofStatus(status)
        except ValueError:
            return Failure(f"Unknown proof status: {status}")

        # A rejection needs no file; when one is given it is kept with the rejection.
        if target == ProofStatus.REJECTED:
            return await self._reject(
                session,
                application=application,
                proof_type=proof_type,
                blob_or_file=blob_or_file if has_usable_file(blob_or_file) else None,
                admin=admin,
                reason=rejection_reason,
                reason_code=rejection_reason_code,
                notes=notes,
                submission_method=submission_method,
                metadata=metadata,
                context=context,
            )

        if not has_usable_file(blob_or_file):
            if target == ProofStatus.APPROVED:
                return Failure(f"Please upload a file for {proof_type} proof before approving")
            return Failure(f"No file provided for {proof_type} proof")

        current = ProofStatus(application.proof_status(proof_type))
        if current != target and not can_transition_proof(current, target):
            return Failure(f"Invalid {proof_type} proof transition: {current.value} -> {target.value}")

        try:
            blob = await self.storage.store(
                session,
                blob_or_file,
                filename=f"{proof_type}_proof_{application.id}",
            )
        except StorageError as e:
            logger.error("proof upload failed application_id=%s proof_type=%s: %s", application.id, proof_type, e)
            return Failure(f"Error processing {proof_type} proof: {e}", error=e)

        method = submission_method or context.submission_method.value
        setattr(application, f"{proof_type}_proof_blob_id", blob.id)
        setattr(application, f"{proof_type}_proof_status", target.value)
        if target == ProofStatus.APPROVED:
            application.needs_review_since = None
            if proof_type == "income":
                application.income_verified_by_id = getattr(admin, "id", None)
        elif target == ProofStatus.NOT_REVIEWED:
            application.needs_review_since = utcnow()
        await session.flush()

        if target == ProofStatus.APPROVED:
            await upsert_review(
                session,
                application=application,
                proof_type=proof_type,
                status=ReviewStatus.APPROVED,
                admin=admin,
                submission_method=method,
            )

        await AuditEventService.log(
            session,
            action=f"{proof_type}_proof_attached",
            actor=admin,
            auditable=application,
            metadata={
                "proof_type": proof_type,
                "status": target.value,
                "submission_method": method,
                "blob_id": blob.id,
                "has_attachment": True,
                **(metadata or {}),
            },
            request_id=context.request_id,
        )

        if current != target:
            await self.statuses.evaluate_auto_approval(session, application, actor=admin, context=context)

        return Success({"blob_id": blob.id, "status": target.value}, f"{proof_type} proof attached")

    async def submit_proof(
        self,
        session: AsyncSession,
        *,
        application: Application,
        proof_type: str,
        blob_or_file: Any,
        actor=None,
        context: SubmissionContext = ONLINE,
    ) -> ServiceResult:
        """Constituent (re)submission; puts the proof back in the review queue."""

        result = await self.attach_proof(
            session,
            application=application,
            proof_type=proof_type,
            blob_or_file=blob_or_file,
            status=ProofStatus.NOT_REVIEWED,
            admin=actor,
            context=context,
        )
        if not result.ok:
            return result

        await AuditEventService.log(
            session,
            action=f"{proof_type}_proof_submitted",
            actor=actor,
            auditable=application,
            metadata={"proof_type": proof_type, "submission_method": context.submission_method.value},
            request_id=context.request_id,
        )

        for admin in await list_admins(session):
            await NotificationService.create_and_deliver(
                session,
                type="proof_submitted",
                recipient=admin,
                actor=actor,
                notifiable=application,
                metadata={"proof_types": [proof_type]},
            )
        return result

    async def reject_proof_without_attachment(
        self,
        session: AsyncSession,
        *,
        application: Application,
        proof_type: str,
        admin=None,
        reason: str | None = None,
        reason_code: str | None = None,
        notes: str | None = None,
        submission_method: str | None = None,
        metadata: dict[str, Any] | None = None,
        context: SubmissionContext = ONLINE,
        notify: bool = True,
    ) -> ServiceResult:
        proof_type = str(getattr(proof_type, "value", proof_type))
        if proof_type not in PROOF_TYPES:
            return Failure(f"Unknown proof type: {proof_type}")

        return await self._reject(
            session,
            application=application,
            proof_type=proof_type,
            blob_or_file=None,
            admin=admin,
            reason=reason,
            reason_code=reason_code,
            notes=notes,
            submission_method=submission_method,
            metadata=metadata,
            context=context,
            notify=notify,
        )

    async def _reject(
        self,
        session: AsyncSession,
        *,
        application: Application,
        proof_type: str,
        blob_or_file: Any,
        admin=None,
        reason: str | None = None,
        reason_code: str | None = None,
        notes: str | None = None,
        submission_method: str | None = None,
        metadata: dict[str, Any] | None = None,
        context: SubmissionContext = ONLINE,
        notify: bool = True,
    ) -> ServiceResult:
        if application.status == ApplicationStatus.APPROVED.value:
            return Failure("Proofs of an approved application cannot be rejected")

        current = ProofStatus(application.proof_status(proof_type))
        if not can_transition_proof(current, ProofStatus.REJECTED):
            return Failure(f"Invalid {proof_type} proof transition: {current.value} -> rejected")

        text, code = await resolve_rejection_text(
            session,
            code=reason_code,
            proof_type=proof_type,
            fallback=reason or "Document did not meet requirements",
        )
        method = submission_method or context.submission_method.value

        blob = None
        if blob_or_file is not None:
            try:
                blob = await self.storage.store(
                    session,
                    blob_or_file,
                    filename=f"{proof_type}_proof_{application.id}",
                )
            except StorageError as e:
                logger.error("proof upload failed application_id=%s proof_type=%s: %s", application.id, proof_type, e)
                return Failure(f"Error processing {proof_type} proof: {e}", error=e)
            setattr(application, f"{proof_type}_proof_blob_id", blob.id)

        setattr(application, f"{proof_type}_proof_status", ProofStatus.REJECTED.value)
        application.total_rejections = (application.total_rejections or 0) + 1
        application.needs_review_since = None
        await session.flush()

        review = await upsert_review(
            session,
            application=application,
            proof_type=proof_type,
            status=ReviewStatus.REJECTED,
            admin=admin,
            rejection_reason=text,
            rejection_reason_code=code,
            notes=notes,
            submission_method=method,
        )

        await AuditEventService.log(
            session,
            action=f"{proof_type}_proof_rejected",
            actor=admin,
            auditable=application,
            metadata={
                "proof_type": proof_type,
                "rejection_reason": text,
                "rejection_reason_code": code,
                "submission_method": method,
                "has_attachment": blob is not None,
                "blob_id": getattr(blob, "id", None),
                **(metadata or {}),
            },
            request_id=context.request_id,
        )

        if notify:
            await notify_proof_rejected(session, application=application, review=review, admin=admin)

        await enforce_max_rejections(session, application, actor=admin, context=context, statuses=self.statuses)
        return Success(review, f"{proof_type} proof rejected")


async def notify_proof_rejected(session: AsyncSession, *, application: Application, review: ProofReview, admin=None) -> None:
    constituent = await session.get(User, application.user_id)
    await NotificationService.create_and_deliver(
        session,
        type="proof_rejected",
        recipient=constituent,
        actor=admin,
        notifiable=review,
        metadata={
            "application_id": application.id,
            "proof_type": review.proof_type,
            "rejection_reason": review.rejection_reason or "Document did not meet requirements",
            "remaining_attempts": await remaining_attempts(session, application),
        },
        channel=getattr(constituent, "communication_preference", None) or "email",
    )


async def remaining_attempts(session: AsyncSession, application: Application) -> int:
    limit = await get_policy_value(session, "max_proof_rejections", settings.max_proof_rejections)
    return max(0, int(limit) - (application.total_rejections or 0))


async def enforce_max_rejections(
    session: AsyncSession,
    application: Application,
    *,
    actor=None,
    context: SubmissionContext = ONLINE,
    statuses: ApplicationStatusService | None = None,
) -> bool:
    """Archive the application once it has used up its rejection allowance."""

    if await remaining_attempts(session, application) > 0:
        return False
    if application.status == ApplicationStatus.ARCHIVED.value:
        return False

    result = await (statuses or status_service).transition(
        session,
        application,
        ApplicationStatus.ARCHIVED,
        actor=actor,
        notes="Maximum number of proof rejections reached",
        context=context,
    )
    if not result.ok:
        logger.warning("max_rejections archive blocked application_id=%s: %s", application.id, result.message)
        return False

    await AuditEventService.log(
        session,
        action="max_rejections_reached",
        actor=actor,
        auditable=application,
        metadata={"total_rejections": application.total_rejections},
        request_id=context.request_id,
    )
    constituent = await session.get(User, application.user_id)
    await NotificationService.create_and_deliver(
        session,
        type="max_rejections_reached",
        recipient=constituent,
        actor=actor,
        notifiable=application,
        metadata={"total_rejections": application.total_rejections},
        channel=getattr(constituent, "communication_preference", None) or "email",
    )
    return True


class MedicalCertificationAttachmentService:
    def __init__(
        self,
        *,
        blob_storage: BlobStorage | None = None,
        statuses: ApplicationStatusService | None = None,
    ) -> None:
        self.storage = blob_storage or storage
        self.statuses = statuses or status_service

    async def attach_certification(
        self,
        session: AsyncSession,
        *,
        application: Application,
        blob_or_file: Any,
        status: MedicalCertificationStatus | str = MedicalCertificationStatus.RECEIVED,
        admin=None,
        submission_method: str | None = None,
        metadata: dict[str, Any] | None = None,
        context: SubmissionContext = ONLINE,
    ) -> ServiceResult:
        try:
            target = MedicalCertificationStatus(status)
        except ValueError:
            return Failure(f"Unknown medical certification status: {status}")

        if target not in {MedicalCertificationStatus.RECEIVED, MedicalCertificationStatus.APPROVED}:
            return Failure(f"Cannot attach a medical certification with status {target.value}")
        if application.status == ApplicationStatus.APPROVED.value and target != MedicalCertificationStatus.APPROVED:
            return Failure("The certification of an approved application can only be replaced by an approved one")

        if not has_usable_file(blob_or_file):
            if target == MedicalCertificationStatus.APPROVED:
                return Failure("Please upload a file for medical_certification proof before approving")
            return Failure("No file provided for medical_certification proof")

        try:
            blob = await self.storage.store(
                session,
                blob_or_file,
                filename=f"medical_certification_{application.id}.pdf",
                content_type="application/pdf",
            )
        except StorageError as e:
            logger.error("medical certification upload failed application_id=%s: %s", application.id, e)
            return Failure(f"Error processing medical_certification proof: {e}", error=e)

        method = submission_method or context.submission_method.value
        previous = application.medical_certification_status
        application.medical_certification_blob_id = blob.id
        application.medical_certification_status = target.value
        if target == MedicalCertificationStatus.APPROVED:
            application.medical_certification_verified_by_id = getattr(admin, "id", None)
            application.medical_certification_rejection_reason = None
            application.medical_certification_rejection_reason_code = None
        await session.flush()

        if target == MedicalCertificationStatus.APPROVED:
            await upsert_review(
                session,
                application=application,
                proof_type="medical_certification",
                status=ReviewStatus.APPROVED,
                admin=admin,
                submission_method=method,
            )

        await AuditEventService.log(
            session,
            action="medical_certification_attached",
            actor=admin,
            auditable=application,
            metadata={
                "status": target.value,
                "previous_status": previous,
                "submission_method": method,
                "blob_id": blob.id,
                **(metadata or {}),
            },
            request_id=context.request_id,
        )

        if previous != target.value:
            await self.statuses.evaluate_auto_approval(session, application, actor=admin, context=context)

        return Success({"blob_id": blob.id, "status": target.value}, "Medical certification attached")

    async def reject_certification(
        self,
        session: AsyncSession,
        *,
        application: Application,
        admin=None,
        reason: str | None = None,
        reason_code: str | None = None,
        notes: str | None = None,
        submission_method: str | None = None,
        metadata: dict[str, Any] | None = None,
        context: SubmissionContext = ONLINE,
    ) -> ServiceResult:
        if application.status == ApplicationStatus.APPROVED.value:
            return Failure("Proofs of an approved application cannot be rejected")

        text, code = await resolve_rejection_text(
            session,
            code=reason_code,
            proof_type="medical_certification",
            fallback=reason or "Certification did not meet requirements",
        )
        method = submission_method or context.submission_method.value

        application.medical_certification_status = MedicalCertificationStatus.REJECTED.value
        application.medical_certification_rejection_reason = text
        application.medical_certification_rejection_reason_code = code
        await session.flush()

        review = await upsert_review(
            session,
            application=application,
            proof_type="medical_certification",
            status=ReviewStatus.REJECTED,
            admin=admin,
            rejection_reason=text,
            rejection_reason_code=code,
            notes=notes,
            submission_method=method,
        )

        await AuditEventService.log(
            session,
            action="medical_certification_rejected",
            actor=admin,
            auditable=application,
            metadata={
                "rejection_reason": text,
                "rejection_reason_code": code,
                "medical_provider_name": application.medical_provider_name,
                "submission_method": method,
                **(metadata or {}),
            },
            request_id=context.request_id,
        )

        await NotificationService.notify_medical_provider(
            session,
            type="medical_certification_rejected",
            application=application,
            actor=admin,
            metadata={"reason": text},
        )
        return Success(review, "Medical certification rejected")


proof_attachment_service = ProofAttachmentService()
medical_certification_service = MedicalCertificationAttachmentService()
