from __future__ import annotations

import logging
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from mat_program.config import settings
from mat_program.crud.application import get_application
from mat_program.domain.statuses import (
    ApplicationStatus,
    DocumentSigningStatus,
    MedicalCertificationStatus,
    SubmissionMethod,
)
from mat_program.models.application import Application
from mat_program.models.base import as_utc, utcnow
from mat_program.services.audit import AuditEventService
from mat_program.services.docuseal_client import DocuSealClient, docuseal_client
from mat_program.services.result import Failure, ServiceResult, Success

logger = logging.getLogger(__name__)

_CLOSED_STATUSES = frozenset({ApplicationStatus.APPROVED.value, ApplicationStatus.ARCHIVED.value})


def _refusal(app: Application) -> str | None:
    if app.status in _CLOSED_STATUSES:
        return f"Cannot request medical certification for an application that is {app.status}"
    if app.medical_certification_status == MedicalCertificationStatus.APPROVED.value:
        return "Medical certification is already approved"
    return None


class SubmissionService:
    """Send the medical certification form to the provider for e-signature."""

    def __init__(
        self,
        application: Application,
        actor,
        *,
        service: str = "docuseal",
        client: DocuSealClient | None = None,
    ) -> None:
        self.application = application
        self.actor = actor
        self.service = service
        self.client = client or docuseal_client

    async def call(self, session: AsyncSession) -> ServiceResult:
        app = self.application
        if not app.medical_provider_email:
            return Failure("Medical provider email is required")
        if not app.medical_provider_name:
            return Failure("Medical provider name is required")
        if self.actor is None:
            return Failure("Actor is required")
        refusal = _refusal(app)
        if refusal:
            return Failure(refusal)

        last_request = as_utc(app.document_signing_requested_at)
        cooldown = timedelta(seconds=settings.signing_request_cooldown_seconds)
        if last_request is not None and last_request > utcnow() - cooldown:
            return Failure("Request sent too recently. Please wait before sending another.")

        try:
            submission = await self.client.create_submission(self._payload())
        except Exception as e:
            logger.exception("document signing request failed application_id=%s", app.id)
            return Failure(f"Failed to create document signing request: {e}", error=e)

        submitters = submission.get("submitters") or []
        submitter = submitters[0] if submitters else {}
        now = utcnow()

        locked = await get_application(session, application_id=app.id, for_update=True)
        if locked is None:
            return Failure("Application not found")
        refusal = _refusal(locked)
        if refusal:
            return Failure(refusal)

        locked.document_signing_service = self.service
        locked.document_signing_submission_id = str(submission.get("id"))
        locked.document_signing_submitter_id = str(submitter.get("id")) if submitter.get("id") is not None else None
        locked.document_signing_status = DocumentSigningStatus.SENT.value
        locked.document_signing_requested_at = now
        locked.medical_certification_status = MedicalCertificationStatus.REQUESTED.value
        locked.medical_certification_requested_at = now
        locked.document_signing_request_count = (locked.document_signing_request_count or 0) + 1
        locked.medical_certification_request_count = (locked.medical_certification_request_count or 0) + 1
        await session.flush()

        await AuditEventService.log(
            session,
            action="document_signing_request_sent",
            actor=self.actor,
            auditable=locked,
            metadata={
                "document_signing_service": self.service,
                "document_signing_submission_id": locked.document_signing_submission_id,
                "provider_name": locked.medical_provider_name,
                "provider_email": locked.medical_provider_email,
                "submission_method": SubmissionMethod.DOCUMENT_SIGNING.value,
            },
        )
        logger.info(
            "document signing request sent application_id=%s submission_id=%s",
            locked.id,
            locked.document_signing_submission_id,
        )
        return Success(submission, "Document signing request created")

    def _payload(self) -> dict:
        app = self.application
        payload = {
            "name": f"Medical Certification - App {app.id}",
            "submitters": [
                {
                    "role": "Medical Provider",
                    "email": app.medical_provider_email,
                    "name": app.medical_provider_name,
                }
            ],
            "send_email": True,
            "completed_redirect_url": f"{settings.public_base_url.rstrip('/')}/api/v1/applications/{app.id}",
        }
        if settings.docuseal_template_id is not None:
            payload["template_id"] = settings.docuseal_template_id
        return payload
