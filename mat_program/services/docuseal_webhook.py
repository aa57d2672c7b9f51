"""Inbound DocuSeal events for medical certification forms.

Handlers never raise on provider-side problems: download failures are
recorded as audit events and the webhook still answers 200 so DocuSeal does
not retry a payload we have already seen.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from mat_program.crud.application import find_by_signing_submission
from mat_program.crud.user import get_system_user
from mat_program.domain.context import SubmissionContext
from mat_program.domain.statuses import (
    DocumentSigningStatus,
    MedicalCertificationStatus,
    can_transition_signing,
)
from mat_program.models.application import Application
from mat_program.models.base import utcnow
from mat_program.services.audit import AuditEventService
from mat_program.services.docuseal_client import DocuSealClient, docuseal_client
from mat_program.services.status import ApplicationStatusService, record_dimension_change, status_service
from mat_program.services.storage import storage

logger = logging.getLogger(__name__)

SERVICE = "docuseal"


class DocuSealWebhookHandler:
    def __init__(
        self,
        *,
        client: DocuSealClient | None = None,
        statuses: ApplicationStatusService | None = None,
        context: SubmissionContext | None = None,
    ) -> None:
        self.client = client or docuseal_client
        self.statuses = statuses or status_service
        self.context = context or SubmissionContext.webhook()

    async def handle(self, session: AsyncSession, event_type: str, data: dict[str, Any]) -> str:
        """Dispatch one event; returns a short outcome label for logging."""

        handlers = {
            "form.viewed": self.handle_viewed,
            "form.started": self.handle_started,
            "form.completed": self.handle_completed,
            "form.declined": self.handle_declined,
        }
        handler = handlers.get(event_type)
        if handler is None:
            logger.warning("Unknown DocuSeal event: %s", event_type)
            return "ignored"

        app = await find_by_signing_submission(
            session, submission_id=data.get("submission_id"), service=SERVICE, for_update=True
        )
        if app is None:
            logger.info("DocuSeal event %s for unknown submission_id=%s", event_type, data.get("submission_id"))
            return "not_found"

        return await handler(session, app, data)

    async def _audit(self, session: AsyncSession, app: Application, action: str, data: dict[str, Any], **extra: Any) -> None:
        await AuditEventService.log(
            session,
            action=action,
            actor=await get_system_user(session),
            auditable=app,
            metadata={
                "document_signing_service": SERVICE,
                "document_signing_submission_id": data.get("submission_id", app.document_signing_submission_id),
                **extra,
            },
            request_id=self.context.request_id,
        )

    async def handle_viewed(self, session: AsyncSession, app: Application, data: dict[str, Any]) -> str:
        if can_transition_signing(app.document_signing_status, DocumentSigningStatus.OPENED):
            app.document_signing_status = DocumentSigningStatus.OPENED.value
            await session.flush()

        await self._audit(
            session,
            app,
            "document_signing_viewed",
            data,
            provider_email=data.get("email"),
            viewed_at=utcnow().isoformat(),
        )
        return "viewed"

    async def handle_started(self, session: AsyncSession, app: Application, data: dict[str, Any]) -> str:
        await self._audit(session, app, "document_signing_started", data, started_at=utcnow().isoformat())
        return "started"

    async def handle_declined(self, session: AsyncSession, app: Application, data: dict[str, Any]) -> str:
        app.document_signing_status = DocumentSigningStatus.DECLINED.value
        await session.flush()

        await self._audit(
            session,
            app,
            "document_signing_declined",
            data,
            decline_reason=data.get("decline_reason"),
            declined_at=utcnow().isoformat(),
        )
        return "declined"

    async def handle_completed(self, session: AsyncSession, app: Application, data: dict[str, Any]) -> str:
        current = MedicalCertificationStatus(app.medical_certification_status)
        if app.document_signing_status == DocumentSigningStatus.SIGNED.value and (
            app.document_signing_document_url or current == MedicalCertificationStatus.APPROVED
        ):
            logger.info("DocuSeal completion already processed application_id=%s", app.id)
            return "duplicate"

        received = False

        if current == MedicalCertificationStatus.APPROVED:
            # An approved certification is kept; only the signed document URL is recorded.
            app.document_signing_document_url = _document_url(data) or app.document_signing_document_url
        elif current == MedicalCertificationStatus.REJECTED:
            received = await self.attach_signed_pdf(session, app, data)
        else:
            attached = await self.attach_signed_pdf(session, app, data)
            received = attached and current != MedicalCertificationStatus.RECEIVED

        app.document_signing_status = DocumentSigningStatus.SIGNED.value
        app.document_signing_signed_at = utcnow()
        if received:
            app.medical_certification_status = MedicalCertificationStatus.RECEIVED.value
        await session.flush()

        if received:
            system_user = await get_system_user(session)
            await record_dimension_change(
                session,
                app,
                change_type="medical_certification",
                from_status=current.value,
                to_status=MedicalCertificationStatus.RECEIVED.value,
                actor=system_user,
                notes="Signed certification received from document signing service",
            )
            await self.statuses.evaluate_auto_approval(session, app, actor=system_user, context=self.context)

        await self._audit(
            session,
            app,
            "document_signing_completed",
            data,
            completed_at=utcnow().isoformat(),
            provider_email=data.get("email"),
        )
        return "completed"

    async def attach_signed_pdf(self, session: AsyncSession, app: Application, data: dict[str, Any]) -> bool:
        """Download the signed PDF and point the certification slot at it.

        Returns True on success, including when the same URL was already
        attached. Never raises.
        """

        url = _document_url(data)

        if not url:
            logger.warning("DocuSeal webhook: missing document URL. Available keys: %s", ", ".join(data.keys()))
            await self._log_attachment_failure(session, app, "missing_document_url", "No document URL provided in webhook payload")
            return False

        if app.document_signing_document_url == url:
            return True

        try:
            document = await self.client.download_document(url)
            if not document.ok:
                await self._log_attachment_failure(session, app, "download_failed", f"HTTP {document.status_code}")
                return False

            async with session.begin_nested():
                blob = await storage.store(
                    session,
                    document.content,
                    filename=f"medical_cert_docuseal_{app.id}.pdf",
                    content_type="application/pdf",
                )
        except Exception as e:
            logger.error("Document signing download/attach failed for application %s: %s", app.id, e)
            await self._log_attachment_failure(session, app, "exception", str(e))
            return False

        app.medical_certification_blob_id = blob.id
        app.document_signing_audit_url = data.get("audit_log_url")
        app.document_signing_document_url = url
        await session.flush()
        return True

    async def _log_attachment_failure(self, session: AsyncSession, app: Application, reason: str, details: str) -> None:
        await AuditEventService.log(
            session,
            action="document_signing_attachment_failed",
            actor=await get_system_user(session),
            auditable=app,
            metadata={
                "document_signing_service": SERVICE,
                "document_signing_submission_id": app.document_signing_submission_id,
                "failure_reason": reason,
                "failure_details": details,
                "failed_at": utcnow().isoformat(),
            },
            request_id=self.context.request_id,
        )


def _document_url(data: dict[str, Any]) -> str | None:
    documents = data.get("documents") or []
    if documents and isinstance(documents[0], dict):
        return documents[0].get("url")
    return None
