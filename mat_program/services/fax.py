"""Outbound fax to medical providers.

A letter is rendered to PDF, stored as a blob the provider can fetch by its
signed id, and sent through Twilio. The fax SID and blob id are written to the
notification so the status webhook can track delivery and purge the PDF.
"""

from __future__ import annotations

import asyncio
import io
import json
import logging
from dataclasses import dataclass
from xml.sax.saxutils import escape

from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer
from sqlalchemy.ext.asyncio import AsyncSession
from twilio.base.exceptions import TwilioException
from twilio.rest import Client

from mat_program.config import settings
from mat_program.models.application import Application
from mat_program.models.base import utcnow
from mat_program.models.notification import Notification
from mat_program.models.user import User
from mat_program.services.fax_status import trigger_email_fallback
from mat_program.services.proof_attachment import remaining_attempts
from mat_program.services.storage import storage

logger = logging.getLogger(__name__)


class FaxError(Exception):
    pass


@dataclass(frozen=True)
class FaxLetter:
    title: str
    paragraphs: tuple[str, ...]


class FaxService:
    """Send a fax whose pages Twilio fetches from `media_url`."""

    def __init__(self, client: Client | None = None) -> None:
        self._client = client

    @property
    def client(self) -> Client:
        if self._client is None:
            if not settings.twilio_account_sid or not settings.twilio_auth_token:
                raise FaxError("Twilio credentials are not configured")
            self._client = Client(settings.twilio_account_sid, settings.twilio_auth_token)
        return self._client

    async def send_fax(self, *, to: str, media_url: str, status_callback: str) -> str:
        if not settings.twilio_fax_from_number:
            raise FaxError("Twilio fax sender number is not configured")

        data = {
            "From": settings.twilio_fax_from_number,
            "To": to,
            "MediaUrl": media_url,
            "Quality": "fine",
            "StatusCallback": status_callback,
        }
        try:
            response = await asyncio.to_thread(self.client.request, "POST", settings.twilio_fax_api_url, data=data)
        except TwilioException as e:
            raise FaxError(f"Twilio request failed: {e}") from e

        if not 200 <= response.status_code < 300:
            raise FaxError(f"Twilio fax API error: HTTP {response.status_code}")

        sid = json.loads(response.text or "{}").get("sid")
        if not sid:
            raise FaxError("Twilio fax API returned no SID")
        return sid


def render_letter_pdf(fax_letter: FaxLetter) -> bytes:
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=letter,
        leftMargin=0.75 * inch,
        rightMargin=0.75 * inch,
        topMargin=0.75 * inch,
        bottomMargin=0.75 * inch,
    )
    styles = getSampleStyleSheet()

    elements = [
        Paragraph(escape(settings.organization_name), styles["Title"]),
        Paragraph(escape(fax_letter.title), styles["Heading2"]),
    ]
    for text in fax_letter.paragraphs:
        elements.append(Spacer(1, 0.15 * inch))
        elements.append(Paragraph(escape(text), styles["Normal"]))

    doc.build(elements)
    return buffer.getvalue()


async def build_letter(session: AsyncSession, notification: Notification, application: Application) -> FaxLetter:
    applicant = await session.get(User, application.user_id)
    header = (
        f"Applicant: {applicant.full_name if applicant else 'Unknown'}",
        f"Application ID: {application.id}",
    )

    contact = []
    if settings.program_fax_number:
        contact.append(f"Fax the completed certification to: {settings.program_fax_number}")
    if settings.program_contact_email:
        contact.append(f"For questions, please contact: {settings.program_contact_email}")

    if notification.action == "medical_certification_rejected":
        reason = (
            (notification.meta or {}).get("reason")
            or application.medical_certification_rejection_reason
            or "Not specified"
        )
        return FaxLetter(
            title="Disability Certification Form needs updates",
            paragraphs=(
                *header,
                f"Reason for revision: {reason}",
                f"Remaining attempts: {await remaining_attempts(session, application)}",
                *contact,
            ),
        )

    return FaxLetter(
        title="Disability Certification Form requested",
        paragraphs=(
            *header,
            f"{application.medical_provider_name or 'Your patient'} has been listed as the certifying provider "
            "for this application. Please complete and return the disability certification form.",
            *contact,
        ),
    )


def media_url_for(signed_id: str) -> str:
    return f"{settings.public_base_url.rstrip('/')}/api/v1/uploads/{signed_id}/content"


def status_callback_url() -> str:
    return f"{settings.public_base_url.rstrip('/')}/webhooks/twilio/fax_status"


async def deliver_fax(session: AsyncSession, notification: Notification, *, fax_service: FaxService | None = None) -> bool:
    """Fax the provider letter for `notification`; returns True once Twilio accepted it.

    On failure the notification is marked failed and the email fallback runs
    (once per notification). Never raises.
    """

    application = None
    if notification.notifiable_type == "application" and notification.notifiable_id is not None:
        application = await session.get(Application, notification.notifiable_id)
    if application is None or not application.medical_provider_fax:
        logger.warning("fax_delivery_skipped notification_id=%s reason=no_fax_number", notification.id)
        return False

    try:
        pdf = render_letter_pdf(await build_letter(session, notification, application))
        blob = await storage.store(
            session,
            pdf,
            filename=f"{notification.action}_{application.id}_{int(utcnow().timestamp())}.pdf",
            content_type="application/pdf",
        )
        fax_sid = await (fax_service or FaxService()).send_fax(
            to=application.medical_provider_fax,
            media_url=media_url_for(blob.signed_id),
            status_callback=status_callback_url(),
        )
    except Exception as e:
        logger.exception("fax_delivery_failed notification_id=%s application_id=%s", notification.id, application.id)
        notification.delivery_status = "failed"
        notification.meta = {**(notification.meta or {}), "fax_error": str(e)}
        await session.flush()
        await trigger_email_fallback(session, notification, "failed")
        return False

    methods = ["fax"] + (["email"] if application.medical_provider_email else [])
    notification.delivery_status = "sending"
    notification.meta = {
        **(notification.meta or {}),
        "delivery_method": "fax",
        "notification_methods": methods,
        "fax_sid": fax_sid,
        "blob_id": str(blob.id),
    }
    await session.flush()
    logger.info("Fax sent to medical provider application_id=%s fax_sid=%s", application.id, fax_sid)
    return True
