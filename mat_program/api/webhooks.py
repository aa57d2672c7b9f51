"""Inbound provider callbacks (DocuSeal, Twilio).

Mounted outside /api/v1: the URLs are registered with the providers.
"""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from mat_program.config import settings
from mat_program.database import get_db
from mat_program.domain.context import SubmissionContext
from mat_program.schemas.webhooks import DocuSealWebhookPayload
from mat_program.services.docuseal_webhook import DocuSealWebhookHandler
from mat_program.services.fax_status import update_fax_status
from mat_program.services.webhook_signature import verify_hmac_signature, verify_twilio_signature

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/docuseal/medical_certification")
async def docuseal_medical_certification(request: Request, session: AsyncSession = Depends(get_db)):
    body = await request.body()
    signature = request.headers.get("X-Webhook-Signature") or request.headers.get("X-DocuSeal-Signature")

    if not settings.docuseal_webhook_secret:
        logger.error("DocuSeal webhook secret is not configured; rejecting webhook")
        raise HTTPException(status_code=401, detail="Invalid signature")
    if not verify_hmac_signature(settings.docuseal_webhook_secret, body, signature):
        raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        payload = DocuSealWebhookPayload.model_validate(json.loads(body or b"null"))
    except (ValueError, ValidationError):
        raise HTTPException(status_code=422, detail="event_type and data are required")

    handler = DocuSealWebhookHandler(context=SubmissionContext.webhook(request_id=getattr(request.state, "request_id", None)))
    outcome = await handler.handle(session, payload.event_type, payload.data)
    await session.commit()

    logger.info("docuseal webhook event=%s outcome=%s", payload.event_type, outcome)
    return {"status": "ok", "result": outcome}


@router.post("/twilio/fax_status")
async def twilio_fax_status(request: Request, session: AsyncSession = Depends(get_db)):
    form = await request.form()
    params = {k: str(v) for k, v in form.items()}

    if settings.environment == "production":
        signature = request.headers.get("X-Twilio-Signature")
        if not verify_twilio_signature(settings.twilio_auth_token, str(request.url), params, signature):
            logger.warning("Invalid Twilio signature for request to %s", request.url)
            raise HTTPException(status_code=403, detail="Invalid signature")

    try:
        outcome = await update_fax_status(session, fax_sid=params.get("FaxSid"), provider_status=params.get("Status"))
        await session.commit()
    except Exception as e:
        logger.exception("Error handling fax status update")
        await session.rollback()
        return JSONResponse(status_code=500, content={"success": False, "error": str(e)})

    if not outcome.found:
        return {"success": False, "error": "Notification not found"}
    return {"success": True, "status": outcome.status}
