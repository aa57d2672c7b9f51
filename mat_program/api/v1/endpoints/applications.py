from __future__ import annotations

from fastapi import APIRouter, Depends, File, HTTPException, Query, Request, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from mat_program.api.deps import get_current_user, load_application, require_admin
from mat_program.api.errors import raise_for_failure
from mat_program.crud.application import list_audit_events, list_status_changes
from mat_program.database import get_db
from mat_program.domain.context import SubmissionContext
from mat_program.domain.statuses import ApplicationStatus
from mat_program.models.application import Application
from mat_program.models.user import User
from mat_program.schemas.application import (
    ApplicationCreate,
    ApplicationRead,
    AuditEventRead,
    ProofAttachRequest,
    ProofRejectRequest,
    ProofReviewRead,
    ProofReviewRequest,
    StatusChangeRead,
    StatusTransitionRequest,
)
from mat_program.services.document_signing import SubmissionService
from mat_program.services.intake import create_application
from mat_program.services.proof_attachment import medical_certification_service, proof_attachment_service
from mat_program.services.proof_reviewer import ProofReviewer
from mat_program.services.status import status_service

router = APIRouter(prefix="/applications", tags=["applications"])


def _context(request: Request) -> SubmissionContext:
    return SubmissionContext.online(request_id=getattr(request.state, "request_id", None))


def _ensure_owner_or_admin(app: Application, user: User) -> None:
    if user.is_admin or app.user_id == user.id or app.managing_guardian_id == user.id:
        return
    raise HTTPException(status_code=404, detail="Application not found")


@router.post("", response_model=ApplicationRead, status_code=status.HTTP_201_CREATED)
async def create_application_endpoint(
    payload: ApplicationCreate,
    request: Request,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
) -> ApplicationRead:
    if payload.skip_waiting_period and not user.is_admin:
        raise HTTPException(status_code=403, detail="Only administrators can bypass the waiting period")

    result = await create_application(
        session,
        user=user,
        attrs=payload.model_dump(exclude={"submit", "skip_waiting_period"}),
        status=ApplicationStatus.IN_PROGRESS if payload.submit else ApplicationStatus.DRAFT,
        context=_context(request),
        skip_waiting_period=payload.skip_waiting_period,
    )
    raise_for_failure(result)

    await session.commit()
    return ApplicationRead.model_validate(result.data)


@router.get("/{application_id}", response_model=ApplicationRead)
async def get_application_endpoint(
    app: Application = Depends(load_application),
    user: User = Depends(get_current_user),
) -> ApplicationRead:
    _ensure_owner_or_admin(app, user)
    return ApplicationRead.model_validate(app)


@router.post("/{application_id}/status", response_model=ApplicationRead)
async def transition_status_endpoint(
    payload: StatusTransitionRequest,
    request: Request,
    app: Application = Depends(load_application),
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_db),
) -> ApplicationRead:
    result = await status_service.transition(
        session,
        app,
        payload.status,
        actor=admin,
        notes=payload.notes,
        context=_context(request),
    )
    raise_for_failure(result)

    await session.commit()
    return ApplicationRead.model_validate(app)


@router.post("/{application_id}/proofs/{proof_type}", response_model=ApplicationRead)
async def submit_proof_endpoint(
    proof_type: str,
    request: Request,
    file: UploadFile = File(...),
    app: Application = Depends(load_application),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
) -> ApplicationRead:
    """Constituent upload (or re-upload after rejection) of an income/residency proof."""

    _ensure_owner_or_admin(app, user)
    result = await proof_attachment_service.submit_proof(
        session,
        application=app,
        proof_type=proof_type,
        blob_or_file=file,
        actor=user,
        context=_context(request),
    )
    raise_for_failure(result)

    await session.commit()
    return ApplicationRead.model_validate(app)


@router.post("/{application_id}/proofs/{proof_type}/attach", response_model=ApplicationRead)
async def attach_proof_endpoint(
    proof_type: str,
    payload: ProofAttachRequest,
    request: Request,
    app: Application = Depends(load_application),
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_db),
) -> ApplicationRead:
    if proof_type == "medical_certification":
        result = await medical_certification_service.attach_certification(
            session,
            application=app,
            blob_or_file=payload.signed_id,
            status=payload.status if payload.status != "not_reviewed" else "received",
            admin=admin,
            metadata=payload.metadata,
            context=_context(request),
        )
    else:
        result = await proof_attachment_service.attach_proof(
            session,
            application=app,
            proof_type=proof_type,
            blob_or_file=payload.signed_id,
            status=payload.status,
            admin=admin,
            metadata=payload.metadata,
            context=_context(request),
            rejection_reason=payload.rejection_reason,
            rejection_reason_code=payload.rejection_reason_code,
            notes=payload.notes,
        )
    raise_for_failure(result)

    await session.commit()
    return ApplicationRead.model_validate(app)


@router.post("/{application_id}/proofs/{proof_type}/reject", response_model=ApplicationRead)
async def reject_proof_endpoint(
    proof_type: str,
    payload: ProofRejectRequest,
    request: Request,
    app: Application = Depends(load_application),
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_db),
) -> ApplicationRead:
    if proof_type == "medical_certification":
        result = await medical_certification_service.reject_certification(
            session,
            application=app,
            admin=admin,
            reason=payload.reason,
            reason_code=payload.reason_code,
            notes=payload.notes,
            context=_context(request),
        )
    else:
        result = await proof_attachment_service.reject_proof_without_attachment(
            session,
            application=app,
            proof_type=proof_type,
            admin=admin,
            reason=payload.reason,
            reason_code=payload.reason_code,
            notes=payload.notes,
            context=_context(request),
        )
    raise_for_failure(result)

    await session.commit()
    return ApplicationRead.model_validate(app)


@router.post("/{application_id}/reviews", response_model=ProofReviewRead, status_code=status.HTTP_201_CREATED)
async def review_proof_endpoint(
    payload: ProofReviewRequest,
    request: Request,
    app: Application = Depends(load_application),
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_db),
) -> ProofReviewRead:
    reviewer = ProofReviewer(app, admin, context=_context(request))
    result = await reviewer.review(
        session,
        proof_type=payload.proof_type,
        status=payload.status,
        rejection_reason=payload.rejection_reason,
        rejection_reason_code=payload.rejection_reason_code,
        notes=payload.notes,
    )
    raise_for_failure(result)

    await session.commit()
    return ProofReviewRead.model_validate(result.data)


@router.post("/{application_id}/document_signing", response_model=ApplicationRead)
async def request_document_signing_endpoint(
    app: Application = Depends(load_application),
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_db),
) -> ApplicationRead:
    result = await SubmissionService(app, admin).call(session)
    raise_for_failure(result)

    await session.commit()
    return ApplicationRead.model_validate(app)


@router.get("/{application_id}/status_changes", response_model=list[StatusChangeRead])
async def list_status_changes_endpoint(
    app: Application = Depends(load_application),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
) -> list[StatusChangeRead]:
    _ensure_owner_or_admin(app, user)
    changes = await list_status_changes(session, application_id=app.id)
    return [StatusChangeRead.model_validate(c) for c in changes]


@router.get("/{application_id}/audit_events", response_model=list[AuditEventRead])
async def list_audit_events_endpoint(
    action: str | None = Query(None),
    limit: int = Query(100, ge=1, le=500),
    app: Application = Depends(load_application),
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_db),
) -> list[AuditEventRead]:
    events = await list_audit_events(session, entity_id=app.id, action=action, limit=limit)
    return [AuditEventRead.model_validate(e) for e in events]
