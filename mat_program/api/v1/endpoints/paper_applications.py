from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from mat_program.api.deps import load_application, require_admin
from mat_program.api.errors import raise_for_failure
from mat_program.database import get_db
from mat_program.models.application import Application
from mat_program.models.user import User
from mat_program.schemas.application import ApplicationRead
from mat_program.schemas.paper_application import PaperApplicationPayload
from mat_program.services.paper_application import PaperApplicationService

router = APIRouter(prefix="/paper_applications", tags=["paper_applications"])


@router.post("", response_model=ApplicationRead, status_code=status.HTTP_201_CREATED)
async def create_paper_application_endpoint(
    payload: PaperApplicationPayload,
    request: Request,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_db),
) -> ApplicationRead:
    service = PaperApplicationService(
        payload.to_params(),
        admin,
        skip_income_validation=payload.skip_income_validation,
        request_id=getattr(request.state, "request_id", None),
    )
    result = await service.create(session)
    raise_for_failure(result)
    return ApplicationRead.model_validate(result.data)


@router.patch("/{application_id}", response_model=ApplicationRead)
async def update_paper_application_endpoint(
    payload: PaperApplicationPayload,
    request: Request,
    app: Application = Depends(load_application),
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_db),
) -> ApplicationRead:
    service = PaperApplicationService(
        payload.to_params(),
        admin,
        request_id=getattr(request.state, "request_id", None),
    )
    result = await service.update(session, app)
    raise_for_failure(result)
    return ApplicationRead.model_validate(result.data)
