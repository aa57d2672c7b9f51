from __future__ import annotations

from fastapi import APIRouter, Depends, File, HTTPException, Response, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from mat_program.api.deps import get_current_user
from mat_program.database import get_db
from mat_program.models.user import User
from mat_program.schemas.application import UploadRead
from mat_program.services.storage import StorageError, storage

router = APIRouter(prefix="/uploads", tags=["uploads"])


@router.post("", response_model=UploadRead, status_code=status.HTTP_201_CREATED)
async def upload_file_endpoint(
    file: UploadFile = File(...),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
) -> UploadRead:
    """Store a file and return the signed id used to reference it in later requests."""

    try:
        blob = await storage.store(session, file)
    except StorageError as e:
        raise HTTPException(status_code=422, detail=str(e))

    await session.commit()
    return UploadRead.model_validate(blob)


@router.get("/{signed_id}/content")
async def upload_content_endpoint(signed_id: str, session: AsyncSession = Depends(get_db)) -> Response:
    """Serve stored bytes by signed id. Public: the fax provider fetches letters from here."""

    blob = await storage.find_by_signed_id(session, signed_id)
    if blob is None or blob.is_purged:
        raise HTTPException(status_code=404, detail="Not found")

    return Response(
        content=blob.data,
        media_type=blob.content_type,
        headers={"Content-Disposition": f'inline; filename="{blob.filename}"'},
    )
