from __future__ import annotations

import uuid

from fastapi import Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from mat_program.crud.application import get_application
from mat_program.database import get_db
from mat_program.models.application import Application
from mat_program.models.user import User


async def get_current_user(
    x_user_id: str | None = Header(None, alias="X-User-ID"),
    session: AsyncSession = Depends(get_db),
) -> User:
    """Resolve the acting user.

    Authentication happens upstream (gateway/session layer); it forwards the
    authenticated user's id in X-User-ID.
    """

    if not x_user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    try:
        user_id = uuid.UUID(x_user_id)
    except ValueError:
        raise HTTPException(status_code=401, detail="Authentication required")

    user = await session.get(User, user_id)
    if user is None or not user.is_active:
        raise HTTPException(status_code=401, detail="Authentication required")
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


async def load_application(application_id: str, session: AsyncSession = Depends(get_db)) -> Application:
    try:
        app_id = uuid.UUID(application_id)
    except ValueError:
        raise HTTPException(status_code=404, detail="Application not found")

    app = await get_application(session, application_id=app_id)
    if app is None:
        raise HTTPException(status_code=404, detail="Application not found")
    return app
