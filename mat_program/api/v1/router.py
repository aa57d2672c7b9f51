from fastapi import APIRouter

from mat_program.api.v1.endpoints.applications import router as applications_router
from mat_program.api.v1.endpoints.paper_applications import router as paper_applications_router
from mat_program.api.v1.endpoints.uploads import router as uploads_router

router = APIRouter()


@router.get("/ping")
async def ping():
    return {"ping": "pong"}


router.include_router(applications_router)
router.include_router(paper_applications_router)
router.include_router(uploads_router)
