from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from mat_program.models.proof_review import ProofReview


async def find_current_review(
    session: AsyncSession,
    *,
    application_id: UUID,
    proof_type: str,
    status: str,
) -> ProofReview | None:
    stmt = (
        select(ProofReview)
        .where(
            ProofReview.application_id == application_id,
            ProofReview.proof_type == proof_type,
            ProofReview.status == status,
        )
        .order_by(ProofReview.created_at.desc())
        .limit(1)
    )
    res = await session.execute(stmt)
    return res.scalar_one_or_none()


async def list_reviews_for_application(
    session: AsyncSession,
    *,
    application_id: UUID,
    status: str | None = None,
) -> list[ProofReview]:
    stmt = select(ProofReview).where(ProofReview.application_id == application_id)
    if status is not None:
        stmt = stmt.where(ProofReview.status == status)

    res = await session.execute(stmt.order_by(ProofReview.created_at.desc()))
    return list(res.scalars().all())
