from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from mat_program.models.policy import Policy
from mat_program.models.rejection_reason import RejectionReason


async def get_policy_value(session: AsyncSession, key: str, default: int | None = None) -> int | None:
    res = await session.execute(select(Policy.value).where(Policy.key == key))
    value = res.scalar_one_or_none()
    return default if value is None else int(value)


async def set_policy_value(session: AsyncSession, key: str, value: int) -> Policy:
    res = await session.execute(select(Policy).where(Policy.key == key))
    policy = res.scalar_one_or_none()
    if policy is None:
        policy = Policy(key=key, value=value)
        session.add(policy)
    else:
        policy.value = value
    await session.flush()
    return policy


async def resolve_rejection_reason(
    session: AsyncSession,
    *,
    code: str,
    proof_type: str,
    locale: str = "en",
) -> RejectionReason | None:
    """Best match for (code, proof_type, locale), falling back to English."""

    for loc in dict.fromkeys((locale, "en")):
        res = await session.execute(
            select(RejectionReason).where(
                RejectionReason.code == code,
                RejectionReason.proof_type == proof_type,
                RejectionReason.locale == loc,
            )
        )
        reason = res.scalar_one_or_none()
        if reason is not None:
            return reason
    return None
