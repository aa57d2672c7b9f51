from __future__ import annotations

import enum
import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from mat_program.models.audit_log import AuditLog

logger = logging.getLogger(__name__)


def _entity_type(obj: Any) -> str | None:
    table = getattr(obj, "__tablename__", None)
    if table is None:
        return None
    # "applications" -> "application", "proof_reviews" -> "proof_review"
    return table[:-1] if table.endswith("s") else table


class AuditEventService:
    """Append-only audit trail.

    Writes happen inside a SAVEPOINT so a failed insert never poisons the
    caller's transaction; failures are logged and swallowed.
    """

    @staticmethod
    async def log(
        session: AsyncSession,
        *,
        action: str,
        actor=None,
        auditable=None,
        metadata: dict[str, Any] | None = None,
        request_id: str | None = None,
    ) -> AuditLog | None:
        event = AuditLog(
            action=action,
            actor_id=getattr(actor, "id", None),
            entity_type=_entity_type(auditable),
            entity_id=getattr(auditable, "id", None),
            meta=to_jsonable(metadata or {}),
            request_id=request_id,
        )

        try:
            async with session.begin_nested():
                session.add(event)
        except Exception:
            logger.exception(
                "audit_log_failed action=%s entity_id=%s",
                action,
                getattr(auditable, "id", None),
            )
            return None

        return event


def to_jsonable(value: Any) -> Any:
    """Coerce UUIDs/datetimes/enums nested in metadata into JSON-safe values."""

    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [to_jsonable(v) for v in value]
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)
