from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class DocuSealWebhookPayload(BaseModel):
    event_type: str = Field(..., min_length=1)
    timestamp: str | None = None
    data: dict[str, Any] = Field(..., min_length=1)
