from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from mat_program.config import settings

logger = logging.getLogger(__name__)


class DocuSealError(Exception):
    pass


@dataclass(frozen=True)
class DownloadedDocument:
    status_code: int
    content: bytes

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class DocuSealClient:
    """Thin async wrapper over the DocuSeal REST API."""

    def __init__(self, *, base_url: str | None = None, api_key: str | None = None) -> None:
        self.base_url = (base_url or settings.docuseal_base_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.docuseal_api_key

    async def create_submission(self, payload: dict[str, Any]) -> dict[str, Any]:
        """POST /submissions and normalise the reply to {"id", "submitters"}.

        The API answers with either a submission object or a bare list of
        submitters (each carrying `submission_id`).
        """

        if not self.api_key:
            raise DocuSealError("DocuSeal API key is not configured")

        async with httpx.AsyncClient(base_url=self.base_url, timeout=settings.document_download_timeout_seconds) as client:
            response = await client.post("/submissions", json=payload, headers={"X-Auth-Token": self.api_key})

        if response.status_code >= 400:
            raise DocuSealError(f"DocuSeal API error: HTTP {response.status_code}")

        data = response.json()
        if isinstance(data, list):
            first = data[0] if data else {}
            return {"id": first.get("submission_id"), "submitters": data}
        return data

    async def download_document(self, url: str) -> DownloadedDocument:
        async with httpx.AsyncClient(timeout=settings.document_download_timeout_seconds, follow_redirects=True) as client:
            response = await client.get(url)
        return DownloadedDocument(status_code=response.status_code, content=response.content)


docuseal_client = DocuSealClient()
