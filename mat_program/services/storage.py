from __future__ import annotations

import hashlib
import inspect
import logging
import secrets
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from mat_program.models.base import utcnow
from mat_program.models.stored_blob import StoredBlob

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when a file cannot be read or a storage reference cannot be resolved."""


def has_usable_file(blob_or_file: Any) -> bool:
    """True for non-empty bytes, a readable file object, or a non-empty storage reference."""

    if blob_or_file is None:
        return False
    if isinstance(blob_or_file, StoredBlob):
        return not blob_or_file.is_purged
    if isinstance(blob_or_file, (bytes, bytearray)):
        return len(blob_or_file) > 0
    if isinstance(blob_or_file, str):
        return bool(blob_or_file.strip())
    return hasattr(blob_or_file, "read")


async def _read_bytes(blob_or_file: Any) -> bytes:
    if isinstance(blob_or_file, (bytes, bytearray)):
        return bytes(blob_or_file)

    data = blob_or_file.read()
    if inspect.isawaitable(data):
        data = await data
    if isinstance(data, str):
        data = data.encode()
    return data


class BlobStorage:
    """Database-backed blob store addressed by an opaque signed id."""

    async def find_by_signed_id(self, session: AsyncSession, signed_id: str) -> StoredBlob | None:
        res = await session.execute(select(StoredBlob).where(StoredBlob.signed_id == signed_id))
        return res.scalar_one_or_none()

    async def store(
        self,
        session: AsyncSession,
        blob_or_file: Any,
        *,
        filename: str | None = None,
        content_type: str | None = None,
    ) -> StoredBlob:
        if isinstance(blob_or_file, StoredBlob):
            return blob_or_file

        if isinstance(blob_or_file, str):
            blob = await self.find_by_signed_id(session, blob_or_file.strip())
            if blob is None or blob.is_purged:
                raise StorageError(f"Unknown storage reference: {blob_or_file!r}")
            return blob

        try:
            data = await _read_bytes(blob_or_file)
        except Exception as e:
            raise StorageError(f"Could not read uploaded file: {e}") from e

        if not data:
            raise StorageError("Uploaded file is empty")

        name = filename or getattr(blob_or_file, "filename", None) or getattr(blob_or_file, "name", None) or "upload.bin"
        ctype = content_type or getattr(blob_or_file, "content_type", None) or "application/octet-stream"

        blob = StoredBlob(
            signed_id=secrets.token_urlsafe(24),
            filename=str(name),
            content_type=ctype,
            byte_size=len(data),
            checksum=hashlib.sha256(data).hexdigest(),
            data=data,
        )
        session.add(blob)
        await session.flush()
        return blob

    async def purge(self, session: AsyncSession, blob_id) -> bool:
        blob = await session.get(StoredBlob, blob_id)
        if blob is None or blob.is_purged:
            return False

        blob.data = None
        blob.purged_at = utcnow()
        await session.flush()
        logger.info("Purged blob %s", blob_id)
        return True


storage = BlobStorage()
