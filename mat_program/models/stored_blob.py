from __future__ import annotations

import uuid

from sqlalchemy import DateTime, Integer, LargeBinary, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, utcnow


class StoredBlob(Base):
    __tablename__ = "stored_blobs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    signed_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    content_type: Mapped[str] = mapped_column(String(100), nullable=False, default="application/octet-stream")
    byte_size: Mapped[int] = mapped_column(Integer, nullable=False)
    checksum: Mapped[str] = mapped_column(String(64), nullable=False)

    data: Mapped[bytes | None] = mapped_column(LargeBinary, nullable=True)
    purged_at: Mapped[object | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[object] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())

    @property
    def is_purged(self) -> bool:
        return self.purged_at is not None
