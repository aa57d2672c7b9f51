from __future__ import annotations

import uuid

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, JSONType, utcnow


class Application(Base):
    __tablename__ = "applications"
    __table_args__ = (
        Index("idx_applications_signing_submission", "document_signing_service", "document_signing_submission_id"),
        Index("idx_applications_user_date", "user_id", "application_date"),
        CheckConstraint(
            "status <> 'approved' OR (income_proof_status = 'approved' AND residency_proof_status = 'approved' "
            "AND medical_certification_status = 'approved')",
            name="chk_applications_approved_requires_proofs",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    managing_guardian_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    status: Mapped[str] = mapped_column(String(30), nullable=False, default="draft", server_default="draft")
    submission_method: Mapped[str] = mapped_column(String(30), nullable=False, default="online", server_default="online")
    application_date: Mapped[object] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())

    household_size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    annual_income: Mapped[int | None] = mapped_column(Integer, nullable=True)
    maryland_resident: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    self_certify_disability: Mapped[bool | None] = mapped_column(Boolean, nullable=True)

    medical_provider_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    medical_provider_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    medical_provider_fax: Mapped[str | None] = mapped_column(String(50), nullable=True)
    medical_provider_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Proofs
    income_proof_status: Mapped[str] = mapped_column(String(20), nullable=False, default="not_reviewed", server_default="not_reviewed")
    residency_proof_status: Mapped[str] = mapped_column(String(20), nullable=False, default="not_reviewed", server_default="not_reviewed")
    income_proof_blob_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("stored_blobs.id", ondelete="SET NULL"), nullable=True)
    residency_proof_blob_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("stored_blobs.id", ondelete="SET NULL"), nullable=True)
    income_verified_by_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    total_rejections: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    needs_review_since: Mapped[object | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Medical certification
    medical_certification_status: Mapped[str] = mapped_column(String(20), nullable=False, default="not_requested", server_default="not_requested")
    medical_certification_blob_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("stored_blobs.id", ondelete="SET NULL"), nullable=True)
    medical_certification_requested_at: Mapped[object | None] = mapped_column(DateTime(timezone=True), nullable=True)
    medical_certification_request_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    medical_certification_verified_by_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    medical_certification_rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    medical_certification_rejection_reason_code: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Document signing (e-signature provider)
    document_signing_status: Mapped[str] = mapped_column(String(20), nullable=False, default="not_sent", server_default="not_sent")
    document_signing_service: Mapped[str | None] = mapped_column(String(50), nullable=True)
    document_signing_submission_id: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    document_signing_submitter_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    document_signing_requested_at: Mapped[object | None] = mapped_column(DateTime(timezone=True), nullable=True)
    document_signing_signed_at: Mapped[object | None] = mapped_column(DateTime(timezone=True), nullable=True)
    document_signing_request_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    document_signing_audit_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    document_signing_document_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    meta: Mapped[dict] = mapped_column("metadata", JSONType, nullable=False, default=dict)

    created_at: Mapped[object] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    updated_at: Mapped[object] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now(), onupdate=utcnow)

    def proof_status(self, proof_type: str) -> str:
        if proof_type == "medical_certification":
            return self.medical_certification_status
        return getattr(self, f"{proof_type}_proof_status")

    def proof_blob_id(self, proof_type: str) -> uuid.UUID | None:
        if proof_type == "medical_certification":
            return self.medical_certification_blob_id
        return getattr(self, f"{proof_type}_proof_blob_id")

    @property
    def for_dependent(self) -> bool:
        return self.managing_guardian_id is not None
