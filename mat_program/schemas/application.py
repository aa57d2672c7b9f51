from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import AliasChoices, BaseModel, Field

from mat_program.domain.statuses import ApplicationStatus, ProofStatus, ReviewStatus


class ApplicationFields(BaseModel):
    household_size: int | None = Field(None, ge=1)
    annual_income: int | None = Field(None, ge=0)
    maryland_resident: bool | None = None
    self_certify_disability: bool | None = None

    medical_provider_name: str | None = None
    medical_provider_phone: str | None = None
    medical_provider_fax: str | None = None
    medical_provider_email: str | None = None


class ApplicationCreate(ApplicationFields):
    # Leave as draft unless the applicant submits right away.
    submit: bool = False
    skip_waiting_period: bool = False


class ApplicationRead(BaseModel):
    id: UUID
    user_id: UUID
    managing_guardian_id: UUID | None

    status: str
    submission_method: str
    application_date: datetime

    household_size: int | None
    annual_income: int | None
    medical_provider_name: str | None
    medical_provider_phone: str | None
    medical_provider_fax: str | None
    medical_provider_email: str | None

    income_proof_status: str
    residency_proof_status: str
    medical_certification_status: str
    document_signing_status: str
    document_signing_submission_id: str | None
    document_signing_request_count: int
    medical_certification_request_count: int
    medical_certification_rejection_reason: str | None

    total_rejections: int
    needs_review_since: datetime | None

    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class StatusTransitionRequest(BaseModel):
    status: ApplicationStatus
    notes: str | None = None


class ProofAttachRequest(BaseModel):
    signed_id: str = Field(..., min_length=1)
    status: str = ProofStatus.NOT_REVIEWED.value
    metadata: dict[str, Any] | None = None
    rejection_reason: str | None = None
    rejection_reason_code: str | None = None
    notes: str | None = None


class ProofRejectRequest(BaseModel):
    reason: str | None = None
    reason_code: str | None = None
    notes: str | None = None


class ProofReviewRequest(BaseModel):
    proof_type: str
    status: ReviewStatus
    rejection_reason: str | None = None
    rejection_reason_code: str | None = None
    notes: str | None = None


class ProofReviewRead(BaseModel):
    id: UUID
    application_id: UUID
    admin_id: UUID | None
    proof_type: str
    status: str
    rejection_reason: str | None
    rejection_reason_code: str | None
    notes: str | None
    submission_method: str | None
    reviewed_at: datetime

    class Config:
        from_attributes = True


class StatusChangeRead(BaseModel):
    id: UUID
    change_type: str
    from_status: str
    to_status: str
    user_id: UUID | None
    notes: str | None
    metadata: dict[str, Any] = Field(validation_alias=AliasChoices("meta", "metadata"))
    changed_at: datetime

    class Config:
        from_attributes = True


class AuditEventRead(BaseModel):
    id: UUID
    action: str
    actor_id: UUID | None
    entity_type: str | None
    entity_id: UUID | None
    metadata: dict[str, Any] = Field(validation_alias=AliasChoices("meta", "metadata"))
    request_id: str | None
    created_at: datetime

    class Config:
        from_attributes = True


class UploadRead(BaseModel):
    signed_id: str
    filename: str
    content_type: str
    byte_size: int

    class Config:
        from_attributes = True
