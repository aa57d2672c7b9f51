from __future__ import annotations

from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel

from mat_program.schemas.application import ApplicationFields

ProofAction = Literal["accept", "approved", "reject", "rejected", "none", "not_requested"]


class PersonAttributes(BaseModel):
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    phone: str | None = None
    communication_preference: Literal["email", "letter"] | None = None
    disability_selected: bool | None = None

    # Contact updates for an existing dependent
    dependent_email: str | None = None
    dependent_phone: str | None = None


class PaperApplicationPayload(BaseModel):
    """Fields keyed in from a paper form.

    Files are uploaded first (`POST /api/v1/uploads`) and referenced here by
    their signed id.
    """

    applicant_type: Literal["self", "dependent"] = "self"
    guardian_id: UUID | None = None
    dependent_id: UUID | None = None
    relationship_type: str | None = None
    constituent: PersonAttributes | None = None
    new_guardian_attributes: PersonAttributes | None = None

    application: ApplicationFields | None = None
    no_medical_provider_information: bool = False

    income_proof_action: ProofAction | None = None
    income_proof_signed_id: str | None = None
    income_proof_rejection_reason: str | None = None
    income_proof_rejection_notes: str | None = None

    residency_proof_action: ProofAction | None = None
    residency_proof_signed_id: str | None = None
    residency_proof_rejection_reason: str | None = None
    residency_proof_rejection_notes: str | None = None

    medical_certification_action: ProofAction | None = None
    medical_certification_signed_id: str | None = None
    medical_certification_rejection_reason: str | None = None
    medical_certification_rejection_notes: str | None = None

    skip_income_validation: bool = False

    def to_params(self) -> dict[str, Any]:
        params = self.model_dump(exclude={"skip_income_validation"}, exclude_none=True)
        for key in ("guardian_id", "dependent_id"):
            if key in params:
                params[key] = str(params[key])
        return params
