"""Admin-entered (paper) applications.

Staff key in a signed paper form: the applicant (or guardian and dependent),
the application fields and a decision per proof. Everything up to the proof
decisions runs in one transaction; constituent notifications and the
creation/update audit are sent after commit and never fail the operation.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from mat_program.config import settings
from mat_program.crud.application import has_active_application
from mat_program.crud.policy import get_policy_value
from mat_program.crud.proof_review import list_reviews_for_application
from mat_program.crud.user import get_guardian_relationship, guardian_relationships, users
from mat_program.domain.context import SubmissionContext
from mat_program.domain.statuses import ApplicationStatus, ReviewStatus
from mat_program.models.application import Application
from mat_program.models.base import utcnow
from mat_program.models.user import User
from mat_program.services.audit import AuditEventService
from mat_program.services.intake import APPLICATION_FIELDS, clean_attrs, create_application, reapplication_date
from mat_program.services.notifications import NotificationService
from mat_program.services.proof_attachment import (
    MedicalCertificationAttachmentService,
    ProofAttachmentService,
    medical_certification_service,
    proof_attachment_service,
)
from mat_program.services.result import Failure, ServiceResult, Success
from mat_program.services.storage import has_usable_file

logger = logging.getLogger(__name__)

PROOF_KINDS = ("income", "residency", "medical_certification")
MAX_HOUSEHOLD_SIZE = 8
USER_FIELDS = ("first_name", "last_name", "email", "phone", "communication_preference", "disability_selected")


async def calculate_income_threshold(session: AsyncSession, household_size: Any) -> int | None:
    """Annual income ceiling for a household: FPL for its size times the program modifier."""

    try:
        size = int(household_size)
    except (TypeError, ValueError):
        return None
    if size < 1:
        return None

    size = min(size, MAX_HOUSEHOLD_SIZE)
    base = await get_policy_value(session, f"fpl_{size}_person")
    if base is None:
        return None

    modifier = await get_policy_value(session, "fpl_modifier_percentage", settings.fpl_modifier_percentage)
    return base * modifier // 100


def _action_key(proof_type: str) -> str:
    return "medical_certification_action" if proof_type == "medical_certification" else f"{proof_type}_proof_action"


def _param_key(proof_type: str, suffix: str) -> str:
    # medical_certification, medical_certification_signed_id, ...
    # income_proof, income_proof_signed_id, ...
    stem = proof_type if proof_type == "medical_certification" else f"{proof_type}_proof"
    return f"{stem}{suffix}"


def _present(attrs: Any) -> bool:
    return isinstance(attrs, dict) and any(v not in (None, "") for v in attrs.values())


class PaperApplicationService:
    def __init__(
        self,
        params: dict[str, Any],
        admin: User,
        *,
        skip_income_validation: bool = False,
        skip_proof_processing: bool = False,
        request_id: str | None = None,
        proofs: ProofAttachmentService | None = None,
        certifications: MedicalCertificationAttachmentService | None = None,
    ) -> None:
        self.params = dict(params or {})
        self.admin = admin
        self.skip_income_validation = skip_income_validation
        self.skip_proof_processing = skip_proof_processing
        self.context = SubmissionContext.paper(request_id=request_id)
        self.proofs = proofs or proof_attachment_service
        self.certifications = certifications or medical_certification_service

        self.errors: list[str] = []
        self.application: Application | None = None
        self.constituent: User | None = None
        self.guardian: User | None = None
        self.new_users: list[User] = []

    def _fail(self, message: str) -> bool:
        self.errors.append(message)
        return False

    def _failure(self, fallback: str) -> Failure:
        message = "; ".join(self.errors) or fallback
        return Failure(message, data={"errors": list(self.errors)})

    async def create(self, session: AsyncSession) -> ServiceResult:
        try:
            ok = (
                await self._process_constituent(session)
                and await self._create_application(session)
                and (self.skip_proof_processing or await self._process_proofs(session))
            )
        except Exception as e:
            logger.exception("Failed to create paper application")
            await session.rollback()
            self.errors.append(str(e))
            return self._failure("Failed to create paper application")

        if not ok:
            await session.rollback()
            return self._failure("Paper application could not be created")

        await session.commit()
        await self._after_commit(session, "create")
        return Success(self.application, "Paper application created")

    async def update(self, session: AsyncSession, application: Application) -> ServiceResult:
        self.application = application
        self.constituent = await session.get(User, application.user_id)
        changed: list[str] = []

        try:
            ok = await self._update_attributes(session, changed) and await self._process_proofs(session)
        except Exception as e:
            logger.exception("Failed to update paper application application_id=%s", application.id)
            await session.rollback()
            self.errors.append(str(e))
            return self._failure("Failed to update paper application")

        if not ok:
            await session.rollback()
            return self._failure("Paper application could not be updated")

        await session.commit()
        await self._after_commit(session, "update", updated_attributes=changed)
        return Success(self.application, "Paper application updated")

    # Applicant

    async def _process_constituent(self, session: AsyncSession) -> bool:
        p = self.params
        applicant = p.get("constituent")
        is_dependent = p.get("applicant_type") == "dependent"

        if is_dependent and p.get("guardian_id") and p.get("dependent_id"):
            return await self._existing_dependent(session)
        if is_dependent and (p.get("guardian_id") or _present(p.get("new_guardian_attributes"))) and _present(applicant):
            return await self._guardian_with_new_dependent(session)
        if not is_dependent and _present(applicant):
            return await self._self_applicant(session)

        return self._fail("Sufficient constituent or guardian/dependent parameters missing.")

    async def _existing_dependent(self, session: AsyncSession) -> bool:
        guardian = await session.get(User, _uuid(self.params["guardian_id"]))
        if guardian is None:
            return self._fail("Guardian not found")
        dependent = await session.get(User, _uuid(self.params["dependent_id"]))
        if dependent is None:
            return self._fail("Dependent not found")

        if not await self._ensure_relationship(session, guardian, dependent):
            return False

        if _present(self.params.get("constituent")):
            self._update_dependent_contact(dependent, self.params["constituent"])
            await session.flush()

        self.guardian, self.constituent = guardian, dependent
        return await self._validate_eligibility(session, "dependent")

    async def _guardian_with_new_dependent(self, session: AsyncSession) -> bool:
        p = self.params
        if p.get("guardian_id"):
            guardian = await session.get(User, _uuid(p["guardian_id"]))
            if guardian is None:
                return self._fail("Guardian not found")
        else:
            guardian = await self._create_user(session, p["new_guardian_attributes"])
            if guardian is None:
                return False

        dependent = await self._create_user(session, p["constituent"])
        if dependent is None:
            return False
        if not await self._ensure_relationship(session, guardian, dependent):
            return False

        self.guardian, self.constituent = guardian, dependent
        return await self._validate_eligibility(session, "dependent")

    async def _self_applicant(self, session: AsyncSession) -> bool:
        user = await self._create_user(session, self.params["constituent"])
        if user is None:
            return False
        self.constituent = user
        return await self._validate_eligibility(session, "constituent")

    async def _create_user(self, session: AsyncSession, attrs: dict[str, Any]) -> User | None:
        data = {k: v for k, v in attrs.items() if k in USER_FIELDS and v not in (None, "")}
        if not data.get("first_name") or not data.get("last_name"):
            self._fail("First and last name are required")
            return None

        email = data.get("email")
        if email and await users.find_one(session, email=email) is not None:
            self._fail(f"Email {email} has already been taken")
            return None

        data["role"] = "constituent"
        user = await users.create(session, obj_in=data)
        self.new_users.append(user)
        return user

    def _update_dependent_contact(self, dependent: User, attrs: dict[str, Any]) -> None:
        updates = {}
        if attrs.get("dependent_email"):
            updates["email"] = attrs["dependent_email"]
        if attrs.get("dependent_phone"):
            updates["phone"] = attrs["dependent_phone"]
        for field, value in updates.items():
            setattr(dependent, field, value)
        if updates:
            logger.info("Updated contact info for dependent %s: %s", dependent.id, ", ".join(updates))

    async def _ensure_relationship(self, session: AsyncSession, guardian: User, dependent: User) -> bool:
        if await get_guardian_relationship(session, guardian_id=guardian.id, dependent_id=dependent.id) is not None:
            return True

        relationship_type = self.params.get("relationship_type")
        if not relationship_type:
            return self._fail("Relationship type required to relate guardian and dependent")

        try:
            async with session.begin_nested():
                await guardian_relationships.create(
                    session,
                    obj_in={"guardian_id": guardian.id, "dependent_id": dependent.id, "relationship_type": relationship_type},
                )
        except IntegrityError as e:
            return self._fail(f"Failed to create relationship: {e.orig}")
        return True

    async def _validate_eligibility(self, session: AsyncSession, who: str) -> bool:
        if await has_active_application(session, user_id=self.constituent.id):
            return self._fail(f"This {who} already has an active or pending application.")

        eligible_on = await reapplication_date(session, user_id=self.constituent.id)
        if eligible_on is not None and eligible_on > utcnow():
            label = "Dependent" if who == "dependent" else "Constituent"
            return self._fail(f"{label} is not yet eligible. Reapply after {eligible_on.strftime('%B %d, %Y')}")
        return True

    # Application

    async def _create_application(self, session: AsyncSession) -> bool:
        attrs = self.params.get("application")
        if not attrs:
            return self._fail("Application params missing")

        if not self.skip_income_validation and not await self._income_within_threshold(session, attrs):
            return False

        result = await create_application(
            session,
            user=self.constituent,
            attrs=attrs,
            status=self.initial_status(),
            managing_guardian=self.guardian,
            context=self.context,
            audit=False,
        )
        if not result.ok:
            return self._fail(result.message)

        self.application = result.data
        return True

    async def _income_within_threshold(self, session: AsyncSession, attrs: dict[str, Any]) -> bool:
        threshold = await calculate_income_threshold(session, attrs.get("household_size"))
        if threshold is None:
            return self._fail("Unable to determine the income threshold for the household size.")

        try:
            income = int(str(attrs.get("annual_income") or 0).replace(",", "").split(".")[0])
        except ValueError:
            return self._fail("Annual income must be a number")

        if income <= threshold:
            return True
        return self._fail("Income exceeds the maximum threshold for the household size.")

    def initial_status(self) -> ApplicationStatus:
        if self.params.get("no_medical_provider_information"):
            return ApplicationStatus.AWAITING_DOCUMENTS

        actions = (self.params.get("income_proof_action"), self.params.get("residency_proof_action"))
        if any(a in {"none", "reject"} for a in actions):
            return ApplicationStatus.AWAITING_DOCUMENTS
        return ApplicationStatus.IN_PROGRESS

    async def _update_attributes(self, session: AsyncSession, changed: list[str]) -> bool:
        attrs = self.params.get("application")
        if not attrs:
            return True

        try:
            data = clean_attrs(attrs)
        except ValueError:
            return self._fail("Household size and annual income must be numbers")

        for field in APPLICATION_FIELDS:
            if field in data and getattr(self.application, field) != data[field]:
                setattr(self.application, field, data[field])
                changed.append(field)
        await session.flush()
        return True

    # Proofs

    async def _process_proofs(self, session: AsyncSession) -> bool:
        for proof_type in PROOF_KINDS:
            if not await self._process_proof(session, proof_type):
                return False
        return True

    async def _process_proof(self, session: AsyncSession, proof_type: str) -> bool:
        action = self.params.get(_action_key(proof_type))
        if action in {"accept", "approved"}:
            return await self._accept_proof(session, proof_type)
        if action in {"reject", "rejected"}:
            return await self._reject_proof(session, proof_type)
        return True

    async def _accept_proof(self, session: AsyncSession, proof_type: str) -> bool:
        blob_or_file = self.params.get(_param_key(proof_type, ""))
        if not has_usable_file(blob_or_file):
            blob_or_file = self.params.get(_param_key(proof_type, "_signed_id"))
        if not has_usable_file(blob_or_file):
            return self._fail(f"Please upload a file for {proof_type} proof before approving")

        if proof_type == "medical_certification":
            result = await self.certifications.attach_certification(
                session,
                application=self.application,
                blob_or_file=blob_or_file,
                status="approved",
                admin=self.admin,
                context=self.context,
            )
        else:
            result = await self.proofs.attach_proof(
                session,
                application=self.application,
                proof_type=proof_type,
                blob_or_file=blob_or_file,
                status="approved",
                admin=self.admin,
                context=self.context,
            )

        if not result.ok:
            return self._fail(result.message)
        return True

    async def _reject_proof(self, session: AsyncSession, proof_type: str) -> bool:
        reason = self.params.get(_param_key(proof_type, "_rejection_reason"))
        notes = self.params.get(_param_key(proof_type, "_rejection_notes"))

        if proof_type == "medical_certification":
            result = await self.certifications.reject_certification(
                session,
                application=self.application,
                admin=self.admin,
                reason=reason,
                notes=notes,
                context=self.context,
            )
        else:
            result = await self.proofs.reject_proof_without_attachment(
                session,
                application=self.application,
                proof_type=proof_type,
                admin=self.admin,
                reason=reason,
                notes=notes,
                context=self.context,
                notify=False,
            )

        if not result.ok:
            return self._fail(f"Error rejecting {proof_type} proof: {result.message}")
        return True

    # After commit

    async def _after_commit(self, session: AsyncSession, operation: str, **extra: Any) -> None:
        try:
            await self._send_notifications(session)
            await self._audit(session, operation, **extra)
            await session.commit()
        except Exception:
            logger.exception(
                "paper application follow-up failed operation=%s application_id=%s",
                operation,
                getattr(self.application, "id", None),
            )
            await session.rollback()
            await session.refresh(self.application)

    async def _send_notifications(self, session: AsyncSession) -> None:
        reviews = await list_reviews_for_application(
            session,
            application_id=self.application.id,
            status=ReviewStatus.REJECTED.value,
        )
        for review in reviews:
            if review.proof_type == "medical_certification":
                continue
            await NotificationService.create_and_deliver(
                session,
                type="proof_rejected",
                recipient=self.constituent,
                actor=self.admin,
                notifiable=review,
                metadata={
                    "constituent_full_name": self.constituent.full_name,
                    "organization_name": settings.organization_name,
                    "proof_type": review.proof_type,
                    "rejection_reason": review.rejection_reason or "Document did not meet requirements",
                },
                channel=self.constituent.communication_preference or "email",
            )

        for user in dict.fromkeys(self.new_users):
            await NotificationService.create_and_deliver(
                session,
                type="account_created",
                recipient=user,
                actor=self.admin,
                notifiable=self.application,
                metadata={"first_name": user.first_name, "email": user.email},
                channel=user.communication_preference or "email",
            )

    async def _audit(self, session: AsyncSession, operation: str, **extra: Any) -> None:
        if operation == "create":
            await AuditEventService.log(
                session,
                action="application_created",
                actor=self.admin,
                auditable=self.application,
                metadata={"submission_method": "paper", "initial_status": self.application.status},
                request_id=self.context.request_id,
            )
            return

        proof_actions = {
            "income": self.params.get("income_proof_action"),
            "residency": self.params.get("residency_proof_action"),
        }
        await AuditEventService.log(
            session,
            action="application_updated",
            actor=self.admin,
            auditable=self.application,
            metadata={
                "submission_method": "paper",
                "updated_attributes": extra.get("updated_attributes", []),
                "proof_actions": {k: v for k, v in proof_actions.items() if v},
            },
            request_id=self.context.request_id,
        )


def _uuid(value) -> uuid.UUID:
    return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
