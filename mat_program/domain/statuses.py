"""Status vocabularies for an application and its proofs.

Each dimension is a closed set of values; the legal moves between values are
expressed as pure functions so services never scatter the rules across
conditionals.
"""

from __future__ import annotations

import enum


class ApplicationStatus(str, enum.Enum):
    DRAFT = "draft"
    IN_PROGRESS = "in_progress"
    APPROVED = "approved"
    REJECTED = "rejected"
    NEEDS_INFORMATION = "needs_information"
    REMINDER_SENT = "reminder_sent"
    AWAITING_DOCUMENTS = "awaiting_documents"
    ARCHIVED = "archived"


class ProofStatus(str, enum.Enum):
    NOT_REVIEWED = "not_reviewed"
    APPROVED = "approved"
    REJECTED = "rejected"


class MedicalCertificationStatus(str, enum.Enum):
    NOT_REQUESTED = "not_requested"
    REQUESTED = "requested"
    RECEIVED = "received"
    APPROVED = "approved"
    REJECTED = "rejected"


class DocumentSigningStatus(str, enum.Enum):
    NOT_SENT = "not_sent"
    SENT = "sent"
    OPENED = "opened"
    SIGNED = "signed"
    DECLINED = "declined"


class ProofType(str, enum.Enum):
    INCOME = "income"
    RESIDENCY = "residency"
    MEDICAL_CERTIFICATION = "medical_certification"


class SubmissionMethod(str, enum.Enum):
    ONLINE = "online"
    PAPER = "paper"
    PHONE = "phone"
    EMAIL = "email"
    FAX = "fax"
    DOCUMENT_SIGNING = "document_signing"


class ReviewStatus(str, enum.Enum):
    APPROVED = "approved"
    REJECTED = "rejected"


class FaxDeliveryStatus(str, enum.Enum):
    SENDING = "sending"
    DELIVERED = "delivered"
    RECEIVED = "received"
    FAILED = "failed"
    UNKNOWN = "unknown"

    @classmethod
    def from_provider(cls, provider_status: str | None) -> "FaxDeliveryStatus":
        return _FAX_PROVIDER_MAP.get((provider_status or "").lower(), cls.UNKNOWN)


_FAX_PROVIDER_MAP = {
    "queued": FaxDeliveryStatus.SENDING,
    "processing": FaxDeliveryStatus.SENDING,
    "sending": FaxDeliveryStatus.SENDING,
    "delivered": FaxDeliveryStatus.DELIVERED,
    "received": FaxDeliveryStatus.RECEIVED,
    "no-answer": FaxDeliveryStatus.FAILED,
    "busy": FaxDeliveryStatus.FAILED,
    "failed": FaxDeliveryStatus.FAILED,
    "canceled": FaxDeliveryStatus.FAILED,
}

FAX_TERMINAL_PROVIDER_STATUSES = frozenset({"delivered", "failed", "no-answer", "busy", "canceled"})
FAX_FAILED_PROVIDER_STATUSES = frozenset({"failed", "no-answer", "busy", "canceled"})


# Statuses from which an application may still be worked on by staff.
_OPEN_STATUSES = frozenset(
    {
        ApplicationStatus.IN_PROGRESS,
        ApplicationStatus.NEEDS_INFORMATION,
        ApplicationStatus.REMINDER_SENT,
        ApplicationStatus.AWAITING_DOCUMENTS,
    }
)

# An applicant with an application in one of these states may start a new one.
INACTIVE_STATUSES = frozenset(
    {ApplicationStatus.DRAFT, ApplicationStatus.ARCHIVED, ApplicationStatus.REJECTED}
)

TERMINAL_STATUSES = frozenset(
    {ApplicationStatus.APPROVED, ApplicationStatus.REJECTED, ApplicationStatus.ARCHIVED}
)


def can_transition(from_status: ApplicationStatus | str, to_status: ApplicationStatus | str) -> bool:
    src = ApplicationStatus(from_status)
    dst = ApplicationStatus(to_status)

    if src == dst:
        return False

    if src == ApplicationStatus.DRAFT:
        return dst in {
            ApplicationStatus.IN_PROGRESS,
            ApplicationStatus.NEEDS_INFORMATION,
            ApplicationStatus.AWAITING_DOCUMENTS,
            ApplicationStatus.ARCHIVED,
        }

    if src in _OPEN_STATUSES:
        return dst != ApplicationStatus.DRAFT

    if src in {ApplicationStatus.APPROVED, ApplicationStatus.REJECTED}:
        return dst == ApplicationStatus.ARCHIVED

    # archived
    return False


def can_transition_proof(from_status: ProofStatus | str, to_status: ProofStatus | str) -> bool:
    src = ProofStatus(from_status)
    dst = ProofStatus(to_status)

    allowed = {
        ProofStatus.NOT_REVIEWED: {ProofStatus.APPROVED, ProofStatus.REJECTED},
        # resubmission, or approval after resubmission and re-review
        ProofStatus.REJECTED: {ProofStatus.NOT_REVIEWED, ProofStatus.APPROVED, ProofStatus.REJECTED},
        # admin reversal
        ProofStatus.APPROVED: {ProofStatus.REJECTED},
    }
    return dst in allowed[src]


def can_transition_signing(
    from_status: DocumentSigningStatus | str,
    to_status: DocumentSigningStatus | str,
) -> bool:
    src = DocumentSigningStatus(from_status)
    dst = DocumentSigningStatus(to_status)

    allowed = {
        DocumentSigningStatus.NOT_SENT: {DocumentSigningStatus.SENT},
        DocumentSigningStatus.SENT: {
            DocumentSigningStatus.SENT,
            DocumentSigningStatus.OPENED,
            DocumentSigningStatus.SIGNED,
            DocumentSigningStatus.DECLINED,
        },
        DocumentSigningStatus.OPENED: {
            DocumentSigningStatus.SENT,
            DocumentSigningStatus.OPENED,
            DocumentSigningStatus.SIGNED,
            DocumentSigningStatus.DECLINED,
        },
        DocumentSigningStatus.SIGNED: {DocumentSigningStatus.SENT, DocumentSigningStatus.SIGNED},
        DocumentSigningStatus.DECLINED: {DocumentSigningStatus.SENT, DocumentSigningStatus.DECLINED},
    }
    return dst in allowed[src]


def all_proofs_approved(
    income: ProofStatus | str,
    residency: ProofStatus | str,
    medical_certification: MedicalCertificationStatus | str,
) -> bool:
    return (
        ProofStatus(income) == ProofStatus.APPROVED
        and ProofStatus(residency) == ProofStatus.APPROVED
        and MedicalCertificationStatus(medical_certification) == MedicalCertificationStatus.APPROVED
    )
