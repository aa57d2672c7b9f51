from .application import (
    ApplicationCreate,
    ApplicationRead,
    AuditEventRead,
    ProofReviewRead,
    StatusChangeRead,
)
from .paper_application import PaperApplicationPayload
from .webhooks import DocuSealWebhookPayload

__all__ = [
    "ApplicationCreate",
    "ApplicationRead",
    "AuditEventRead",
    "DocuSealWebhookPayload",
    "PaperApplicationPayload",
    "ProofReviewRead",
    "StatusChangeRead",
]
