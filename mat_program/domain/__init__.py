from .context import SubmissionContext  # noqa: F401
from .statuses import (  # noqa: F401
    ApplicationStatus,
    DocumentSigningStatus,
    FaxDeliveryStatus,
    MedicalCertificationStatus,
    ProofStatus,
    ProofType,
    ReviewStatus,
    SubmissionMethod,
    all_proofs_approved,
    can_transition,
    can_transition_proof,
    can_transition_signing,
)
