# Import models here so Alembic can discover them via metadata
from .base import Base  # noqa: F401
from .user import User  # noqa: F401
from .guardian_relationship import GuardianRelationship  # noqa: F401
from .stored_blob import StoredBlob  # noqa: F401
from .application import Application  # noqa: F401
from .proof_review import ProofReview  # noqa: F401
from .application_status_change import ApplicationStatusChange  # noqa: F401
from .audit_log import AuditLog  # noqa: F401
from .notification import Notification  # noqa: F401
from .rejection_reason import RejectionReason  # noqa: F401
from .policy import Policy  # noqa: F401
