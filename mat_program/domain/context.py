from __future__ import annotations

from dataclasses import dataclass

from .statuses import SubmissionMethod


@dataclass(frozen=True)
class SubmissionContext:
    """How a mutation entered the system.

    Passed explicitly down the service call chain. Paper submissions are keyed
    in by staff from signed forms, so the online-only completeness checks do
    not apply to them.
    """

    is_paper: bool = False
    submission_method: SubmissionMethod = SubmissionMethod.ONLINE
    request_id: str | None = None

    @classmethod
    def paper(cls, *, request_id: str | None = None) -> "SubmissionContext":
        return cls(is_paper=True, submission_method=SubmissionMethod.PAPER, request_id=request_id)

    @classmethod
    def online(cls, *, request_id: str | None = None) -> "SubmissionContext":
        return cls(request_id=request_id)

    @classmethod
    def webhook(cls, *, request_id: str | None = None) -> "SubmissionContext":
        return cls(submission_method=SubmissionMethod.DOCUMENT_SIGNING, request_id=request_id)


ONLINE = SubmissionContext()
