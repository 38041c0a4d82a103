from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum

from activity_responses.domain.identity import IdentitySlots, SubmissionIdentity


# Keep synchronized with the attachment_state CHECK constraint in
# db/migrations/000001_bootstrap.up.sql.
class AttachmentState(StrEnum):
    NONE = "none"
    PENDING = "pending"
    ATTACHED = "attached"


class GradeState(StrEnum):
    UNGRADED = "ungraded"
    GRADED = "graded"


@dataclass(frozen=True)
class NewSubmission:
    activity_id: int
    identity: IdentitySlots
    student_name: str
    attachment_state: AttachmentState = AttachmentState.NONE


@dataclass(frozen=True)
class SubmissionSnapshot:
    submission_id: int
    activity_id: int
    identity: IdentitySlots
    student_name: str
    attachment_state: AttachmentState
    created_at: datetime
    updated_at: datetime
    attachment_ref: str | None = None
    grade: float | None = None
    graded_at: datetime | None = None
    grader_name: str | None = None
    grader_id: str | None = None

    @property
    def primary_identity(self) -> SubmissionIdentity:
        return self.identity.primary()

    @property
    def grade_state(self) -> GradeState:
        return GradeState.GRADED if self.grade is not None else GradeState.UNGRADED


# Fields a store update is allowed to persist; everything else is fixed at insert.
MUTABLE_FIELDS: tuple[str, ...] = (
    "attachment_ref",
    "attachment_state",
    "grade",
    "graded_at",
    "grader_name",
    "grader_id",
)

IMMUTABLE_FIELDS: tuple[str, ...] = (
    "submission_id",
    "activity_id",
    "identity",
    "student_name",
    "created_at",
)
