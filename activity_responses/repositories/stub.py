from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime

from activity_responses.domain.contracts import SubmissionMutator
from activity_responses.domain.errors import DomainInvariantError, DuplicateSubmission, NotFound
from activity_responses.domain.identity import SubmissionIdentity
from activity_responses.domain.models import (
    IMMUTABLE_FIELDS,
    AttachmentState,
    NewSubmission,
    SubmissionSnapshot,
)


def _ordered(rows: list[SubmissionSnapshot]) -> list[SubmissionSnapshot]:
    return sorted(rows, key=lambda row: (row.created_at, row.submission_id))


@dataclass
class InMemorySubmissionRepository:
    """Non-network store with the same uniqueness rules as the Postgres schema.

    No method awaits between reading and writing its indexes, so each call is
    atomic with respect to other tasks on the event loop.
    """

    rows: dict[int, SubmissionSnapshot] = field(default_factory=dict)
    identity_index: dict[tuple[int, str], int] = field(default_factory=dict)
    inserts: list[int] = field(default_factory=list)
    deletes: list[int] = field(default_factory=list)
    fail_updates: bool = False
    next_submission_id: int = 1

    async def insert(self, draft: NewSubmission) -> SubmissionSnapshot:
        keys = draft.identity.keys()
        if not keys:
            raise DomainInvariantError("submission identity has no populated slot")
        for key in keys:
            if (draft.activity_id, key) in self.identity_index:
                raise DuplicateSubmission("student has already submitted a response for this activity")

        now = datetime.now(tz=UTC)
        row = SubmissionSnapshot(
            submission_id=self.next_submission_id,
            activity_id=draft.activity_id,
            identity=draft.identity,
            student_name=draft.student_name,
            attachment_state=draft.attachment_state,
            created_at=now,
            updated_at=now,
        )
        self.next_submission_id += 1
        self.rows[row.submission_id] = row
        for key in keys:
            self.identity_index[(draft.activity_id, key)] = row.submission_id
        self.inserts.append(row.submission_id)
        return row

    async def get(self, submission_id: int) -> SubmissionSnapshot | None:
        return self.rows.get(submission_id)

    async def list_by_activity(self, activity_id: int) -> list[SubmissionSnapshot]:
        return _ordered([row for row in self.rows.values() if row.activity_id == activity_id])

    async def list_by_activity_and_student_id(
        self,
        activity_id: int,
        student_id: int,
    ) -> list[SubmissionSnapshot]:
        return _ordered(
            [
                row
                for row in self.rows.values()
                if row.activity_id == activity_id and row.identity.student_id == student_id
            ]
        )

    async def list_by_student_identity(self, identity: SubmissionIdentity) -> list[SubmissionSnapshot]:
        return _ordered([row for row in self.rows.values() if row.identity.matches(identity)])

    async def list_by_grader_opaque_id(self, grader_id: str) -> list[SubmissionSnapshot]:
        return _ordered([row for row in self.rows.values() if row.grader_id == grader_id])

    async def update(self, submission_id: int, mutator: SubmissionMutator) -> SubmissionSnapshot:
        current = self.rows.get(submission_id)
        if current is None:
            raise NotFound(f"submission {submission_id} not found")
        if self.fail_updates:
            raise DomainInvariantError("update rejected by store")

        changed = mutator(current)
        for name in IMMUTABLE_FIELDS:
            if getattr(changed, name) != getattr(current, name):
                raise DomainInvariantError(f"field '{name}' is immutable")

        updated = replace(changed, updated_at=datetime.now(tz=UTC))
        self.rows[submission_id] = updated
        return updated

    async def delete(self, submission_id: int) -> bool:
        row = self.rows.pop(submission_id, None)
        if row is None:
            return False
        for key in row.identity.keys():
            self.identity_index.pop((row.activity_id, key), None)
        self.deletes.append(submission_id)
        return True

    async def list_stale_pending(self, older_than: datetime) -> list[SubmissionSnapshot]:
        return _ordered(
            [
                row
                for row in self.rows.values()
                if row.attachment_state is AttachmentState.PENDING and row.created_at < older_than
            ]
        )
