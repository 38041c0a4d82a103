from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import Protocol, runtime_checkable

from activity_responses.domain.identity import Principal, SubmissionIdentity
from activity_responses.domain.models import NewSubmission, SubmissionSnapshot

SubmissionMutator = Callable[[SubmissionSnapshot], SubmissionSnapshot]

UNIQUE_IDENTITY_CONTRACT = "UNIQUE (activity_id, identity_key)"


@runtime_checkable
class SubmissionRepository(Protocol):
    """Storage contract owning the submission lifecycle.

    At most one submission may exist per (activity, identity key). The store
    enforces this on insert, in the same transaction that writes the row,
    so concurrent inserts cannot both succeed.
    """

    async def insert(self, draft: NewSubmission) -> SubmissionSnapshot: ...

    async def get(self, submission_id: int) -> SubmissionSnapshot | None: ...

    async def list_by_activity(self, activity_id: int) -> list[SubmissionSnapshot]: ...

    async def list_by_activity_and_student_id(
        self,
        activity_id: int,
        student_id: int,
    ) -> list[SubmissionSnapshot]: ...

    async def list_by_student_identity(self, identity: SubmissionIdentity) -> list[SubmissionSnapshot]: ...

    async def list_by_grader_opaque_id(self, grader_id: str) -> list[SubmissionSnapshot]: ...

    # Row is locked while the mutator runs; only MUTABLE_FIELDS are persisted.
    async def update(self, submission_id: int, mutator: SubmissionMutator) -> SubmissionSnapshot: ...

    async def delete(self, submission_id: int) -> bool: ...

    async def list_stale_pending(self, older_than: datetime) -> list[SubmissionSnapshot]: ...


@runtime_checkable
class FileStorageClient(Protocol):
    """External file store. Delete is idempotent."""

    async def upload(self, payload: bytes, filename: str) -> str: ...

    async def download(self, file_id: str) -> bytes: ...

    async def delete(self, file_id: str) -> None: ...


@runtime_checkable
class IdentityProvider(Protocol):
    """Bearer-token claim source.

    Implementations verify the token before exposing any claim; a token that
    fails verification yields no user id, no roles and the placeholder name.
    """

    def extract_user_id(self, token: str) -> str | None: ...

    def extract_username(self, token: str) -> str: ...

    def has_role(self, token: str, role: str) -> bool: ...

    def principal(self, token: str) -> Principal | None: ...
