from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import asyncpg

from activity_responses.domain.contracts import SubmissionMutator
from activity_responses.domain.errors import DomainInvariantError, DuplicateSubmission, NotFound
from activity_responses.domain.identity import IdentitySlots, NumericId, SubmissionIdentity
from activity_responses.domain.models import (
    IMMUTABLE_FIELDS,
    AttachmentState,
    NewSubmission,
    SubmissionSnapshot,
)
from activity_responses.repositories.sql_loader import load_sql


SQL_INSERT_SUBMISSION = load_sql("insert_submission.sql")
SQL_INSERT_IDENTITY_KEY = load_sql("insert_identity_key.sql")
SQL_GET_SUBMISSION = load_sql("get_submission.sql")
SQL_GET_SUBMISSION_FOR_UPDATE = load_sql("get_submission_for_update.sql")
SQL_LIST_BY_ACTIVITY = load_sql("list_by_activity.sql")
SQL_LIST_BY_ACTIVITY_AND_STUDENT_ID = load_sql("list_by_activity_and_student_id.sql")
SQL_LIST_BY_STUDENT_NUMERIC_ID = load_sql("list_by_student_numeric_id.sql")
SQL_LIST_BY_STUDENT_OPAQUE_ID = load_sql("list_by_student_opaque_id.sql")
SQL_LIST_BY_GRADER_ID = load_sql("list_by_grader_id.sql")
SQL_UPDATE_SUBMISSION = load_sql("update_submission.sql")
SQL_DELETE_SUBMISSION = load_sql("delete_submission.sql")
SQL_LIST_STALE_PENDING = load_sql("list_stale_pending.sql")


def _is_unique_violation(exc: Exception) -> bool:
    return getattr(exc, "sqlstate", None) == "23505"


def _snapshot(row: Mapping[str, Any]) -> SubmissionSnapshot:
    return SubmissionSnapshot(
        submission_id=row["id"],
        activity_id=row["activity_id"],
        identity=IdentitySlots(
            student_id=row["student_id"],
            creator_id=row["creator_id"],
            user_id=row["user_id"],
        ),
        student_name=row["student_name"],
        attachment_state=AttachmentState(row["attachment_state"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        attachment_ref=row["attachment_ref"],
        grade=row["grade"],
        graded_at=row["graded_at"],
        grader_name=row["grader_name"],
        grader_id=row["grader_id"],
    )


@dataclass
class AsyncpgPoolManager:
    dsn: str
    min_size: int = 1
    max_size: int = 5
    pool: Any | None = None

    async def startup(self) -> None:
        self.pool = await asyncpg.create_pool(
            dsn=self.dsn,
            min_size=self.min_size,
            max_size=self.max_size,
        )

    async def shutdown(self) -> None:
        if self.pool is None:
            return
        await self.pool.close()
        self.pool = None


@dataclass
class PostgresSubmissionRepository:
    pool_manager: AsyncpgPoolManager

    def _pool(self) -> Any:
        if self.pool_manager.pool is None:
            raise RuntimeError("postgres pool is not initialized")
        return self.pool_manager.pool

    async def insert(self, draft: NewSubmission) -> SubmissionSnapshot:
        keys = draft.identity.keys()
        if not keys:
            raise DomainInvariantError("submission identity has no populated slot")

        pool = self._pool()
        async with pool.acquire() as conn:
            try:
                async with conn.transaction():
                    row = await conn.fetchrow(
                        SQL_INSERT_SUBMISSION,
                        draft.activity_id,
                        draft.identity.student_id,
                        draft.identity.creator_id,
                        draft.identity.user_id,
                        draft.student_name,
                        draft.attachment_state.value,
                    )
                    if row is None:
                        raise DomainInvariantError("failed to create submission")
                    # Each key claims its (activity, identity) slot; the primary
                    # key on the keys table rejects the second concurrent writer.
                    for key in keys:
                        await conn.execute(SQL_INSERT_IDENTITY_KEY, draft.activity_id, key, row["id"])
            except Exception as exc:
                if _is_unique_violation(exc):
                    raise DuplicateSubmission(
                        "student has already submitted a response for this activity"
                    ) from exc
                raise
        return _snapshot(row)

    async def get(self, submission_id: int) -> SubmissionSnapshot | None:
        pool = self._pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(SQL_GET_SUBMISSION, submission_id)
        if row is None:
            return None
        return _snapshot(row)

    async def list_by_activity(self, activity_id: int) -> list[SubmissionSnapshot]:
        return await self._fetch(SQL_LIST_BY_ACTIVITY, activity_id)

    async def list_by_activity_and_student_id(
        self,
        activity_id: int,
        student_id: int,
    ) -> list[SubmissionSnapshot]:
        return await self._fetch(SQL_LIST_BY_ACTIVITY_AND_STUDENT_ID, activity_id, student_id)

    async def list_by_student_identity(self, identity: SubmissionIdentity) -> list[SubmissionSnapshot]:
        if isinstance(identity, NumericId):
            return await self._fetch(SQL_LIST_BY_STUDENT_NUMERIC_ID, identity.value)
        return await self._fetch(SQL_LIST_BY_STUDENT_OPAQUE_ID, identity.value)

    async def list_by_grader_opaque_id(self, grader_id: str) -> list[SubmissionSnapshot]:
        return await self._fetch(SQL_LIST_BY_GRADER_ID, grader_id)

    async def update(self, submission_id: int, mutator: SubmissionMutator) -> SubmissionSnapshot:
        pool = self._pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(SQL_GET_SUBMISSION_FOR_UPDATE, submission_id)
                if row is None:
                    raise NotFound(f"submission {submission_id} not found")
                current = _snapshot(row)
                changed = mutator(current)
                for name in IMMUTABLE_FIELDS:
                    if getattr(changed, name) != getattr(current, name):
                        raise DomainInvariantError(f"field '{name}' is immutable")
                updated = await conn.fetchrow(
                    SQL_UPDATE_SUBMISSION,
                    submission_id,
                    changed.attachment_ref,
                    changed.attachment_state.value,
                    changed.grade,
                    changed.graded_at,
                    changed.grader_name,
                    changed.grader_id,
                )
        if updated is None:
            raise NotFound(f"submission {submission_id} not found")
        return _snapshot(updated)

    async def delete(self, submission_id: int) -> bool:
        pool = self._pool()
        async with pool.acquire() as conn:
            deleted = await conn.fetchval(SQL_DELETE_SUBMISSION, submission_id)
        return deleted is not None

    async def list_stale_pending(self, older_than: datetime) -> list[SubmissionSnapshot]:
        return await self._fetch(SQL_LIST_STALE_PENDING, older_than)

    async def _fetch(self, sql: str, *args: object) -> list[SubmissionSnapshot]:
        pool = self._pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(sql, *args)
        return [_snapshot(row) for row in rows]
