from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import UTC, datetime, timedelta

import pytest

from activity_responses.clients.stub import StubFileStorageClient
from activity_responses.domain.errors import DomainInvariantError, DuplicateSubmission, NotFound
from activity_responses.domain.grading import grade_submission
from activity_responses.domain.identity import IdentityClaims, IdentitySlots, NumericId, OpaqueId
from activity_responses.domain.models import AttachmentState, NewSubmission, SubmissionSnapshot
from activity_responses.domain.use_cases.submissions import SubmissionService
from tests.integration.postgres_test_utils import (
    MIGRATION_DOWN,
    MIGRATION_UP,
    fresh_repository,
    require_postgres,
    run_migration,
)


def _draft(activity_id: int, state: AttachmentState = AttachmentState.NONE, **slots: object) -> NewSubmission:
    return NewSubmission(
        activity_id=activity_id,
        identity=IdentitySlots(**slots),  # type: ignore[arg-type]
        student_name="Ann",
        attachment_state=state,
    )


@pytest.mark.integration
def test_migration_up_down_up_contract() -> None:
    dsn = require_postgres()

    async def _run() -> None:
        async with fresh_repository(dsn) as repository:
            assert await repository.get(1) is None
        await run_migration(dsn=dsn, path=MIGRATION_DOWN)
        await run_migration(dsn=dsn, path=MIGRATION_UP)

    asyncio.run(_run())


@pytest.mark.integration
def test_insert_and_lookup_by_every_slot() -> None:
    dsn = require_postgres()

    async def _run() -> None:
        async with fresh_repository(dsn) as repository:
            created = await repository.insert(_draft(5, student_id=9, creator_id="legacy", user_id="sso"))

            assert created.identity == IdentitySlots(student_id=9, creator_id="legacy", user_id="sso")
            assert [row.submission_id for row in await repository.list_by_activity_and_student_id(5, 9)] == [
                created.submission_id
            ]
            for identity in (NumericId(9), OpaqueId("legacy"), OpaqueId("sso")):
                rows = await repository.list_by_student_identity(identity)
                assert [row.submission_id for row in rows] == [created.submission_id]

    asyncio.run(_run())


@pytest.mark.integration
def test_unique_identity_index_rejects_cross_slot_duplicate() -> None:
    dsn = require_postgres()

    async def _run() -> None:
        async with fresh_repository(dsn) as repository:
            await repository.insert(_draft(42, creator_id="abc-uuid"))

            with pytest.raises(DuplicateSubmission):
                await repository.insert(_draft(42, user_id="abc-uuid"))

            assert len(await repository.list_by_activity(42)) == 1
            other = await repository.insert(_draft(43, user_id="abc-uuid"))
            assert other.activity_id == 43

    asyncio.run(_run())


@pytest.mark.integration
def test_concurrent_creates_store_exactly_one_row() -> None:
    dsn = require_postgres()

    async def _run() -> list[object]:
        async with fresh_repository(dsn) as repository:
            service = SubmissionService(repository=repository, storage=StubFileStorageClient())
            results = await asyncio.gather(
                *(
                    service.create_submission(
                        activity_id=42,
                        claims=IdentityClaims(student_id=7),
                        student_name="Ann",
                    )
                    for _ in range(6)
                ),
                return_exceptions=True,
            )
            assert len(await repository.list_by_activity(42)) == 1
            return results

    results = asyncio.run(_run())
    assert sum(isinstance(item, SubmissionSnapshot) for item in results) == 1
    assert all(isinstance(item, DuplicateSubmission) for item in results if not isinstance(item, SubmissionSnapshot))


@pytest.mark.integration
def test_update_persists_mutable_fields_and_guards_immutable_ones() -> None:
    dsn = require_postgres()
    graded_at = datetime(2026, 3, 1, tzinfo=UTC)

    async def _run() -> None:
        async with fresh_repository(dsn) as repository:
            created = await repository.insert(_draft(1, student_id=7))

            graded = await grade_submission(
                repository,
                submission_id=created.submission_id,
                value=10,
                grader_name="Teacher",
                grader_id="t-1",
                now=graded_at,
            )
            assert (graded.grade, graded.graded_at, graded.grader_id) == (10.0, graded_at, "t-1")
            assert [row.submission_id for row in await repository.list_by_grader_opaque_id("t-1")] == [
                created.submission_id
            ]

            with pytest.raises(DomainInvariantError):
                await repository.update(
                    created.submission_id,
                    lambda current: replace(current, student_name="Eve"),
                )
            with pytest.raises(NotFound):
                await repository.update(999, lambda current: current)

    asyncio.run(_run())


@pytest.mark.integration
def test_file_flow_and_stale_pending_listing() -> None:
    dsn = require_postgres()

    async def _run() -> None:
        async with fresh_repository(dsn) as repository:
            storage = StubFileStorageClient()
            service = SubmissionService(repository=repository, storage=storage)
            attached = await service.create_submission_with_file(
                activity_id=2,
                claims=IdentityClaims(student_id=7),
                student_name="Ann",
                payload=b"hello",
                filename="answer.txt",
            )
            pending = await repository.insert(_draft(2, AttachmentState.PENDING, student_id=8))

            assert attached.attachment_state is AttachmentState.ATTACHED
            assert attached.attachment_ref == "file-1"

            stale = await repository.list_stale_pending(datetime.now(tz=UTC) + timedelta(minutes=1))
            assert [row.submission_id for row in stale] == [pending.submission_id]

            await service.delete(attached.submission_id)
            assert await repository.get(attached.submission_id) is None
            assert storage.deletes == ["file-1"]
            assert await repository.delete(attached.submission_id) is False

    asyncio.run(_run())
