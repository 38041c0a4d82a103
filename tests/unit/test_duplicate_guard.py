import asyncio
from dataclasses import dataclass

import pytest

from activity_responses.domain.duplicate_guard import has_existing_submission
from activity_responses.domain.errors import DuplicateSubmission
from activity_responses.domain.identity import IdentitySlots, NumericId, OpaqueId
from activity_responses.domain.models import NewSubmission, SubmissionSnapshot
from activity_responses.repositories.stub import InMemorySubmissionRepository


def _draft(activity_id: int, **slots: object) -> NewSubmission:
    return NewSubmission(activity_id=activity_id, identity=IdentitySlots(**slots), student_name="Ann")  # type: ignore[arg-type]


@pytest.mark.unit
def test_numeric_identity_detected_per_activity() -> None:
    async def _run() -> None:
        repository = InMemorySubmissionRepository()
        await repository.insert(_draft(42, student_id=7))

        assert await has_existing_submission(repository, 42, [NumericId(7)]) is True
        assert await has_existing_submission(repository, 43, [NumericId(7)]) is False
        assert await has_existing_submission(repository, 42, [OpaqueId("7")]) is False

    asyncio.run(_run())


@pytest.mark.unit
def test_opaque_identity_detected_across_slots() -> None:
    async def _run() -> None:
        repository = InMemorySubmissionRepository()
        await repository.insert(_draft(42, creator_id="abc-uuid"))

        assert await has_existing_submission(repository, 42, [OpaqueId("abc-uuid")]) is True
        assert await has_existing_submission(repository, 42, [OpaqueId("other")]) is False

    asyncio.run(_run())


@pytest.mark.unit
def test_migrated_row_blocks_every_identity_it_holds() -> None:
    async def _run() -> None:
        repository = InMemorySubmissionRepository()
        await repository.insert(_draft(5, student_id=9, creator_id="legacy", user_id="sso"))

        for identity in (NumericId(9), OpaqueId("legacy"), OpaqueId("sso")):
            assert await has_existing_submission(repository, 5, [identity]) is True

    asyncio.run(_run())


@pytest.mark.unit
def test_store_rejects_identity_key_conflict() -> None:
    async def _run() -> None:
        repository = InMemorySubmissionRepository()
        await repository.insert(_draft(42, creator_id="abc-uuid"))

        with pytest.raises(DuplicateSubmission):
            await repository.insert(_draft(42, user_id="abc-uuid"))

        assert len(repository.rows) == 1

    asyncio.run(_run())


@pytest.mark.unit
def test_identity_slot_is_released_on_delete() -> None:
    async def _run() -> None:
        repository = InMemorySubmissionRepository()
        first = await repository.insert(_draft(42, student_id=7))
        await repository.delete(first.submission_id)

        second = await repository.insert(_draft(42, student_id=7))

        assert second.submission_id != first.submission_id

    asyncio.run(_run())


@dataclass
class _BlindRepository(InMemorySubmissionRepository):
    """Hides existing rows from reads, as a racing request would see them."""

    async def list_by_activity(self, activity_id: int) -> list[SubmissionSnapshot]:
        del activity_id
        await asyncio.sleep(0)
        return []

    async def list_by_activity_and_student_id(self, activity_id: int, student_id: int) -> list[SubmissionSnapshot]:
        del activity_id, student_id
        await asyncio.sleep(0)
        return []


@pytest.mark.unit
def test_concurrent_inserts_that_pass_precheck_keep_one_row() -> None:
    async def _attempt(repository: InMemorySubmissionRepository) -> SubmissionSnapshot:
        assert await has_existing_submission(repository, 42, [NumericId(7)]) is False
        return await repository.insert(_draft(42, student_id=7))

    async def _run() -> list[object]:
        repository = _BlindRepository()
        results = await asyncio.gather(*(_attempt(repository) for _ in range(5)), return_exceptions=True)
        assert len(repository.rows) == 1
        return results

    results = asyncio.run(_run())

    assert sum(isinstance(item, SubmissionSnapshot) for item in results) == 1
    assert sum(isinstance(item, DuplicateSubmission) for item in results) == 4
