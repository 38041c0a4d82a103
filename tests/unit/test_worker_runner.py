import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import pytest

from activity_responses.domain.identity import IdentitySlots
from activity_responses.domain.models import AttachmentState, NewSubmission
from activity_responses.repositories.stub import InMemorySubmissionRepository
from activity_responses.workers.loop import AttachmentReaperLoop
from activity_responses.workers.runner import (
    WorkerRuntimeSettings,
    WorkerRuntimeState,
    run_worker_until_stopped,
    worker_runtime_settings_from_env,
)


async def _insert(repository: InMemorySubmissionRepository, student_id: int, state: AttachmentState) -> int:
    created = await repository.insert(
        NewSubmission(
            activity_id=1,
            identity=IdentitySlots(student_id=student_id),
            student_name="Ann",
            attachment_state=state,
        )
    )
    return created.submission_id


@pytest.mark.unit
def test_worker_runtime_settings_read_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("WORKER_POLL_INTERVAL_MS", "50")
    monkeypatch.setenv("WORKER_IDLE_BACKOFF_MS", "100")
    monkeypatch.setenv("WORKER_ERROR_BACKOFF_MS", "150")

    settings = worker_runtime_settings_from_env()

    assert settings == WorkerRuntimeSettings(poll_interval_ms=50, idle_backoff_ms=100, error_backoff_ms=150)


@pytest.mark.unit
def test_worker_runtime_settings_fall_back_on_bad_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("WORKER_POLL_INTERVAL_MS", "abc")
    monkeypatch.setenv("WORKER_IDLE_BACKOFF_MS", "0")
    monkeypatch.setenv("WORKER_ERROR_BACKOFF_MS", "-10")

    settings = worker_runtime_settings_from_env()

    assert settings == WorkerRuntimeSettings()


@pytest.mark.unit
def test_reaper_deletes_only_stale_pending_submissions() -> None:
    async def _run() -> None:
        repository = InMemorySubmissionRepository()
        stale_pending = await _insert(repository, 1, AttachmentState.PENDING)
        plain = await _insert(repository, 2, AttachmentState.NONE)
        loop = AttachmentReaperLoop(
            role="worker-attachment-reaper",
            repository=repository,
            ttl_seconds=60,
            clock=lambda: datetime.now(tz=UTC) + timedelta(minutes=5),
        )

        assert await loop.run_once() is True
        assert sorted(repository.rows) == [plain]
        assert repository.deletes == [stale_pending]
        assert loop.reaped_total == 1

        # The identity slot is free again.
        await _insert(repository, 1, AttachmentState.NONE)

    asyncio.run(_run())


@pytest.mark.unit
def test_reaper_keeps_fresh_pending_submissions() -> None:
    async def _run() -> None:
        repository = InMemorySubmissionRepository()
        await _insert(repository, 1, AttachmentState.PENDING)
        loop = AttachmentReaperLoop(role="worker-attachment-reaper", repository=repository, ttl_seconds=900)

        assert await loop.run_once() is False
        assert len(repository.rows) == 1

    asyncio.run(_run())


@dataclass
class _FlakyLoop:
    calls: int = 0

    async def run_once(self) -> bool:
        self.calls += 1
        if self.calls == 1:
            raise RuntimeError("boom")
        return False


@pytest.mark.unit
def test_runner_survives_errors_and_continues() -> None:
    flaky_loop = _FlakyLoop()
    stop_event = asyncio.Event()
    settings = WorkerRuntimeSettings(poll_interval_ms=1, idle_backoff_ms=1, error_backoff_ms=1)
    state = WorkerRuntimeState()

    async def _run() -> None:
        task = asyncio.create_task(
            run_worker_until_stopped(
                worker_loop=flaky_loop,  # pyright: ignore[reportArgumentType]
                role="worker-attachment-reaper",
                run_id="run-1",
                stop_event=stop_event,
                settings=settings,
                logger=logging.getLogger("test"),
                state=state,
            )
        )
        await asyncio.sleep(0.02)
        stop_event.set()
        await task

    asyncio.run(_run())
    assert flaky_loop.calls >= 2
    assert state.started is True
    assert state.stopped is True
    assert state.ticks_total >= 2
    assert state.errors_total >= 1
    assert state.idle_ticks_total >= 1
