from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
import logging

from activity_responses.domain.contracts import SubmissionRepository

COMPONENT_ID = "worker.attachment_reaper.run_once"
logger = logging.getLogger("runtime")


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class AttachmentReaperLoop:
    """Removes submissions left in the pending-attachment state.

    A pending row holds the student's (activity, identity) slot. If the
    process handling the upload died before linking or discarding it, the
    student could never submit again, so stale rows are deleted here.
    """

    role: str
    repository: SubmissionRepository
    ttl_seconds: int = 900
    clock: Callable[[], datetime] = field(default=_utcnow)
    reaped_total: int = 0

    async def run_once(self) -> bool:
        cutoff = self.clock() - timedelta(seconds=self.ttl_seconds)
        stale = await self.repository.list_stale_pending(cutoff)
        reaped = 0
        for submission in stale:
            if await self.repository.delete(submission.submission_id):
                reaped += 1
                logger.warning(
                    "stale pending submission reaped",
                    extra={
                        "role": self.role,
                        "submission_id": submission.submission_id,
                        "activity_id": submission.activity_id,
                    },
                )
        self.reaped_total += reaped
        return reaped > 0
