from __future__ import annotations

from collections.abc import Iterable
import logging

from activity_responses.domain.contracts import SubmissionRepository
from activity_responses.domain.identity import NumericId, SubmissionIdentity

COMPONENT_ID = "domain.submission.duplicate_guard"
logger = logging.getLogger("activity_responses")


async def has_existing_submission(
    repository: SubmissionRepository,
    activity_id: int,
    identities: Iterable[SubmissionIdentity],
) -> bool:
    """Fast-path check before any upload or insert.

    The storage-level unique index remains the authoritative guard; this
    only avoids uploading files for requests that are certain to be rejected.
    """
    wanted = tuple(identities)

    for identity in wanted:
        if isinstance(identity, NumericId):
            rows = await repository.list_by_activity_and_student_id(activity_id, identity.value)
            if rows:
                logger.info(
                    "existing submission found by student id",
                    extra={"activity_id": activity_id, "submission_id": rows[0].submission_id},
                )
                return True

    if not any(not isinstance(identity, NumericId) for identity in wanted):
        return False

    # Migrated rows may hold the same person in any slot, so compare every
    # populated slot of every row.
    for row in await repository.list_by_activity(activity_id):
        if any(row.identity.matches(identity) for identity in wanted):
            logger.info(
                "existing submission found by opaque id",
                extra={"activity_id": activity_id, "submission_id": row.submission_id},
            )
            return True
    return False
