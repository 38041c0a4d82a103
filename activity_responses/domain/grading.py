from __future__ import annotations

from dataclasses import replace
from datetime import UTC, datetime
import logging
import math

from activity_responses.domain.contracts import SubmissionRepository
from activity_responses.domain.errors import InvalidGrade, NotFound
from activity_responses.domain.models import GradeState, SubmissionSnapshot

COMPONENT_ID = "domain.submission.grade"

MIN_GRADE = 0.0
MAX_GRADE = 10.0

# There is deliberately no way back to ungraded.
ALLOWED_GRADE_TRANSITIONS: dict[GradeState, set[GradeState]] = {
    GradeState.UNGRADED: {GradeState.GRADED},
    GradeState.GRADED: {GradeState.GRADED},
}

logger = logging.getLogger("activity_responses")


def validate_grade(value: object) -> float:
    if value is None or isinstance(value, bool):
        raise InvalidGrade("grade is required")
    if not isinstance(value, int | float):
        raise InvalidGrade("grade must be a number")
    grade = float(value)
    if not math.isfinite(grade) or grade < MIN_GRADE or grade > MAX_GRADE:
        raise InvalidGrade(f"grade must be between {MIN_GRADE:g} and {MAX_GRADE:g}")
    return grade


def apply_grade(
    submission: SubmissionSnapshot,
    *,
    grade: float,
    grader_name: str,
    grader_id: str | None,
    graded_at: datetime,
) -> SubmissionSnapshot:
    if GradeState.GRADED not in ALLOWED_GRADE_TRANSITIONS[submission.grade_state]:
        raise InvalidGrade(f"submission {submission.submission_id} cannot be graded")
    # Previous grade is overwritten; no history is kept.
    return replace(
        submission,
        grade=grade,
        graded_at=graded_at,
        grader_name=grader_name,
        grader_id=grader_id,
    )


async def grade_submission(
    repository: SubmissionRepository,
    *,
    submission_id: int,
    value: object,
    grader_name: str,
    grader_id: str | None = None,
    now: datetime | None = None,
) -> SubmissionSnapshot:
    grade = validate_grade(value)
    graded_at = now or datetime.now(tz=UTC)

    existing = await repository.get(submission_id)
    if existing is None:
        raise NotFound(f"submission {submission_id} not found")

    updated = await repository.update(
        submission_id,
        lambda current: apply_grade(
            current,
            grade=grade,
            grader_name=grader_name,
            grader_id=grader_id,
            graded_at=graded_at,
        ),
    )
    logger.info(
        "submission graded",
        extra={"submission_id": submission_id, "activity_id": updated.activity_id},
    )
    return updated


async def list_graded_by(repository: SubmissionRepository, grader_id: str | None) -> list[SubmissionSnapshot]:
    if grader_id is None or not grader_id.strip():
        return []
    return await repository.list_by_grader_opaque_id(grader_id.strip())
