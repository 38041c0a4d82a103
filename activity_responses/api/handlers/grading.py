from __future__ import annotations

from activity_responses.api.handlers.deps import ApiDeps
from activity_responses.api.handlers.submissions import submission_list_response, submission_response
from activity_responses.api.schemas import GradeRequest, SubmissionListResponse, SubmissionResponse
from activity_responses.domain.identity import Principal

COMPONENT_ID = "api.grade_submission"
COMPONENT_ID_GRADED_BY = "api.list_graded_by_user"


async def grade_submission_handler(
    *,
    submission_id: int,
    request: GradeRequest | None,
    principal: Principal | None,
    api_deps: ApiDeps,
) -> SubmissionResponse:
    graded = await api_deps.service.grade(
        submission_id=submission_id,
        value=request.grade if request is not None else None,
        principal=principal,
    )
    return submission_response(graded)


async def list_graded_by_handler(*, grader_id: str, api_deps: ApiDeps) -> SubmissionListResponse:
    return submission_list_response(await api_deps.service.list_graded_by(grader_id))
