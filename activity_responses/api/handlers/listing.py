from __future__ import annotations

from activity_responses.api.handlers.deps import ApiDeps
from activity_responses.api.handlers.submissions import submission_list_response
from activity_responses.api.schemas import SubmissionListResponse
from activity_responses.domain.errors import Forbidden, Unauthorized
from activity_responses.domain.identity import Principal

COMPONENT_ID_ACTIVITY = "api.list_activity_submissions"
COMPONENT_ID_ACTIVITY_ALL = "api.list_activity_submissions_for_staff"
COMPONENT_ID_ACTIVITY_USER = "api.list_activity_submissions_for_user"
COMPONENT_ID_STUDENT = "api.list_student_submissions"
COMPONENT_ID_MINE = "api.list_my_submissions"

STAFF_ROLES = ("TEACHER", "ADMIN")


async def list_activity_handler(*, activity_id: int, api_deps: ApiDeps) -> SubmissionListResponse:
    return submission_list_response(await api_deps.service.list_for_activity(activity_id))


async def list_activity_for_staff_handler(
    *,
    activity_id: int,
    principal: Principal | None,
    api_deps: ApiDeps,
) -> SubmissionListResponse:
    if principal is None:
        raise Unauthorized("a verified bearer token is required")
    if not any(principal.has_role(role) for role in STAFF_ROLES):
        raise Forbidden("teacher or admin role is required")
    return submission_list_response(await api_deps.service.list_for_activity(activity_id))


async def list_activity_for_user_handler(
    *,
    activity_id: int,
    user_id: str,
    api_deps: ApiDeps,
) -> SubmissionListResponse:
    return submission_list_response(await api_deps.service.list_for_activity_and_identity(activity_id, user_id))


async def list_student_handler(*, student_id: str, api_deps: ApiDeps) -> SubmissionListResponse:
    return submission_list_response(await api_deps.service.list_for_identity(student_id))


async def list_mine_handler(
    *,
    principal: Principal | None,
    activity_id: int | None,
    api_deps: ApiDeps,
) -> SubmissionListResponse:
    return submission_list_response(await api_deps.service.list_for_principal(principal, activity_id))
