from __future__ import annotations

from activity_responses.api.handlers.deps import ApiDeps
from activity_responses.api.schemas import CreateSubmissionRequest, SubmissionListResponse, SubmissionResponse
from activity_responses.domain.identity import IdentityClaims, Principal
from activity_responses.domain.models import SubmissionSnapshot

COMPONENT_ID = "api.create_submission"
COMPONENT_ID_WITH_FILE = "api.create_submission_with_file"
COMPONENT_ID_GET = "api.get_submission"
COMPONENT_ID_DELETE = "api.delete_submission"
COMPONENT_ID_FILE = "api.get_submission_file"


def submission_response(snapshot: SubmissionSnapshot) -> SubmissionResponse:
    return SubmissionResponse(
        submission_id=snapshot.submission_id,
        activity_id=snapshot.activity_id,
        student_id=snapshot.identity.student_id,
        creator_id=snapshot.identity.creator_id,
        user_id=snapshot.identity.user_id,
        student_name=snapshot.student_name,
        attachment_ref=snapshot.attachment_ref,
        attachment_state=snapshot.attachment_state,
        grade=snapshot.grade,
        graded_at=snapshot.graded_at,
        grader_name=snapshot.grader_name,
        grader_id=snapshot.grader_id,
        created_at=snapshot.created_at,
        updated_at=snapshot.updated_at,
    )


def submission_list_response(snapshots: list[SubmissionSnapshot]) -> SubmissionListResponse:
    return SubmissionListResponse(items=[submission_response(item) for item in snapshots])


async def create_submission_handler(
    *,
    request: CreateSubmissionRequest,
    principal: Principal | None,
    api_deps: ApiDeps,
) -> SubmissionResponse:
    created = await api_deps.service.create_submission(
        activity_id=request.activity_id,
        claims=IdentityClaims(
            student_id=request.student_id,
            creator_id=request.creator_id,
            user_id=request.user_id,
        ),
        student_name=request.student_name,
        principal=principal,
    )
    return submission_response(created)


async def create_submission_with_file_handler(
    *,
    activity_id: int,
    student_id: str | None,
    creator_id: str | None,
    user_id: str | None,
    student_name: str | None,
    filename: str,
    payload: bytes,
    principal: Principal | None,
    api_deps: ApiDeps,
) -> SubmissionResponse:
    created = await api_deps.service.create_submission_with_file(
        activity_id=activity_id,
        claims=IdentityClaims(student_id=student_id, creator_id=creator_id, user_id=user_id),
        student_name=student_name,
        payload=payload,
        filename=filename,
        principal=principal,
    )
    return submission_response(created)


async def get_submission_handler(*, submission_id: int, api_deps: ApiDeps) -> SubmissionResponse:
    return submission_response(await api_deps.service.get(submission_id))


async def get_submission_file_handler(*, submission_id: int, api_deps: ApiDeps) -> bytes:
    return await api_deps.service.download_attachment(submission_id)


async def delete_submission_handler(*, submission_id: int, api_deps: ApiDeps) -> None:
    await api_deps.service.delete(submission_id)
