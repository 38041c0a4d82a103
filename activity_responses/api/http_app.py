from __future__ import annotations

from contextlib import asynccontextmanager
import asyncio
from collections.abc import Awaitable, Callable
import logging
from typing import Annotated

from fastapi import Body, FastAPI, File, Form, Header, HTTPException, Path, Query, Request, Response, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from activity_responses.api.handlers.deps import ApiDeps
from activity_responses.api.handlers.grading import grade_submission_handler, list_graded_by_handler
from activity_responses.api.handlers.listing import (
    list_activity_for_staff_handler,
    list_activity_for_user_handler,
    list_activity_handler,
    list_mine_handler,
    list_student_handler,
)
from activity_responses.api.handlers.submissions import (
    create_submission_handler,
    create_submission_with_file_handler,
    delete_submission_handler,
    get_submission_file_handler,
    get_submission_handler,
)
from activity_responses.api.schemas import (
    CreateSubmissionRequest,
    ErrorResponse,
    GradeRequest,
    HealthResponse,
    ReadyResponse,
    SubmissionListResponse,
    SubmissionResponse,
    WorkerMetrics,
)
from activity_responses.clients.identity import bearer_token
from activity_responses.domain.error_taxonomy import MARKED_ERROR_CODES, http_status_for, is_client_error
from activity_responses.domain.errors import DomainError
from activity_responses.domain.identity import INT64_MAX, INT64_MIN, Principal
from activity_responses.domain.ids import new_request_id
from activity_responses.workers.loop import AttachmentReaperLoop
from activity_responses.workers.runner import (
    WorkerRuntimeSettings,
    WorkerRuntimeState,
    run_worker_until_stopped,
    worker_runtime_settings_from_env,
)

PREFIX = "/activity-responses"
ERROR_RESPONSES: dict[int | str, dict[str, object]] = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    502: {"model": ErrorResponse},
}

ActivityId = Annotated[int, Path(ge=INT64_MIN, le=INT64_MAX)]
SubmissionId = Annotated[int, Path(ge=INT64_MIN, le=INT64_MAX)]


def _validation_detail(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first.get('msg', 'invalid value')}"


def build_app(
    role: str,
    run_id: str,
    worker_loop: AttachmentReaperLoop | None = None,
    worker_runtime_settings: WorkerRuntimeSettings | None = None,
    api_deps: ApiDeps | None = None,
    on_startup: Callable[[], Awaitable[None]] | None = None,
    on_shutdown: Callable[[], Awaitable[None]] | None = None,
) -> FastAPI:
    logger = logging.getLogger("runtime")
    worker_state: WorkerRuntimeState | None = None
    worker_task: asyncio.Task[None] | None = None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        nonlocal worker_task, worker_state
        del app
        stop_event: asyncio.Event | None = None

        logger.info(
            "role started",
            extra={"role": role, "service": role, "run_id": run_id},
        )

        if on_startup is not None:
            await on_startup()

        if worker_loop is not None:
            settings = worker_runtime_settings or worker_runtime_settings_from_env()
            worker_state = WorkerRuntimeState()
            stop_event = asyncio.Event()
            worker_task = asyncio.create_task(
                run_worker_until_stopped(
                    worker_loop=worker_loop,
                    role=role,
                    run_id=run_id,
                    stop_event=stop_event,
                    settings=settings,
                    logger=logger,
                    state=worker_state,
                )
            )

        yield

        if stop_event is not None and worker_task is not None:
            stop_event.set()
            await worker_task

        if on_shutdown is not None:
            await on_shutdown()

        logger.info(
            "role stopped",
            extra={"role": role, "service": role, "run_id": run_id},
        )

    app = FastAPI(title="activity-responses", version="0.1.0", lifespan=lifespan)

    @app.middleware("http")
    async def assign_request_id(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or new_request_id()
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    @app.exception_handler(DomainError)
    async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
        code = exc.code
        request_id = getattr(request.state, "request_id", None)
        if is_client_error(code):
            logger.info(
                "request rejected",
                extra={"role": role, "run_id": run_id, "request_id": request_id, "error_code": code},
            )
        else:
            logger.error(
                "request failed",
                extra={"role": role, "run_id": run_id, "request_id": request_id, "error_code": code},
                exc_info=exc,
            )
        headers = {"X-Error-Type": code} if code in MARKED_ERROR_CODES else None
        return JSONResponse(
            status_code=http_status_for(code),
            content=ErrorResponse(detail=str(exc), error_code=code).model_dump(),
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.info(
            "request rejected",
            extra={
                "role": role,
                "run_id": run_id,
                "request_id": getattr(request.state, "request_id", None),
                "error_code": "validation_error",
            },
        )
        return JSONResponse(
            status_code=400,
            content=ErrorResponse(detail=_validation_detail(exc), error_code="validation_error").model_dump(),
        )

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "unhandled request error",
            extra={
                "role": role,
                "run_id": run_id,
                "request_id": getattr(request.state, "request_id", None),
                "error_code": "internal_error",
            },
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(detail="internal error", error_code="internal_error").model_dump(),
        )

    def _deps() -> ApiDeps:
        if api_deps is None:
            raise HTTPException(status_code=503, detail="api dependencies are not available")
        return api_deps

    def _principal(authorization: str | None) -> Principal | None:
        if api_deps is None:
            return None
        return api_deps.principal_for(bearer_token(authorization))

    @app.get("/health", response_model=HealthResponse, tags=["System"])
    async def health() -> HealthResponse:
        return HealthResponse(status="ok", role=role)

    @app.get("/ready", response_model=ReadyResponse, tags=["System"])
    async def ready() -> ReadyResponse:
        worker_loop_enabled = worker_loop is not None
        worker_loop_ready = True
        metrics = WorkerMetrics(
            started=False,
            stopped=False,
            ticks_total=0,
            work_ticks_total=0,
            idle_ticks_total=0,
            errors_total=0,
        )
        if worker_loop_enabled:
            worker_loop_ready = (
                worker_state is not None
                and worker_state.started
                and worker_task is not None
                and not worker_task.done()
            )
            if worker_state is not None:
                metrics = WorkerMetrics(
                    started=worker_state.started,
                    stopped=worker_state.stopped,
                    ticks_total=worker_state.ticks_total,
                    work_ticks_total=worker_state.work_ticks_total,
                    idle_ticks_total=worker_state.idle_ticks_total,
                    errors_total=worker_state.errors_total,
                )

        return ReadyResponse(
            status="ready",
            role=role,
            worker_loop_enabled=worker_loop_enabled,
            worker_loop_ready=worker_loop_ready,
            worker_metrics=metrics,
        )

    @app.post(PREFIX, response_model=SubmissionResponse, responses=ERROR_RESPONSES, tags=["Submissions"])
    async def create_submission(
        request: CreateSubmissionRequest,
        authorization: str | None = Header(default=None),
    ) -> SubmissionResponse:
        return await create_submission_handler(
            request=request,
            principal=_principal(authorization),
            api_deps=_deps(),
        )

    @app.post(
        f"{PREFIX}/with-file",
        response_model=SubmissionResponse,
        responses=ERROR_RESPONSES,
        tags=["Submissions"],
    )
    async def create_submission_with_file(
        file: UploadFile = File(...),
        activity_id: int = Form(..., ge=INT64_MIN, le=INT64_MAX),
        student_id: str | None = Form(default=None),
        creator_id: str | None = Form(default=None),
        user_id: str | None = Form(default=None),
        student_name: str | None = Form(default=None),
        authorization: str | None = Header(default=None),
    ) -> SubmissionResponse:
        deps = _deps()
        payload = await file.read()
        return await create_submission_with_file_handler(
            activity_id=activity_id,
            student_id=student_id,
            creator_id=creator_id,
            user_id=user_id,
            student_name=student_name,
            filename=file.filename or "submission.bin",
            payload=payload,
            principal=_principal(authorization),
            api_deps=deps,
        )

    @app.get(f"{PREFIX}/my-responses", response_model=SubmissionListResponse, tags=["Submissions"])
    async def list_my_submissions(
        activity_id: int | None = Query(default=None, ge=INT64_MIN, le=INT64_MAX),
        authorization: str | None = Header(default=None),
    ) -> SubmissionListResponse:
        return await list_mine_handler(
            principal=_principal(authorization),
            activity_id=activity_id,
            api_deps=_deps(),
        )

    @app.get(f"{PREFIX}/activity/{{activity_id}}", response_model=SubmissionListResponse, tags=["Submissions"])
    async def list_activity_submissions(activity_id: ActivityId) -> SubmissionListResponse:
        return await list_activity_handler(activity_id=activity_id, api_deps=_deps())

    @app.get(
        f"{PREFIX}/activity/{{activity_id}}/all",
        response_model=SubmissionListResponse,
        responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
        tags=["Submissions"],
    )
    async def list_activity_submissions_for_staff(
        activity_id: ActivityId,
        authorization: str | None = Header(default=None),
    ) -> SubmissionListResponse:
        return await list_activity_for_staff_handler(
            activity_id=activity_id,
            principal=_principal(authorization),
            api_deps=_deps(),
        )

    @app.get(
        f"{PREFIX}/activity/{{activity_id}}/my-response",
        response_model=SubmissionListResponse,
        responses={401: {"model": ErrorResponse}},
        tags=["Submissions"],
    )
    async def list_my_activity_submissions(
        activity_id: ActivityId,
        authorization: str | None = Header(default=None),
    ) -> SubmissionListResponse:
        return await list_mine_handler(
            principal=_principal(authorization),
            activity_id=activity_id,
            api_deps=_deps(),
        )

    @app.get(
        f"{PREFIX}/activity/{{activity_id}}/user/{{user_id}}",
        response_model=SubmissionListResponse,
        tags=["Submissions"],
    )
    async def list_activity_submissions_for_user(activity_id: ActivityId, user_id: str) -> SubmissionListResponse:
        return await list_activity_for_user_handler(activity_id=activity_id, user_id=user_id, api_deps=_deps())

    @app.get(f"{PREFIX}/student/{{student_id}}", response_model=SubmissionListResponse, tags=["Submissions"])
    async def list_student_submissions(student_id: str) -> SubmissionListResponse:
        return await list_student_handler(student_id=student_id, api_deps=_deps())

    @app.get(
        f"{PREFIX}/graded-by-user/{{grader_id}}",
        response_model=SubmissionListResponse,
        tags=["Grading"],
    )
    async def list_graded_by_user(grader_id: str) -> SubmissionListResponse:
        return await list_graded_by_handler(grader_id=grader_id, api_deps=_deps())

    @app.get(
        f"{PREFIX}/activity/{{activity_id}}/student/{{student_id}}",
        response_model=SubmissionListResponse,
        tags=["Submissions"],
    )
    async def list_activity_submissions_for_student(activity_id: ActivityId, student_id: str) -> SubmissionListResponse:
        return await list_activity_for_user_handler(activity_id=activity_id, user_id=student_id, api_deps=_deps())

    @app.get(f"{PREFIX}/file/{{submission_id}}", responses=ERROR_RESPONSES, tags=["Submissions"])
    async def get_file_by_submission(submission_id: SubmissionId) -> Response:
        payload = await get_submission_file_handler(submission_id=submission_id, api_deps=_deps())
        return Response(content=payload, media_type="application/octet-stream")

    @app.post(
        f"{PREFIX}/grade/{{submission_id}}",
        response_model=SubmissionResponse,
        responses=ERROR_RESPONSES,
        tags=["Grading"],
    )
    async def grade_by_submission(
        submission_id: SubmissionId,
        request: GradeRequest | None = Body(default=None),
        authorization: str | None = Header(default=None),
    ) -> SubmissionResponse:
        return await grade_submission_handler(
            submission_id=submission_id,
            request=request,
            principal=_principal(authorization),
            api_deps=_deps(),
        )

    @app.get(
        f"{PREFIX}/{{submission_id}}",
        response_model=SubmissionResponse,
        responses=ERROR_RESPONSES,
        tags=["Submissions"],
    )
    async def get_submission(submission_id: SubmissionId) -> SubmissionResponse:
        return await get_submission_handler(submission_id=submission_id, api_deps=_deps())

    @app.get(f"{PREFIX}/{{submission_id}}/file", responses=ERROR_RESPONSES, tags=["Submissions"])
    async def get_submission_file(submission_id: SubmissionId) -> Response:
        payload = await get_submission_file_handler(submission_id=submission_id, api_deps=_deps())
        return Response(content=payload, media_type="application/octet-stream")

    @app.post(
        f"{PREFIX}/{{submission_id}}/grade",
        response_model=SubmissionResponse,
        responses=ERROR_RESPONSES,
        tags=["Grading"],
    )
    async def grade_submission(
        submission_id: SubmissionId,
        request: GradeRequest | None = Body(default=None),
        authorization: str | None = Header(default=None),
    ) -> SubmissionResponse:
        return await grade_submission_handler(
            submission_id=submission_id,
            request=request,
            principal=_principal(authorization),
            api_deps=_deps(),
        )

    @app.delete(
        f"{PREFIX}/{{submission_id}}",
        status_code=204,
        responses={404: {"model": ErrorResponse}},
        tags=["Submissions"],
    )
    async def delete_submission(submission_id: SubmissionId) -> Response:
        await delete_submission_handler(submission_id=submission_id, api_deps=_deps())
        return Response(status_code=204)

    return app
