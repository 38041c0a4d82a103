from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any

from pydantic import BaseModel, Field, StrictInt

from activity_responses.domain.identity import INT64_MAX, INT64_MIN
from activity_responses.domain.models import AttachmentState

# Ids are BIGINT columns.
Int64 = Annotated[int, Field(ge=INT64_MIN, le=INT64_MAX)]


class ErrorResponse(BaseModel):
    detail: str
    error_code: str


class WorkerMetrics(BaseModel):
    started: bool
    stopped: bool
    ticks_total: int
    work_ticks_total: int
    idle_ticks_total: int
    errors_total: int


class HealthResponse(BaseModel):
    status: str
    role: str


class ReadyResponse(BaseModel):
    status: str
    role: str
    worker_loop_enabled: bool
    worker_loop_ready: bool
    worker_metrics: WorkerMetrics


class CreateSubmissionRequest(BaseModel):
    activity_id: Int64
    # Numeric account id, or an opaque id when it does not parse as an integer.
    student_id: StrictInt | str | None = None
    creator_id: str | None = Field(default=None, max_length=256)
    user_id: str | None = Field(default=None, max_length=256)
    student_name: str | None = Field(default=None, max_length=256)


class GradeRequest(BaseModel):
    # Range and type are checked by the grading rules so that a bad grade is
    # reported as invalid_grade rather than a schema error.
    grade: Any = None


class SubmissionResponse(BaseModel):
    submission_id: int
    activity_id: int
    student_id: int | None = None
    creator_id: str | None = None
    user_id: str | None = None
    student_name: str
    attachment_ref: str | None = None
    attachment_state: AttachmentState
    grade: float | None = None
    graded_at: datetime | None = None
    grader_name: str | None = None
    grader_id: str | None = None
    created_at: datetime
    updated_at: datetime


class SubmissionListResponse(BaseModel):
    items: list[SubmissionResponse]
