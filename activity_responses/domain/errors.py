from __future__ import annotations

from activity_responses.domain.error_taxonomy import ErrorCode


class DomainError(Exception):
    code: ErrorCode = "internal_error"


class DomainValidationError(DomainError):
    code: ErrorCode = "validation_error"


class MissingIdentity(DomainValidationError):
    code: ErrorCode = "missing_identity"


class InvalidGrade(DomainValidationError):
    code: ErrorCode = "invalid_grade"


class InvalidSubmission(DomainValidationError):
    pass


class DomainInvariantError(DomainError):
    pass


class DuplicateSubmission(DomainError):
    code: ErrorCode = "duplicate_submission"


class NotFound(DomainError):
    code: ErrorCode = "not_found"


class DomainDependencyError(DomainError):
    pass


class UpstreamUnavailable(DomainDependencyError):
    code: ErrorCode = "upstream_unavailable"


class Unauthorized(DomainError):
    code: ErrorCode = "unauthorized"


class Forbidden(DomainError):
    code: ErrorCode = "forbidden"
