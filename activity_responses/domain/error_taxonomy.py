from __future__ import annotations

from collections.abc import Mapping
from typing import Literal

# Canonical error vocabulary shared by the domain and the HTTP surface.
ErrorCode = Literal[
    "missing_identity",
    "duplicate_submission",
    "invalid_grade",
    "validation_error",
    "not_found",
    "upstream_unavailable",
    "forbidden",
    "unauthorized",
    "internal_error",
]

CANONICAL_ERROR_CODES: tuple[ErrorCode, ...] = (
    "missing_identity",
    "duplicate_submission",
    "invalid_grade",
    "validation_error",
    "not_found",
    "upstream_unavailable",
    "forbidden",
    "unauthorized",
    "internal_error",
)

# Client errors must stay distinguishable from each other; only
# internal_error is allowed to surface as a generic 500.
HTTP_STATUS_BY_CODE: Mapping[ErrorCode, int] = {
    "missing_identity": 400,
    "duplicate_submission": 400,
    "invalid_grade": 400,
    "validation_error": 400,
    "not_found": 404,
    "upstream_unavailable": 502,
    "forbidden": 403,
    "unauthorized": 401,
    "internal_error": 500,
}

# Codes that carry an X-Error-Type marker header in HTTP responses.
MARKED_ERROR_CODES: frozenset[ErrorCode] = frozenset({"duplicate_submission"})


def is_canonical_error_code(code: str) -> bool:
    return code in CANONICAL_ERROR_CODES


def resolve_error_code(code: str) -> ErrorCode:
    if is_canonical_error_code(code):
        return code  # type: ignore[return-value]
    return "internal_error"


def http_status_for(code: str) -> int:
    return HTTP_STATUS_BY_CODE[resolve_error_code(code)]


def is_client_error(code: str) -> bool:
    return 400 <= http_status_for(code) < 500
