from __future__ import annotations

from dataclasses import dataclass
import os


@dataclass(frozen=True)
class AppSettings:
    database_url: str | None = None
    file_storage_url: str | None = None
    file_storage_timeout_ms: int = 10000
    jwt_secret: str | None = None
    jwt_algorithms: tuple[str, ...] = ("HS256",)
    jwt_issuer: str | None = None
    jwt_audience: str | None = None
    pending_attachment_ttl_seconds: int = 900


def app_settings_from_env() -> AppSettings:
    return AppSettings(
        database_url=_env_str("DATABASE_URL"),
        file_storage_url=_env_str("FILE_STORAGE_URL"),
        file_storage_timeout_ms=_env_int("FILE_STORAGE_TIMEOUT_MS", 10000),
        jwt_secret=_env_str("JWT_SECRET"),
        jwt_algorithms=_env_list("JWT_ALGORITHMS", ("HS256",)),
        jwt_issuer=_env_str("JWT_ISSUER"),
        jwt_audience=_env_str("JWT_AUDIENCE"),
        pending_attachment_ttl_seconds=_env_int("PENDING_ATTACHMENT_TTL_SECONDS", 900),
    )


def _env_str(name: str) -> str | None:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def _env_list(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    value = _env_str(name)
    if value is None:
        return default
    items = tuple(item.strip() for item in value.split(",") if item.strip())
    return items or default


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default

    try:
        parsed = int(value)
    except ValueError:
        return default

    return parsed if parsed > 0 else default
