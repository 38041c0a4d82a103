from __future__ import annotations

from dataclasses import dataclass, field

from activity_responses.domain.errors import NotFound, UpstreamUnavailable
from activity_responses.domain.identity import UNKNOWN_USER, Principal


@dataclass
class StubFileStorageClient:
    objects: dict[str, bytes] = field(default_factory=dict)
    uploads: list[tuple[str, str]] = field(default_factory=list)
    deletes: list[str] = field(default_factory=list)
    fail_uploads: bool = False
    fail_deletes: bool = False
    next_file_id: int = 1

    async def upload(self, payload: bytes, filename: str) -> str:
        if self.fail_uploads:
            raise UpstreamUnavailable("file storage upload failed")
        file_id = f"file-{self.next_file_id}"
        self.next_file_id += 1
        self.objects[file_id] = payload
        self.uploads.append((file_id, filename))
        return file_id

    async def download(self, file_id: str) -> bytes:
        payload = self.objects.get(file_id)
        if payload is None:
            raise NotFound(f"file {file_id} not found")
        return payload

    async def delete(self, file_id: str) -> None:
        self.deletes.append(file_id)
        if self.fail_deletes:
            raise UpstreamUnavailable("file storage delete failed")
        # Idempotent in stub mode, like the real service.
        self.objects.pop(file_id, None)


@dataclass
class StaticIdentityProvider:
    """Maps opaque test tokens straight to principals."""

    principals: dict[str, Principal] = field(default_factory=dict)

    def principal(self, token: str) -> Principal | None:
        return self.principals.get(token)

    def extract_user_id(self, token: str) -> str | None:
        principal = self.principal(token)
        return principal.user_id if principal is not None else None

    def extract_username(self, token: str) -> str:
        principal = self.principal(token)
        if principal is None or not principal.username:
            return UNKNOWN_USER
        return principal.username

    def has_role(self, token: str, role: str) -> bool:
        principal = self.principal(token)
        return principal is not None and principal.has_role(role)
