from __future__ import annotations

from dataclasses import dataclass
import logging

import httpx

from activity_responses.domain.errors import NotFound, UpstreamUnavailable

COMPONENT_ID = "clients.file_storage"
API_PREFIX = "/api/v1/file-storage"
logger = logging.getLogger("activity_responses")


@dataclass
class HttpFileStorageClient:
    """Client for the external file-storage service.

    Every call is bounded by the client's timeout; transport failures,
    timeouts and 5xx answers surface as UpstreamUnavailable.
    """

    client: httpx.AsyncClient

    @classmethod
    def create(cls, *, base_url: str, timeout_ms: int) -> HttpFileStorageClient:
        timeout = httpx.Timeout(timeout_ms / 1000)
        return cls(client=httpx.AsyncClient(base_url=base_url.rstrip("/"), timeout=timeout))

    async def upload(self, payload: bytes, filename: str) -> str:
        response = await self._request(
            "POST",
            f"{API_PREFIX}/upload",
            files={"file": (filename, payload, "application/octet-stream")},
        )
        if response.status_code >= 400:
            raise UpstreamUnavailable(f"file storage rejected upload with status {response.status_code}")
        file_id = response.text.strip().strip('"')
        if not file_id:
            raise UpstreamUnavailable("file storage returned an empty file id")
        return file_id

    async def download(self, file_id: str) -> bytes:
        response = await self._request("GET", f"{API_PREFIX}/download/{file_id}")
        if response.status_code == 404:
            raise NotFound(f"file {file_id} not found")
        if response.status_code >= 400:
            raise UpstreamUnavailable(f"file storage rejected download with status {response.status_code}")
        return response.content

    async def delete(self, file_id: str) -> None:
        response = await self._request("DELETE", f"{API_PREFIX}/delete/{file_id}")
        # Already gone counts as deleted.
        if response.status_code == 404:
            return
        if response.status_code >= 400:
            raise UpstreamUnavailable(f"file storage rejected delete with status {response.status_code}")

    async def aclose(self) -> None:
        await self.client.aclose()

    async def _request(self, method: str, url: str, **kwargs: object) -> httpx.Response:
        try:
            response = await self.client.request(method, url, **kwargs)  # type: ignore[arg-type]
        except httpx.TimeoutException as exc:
            logger.warning("file storage timed out", extra={"error_code": "upstream_unavailable"})
            raise UpstreamUnavailable(f"file storage timed out on {method} {url}") from exc
        except httpx.HTTPError as exc:
            logger.warning("file storage unreachable", extra={"error_code": "upstream_unavailable"})
            raise UpstreamUnavailable(f"file storage unreachable on {method} {url}") from exc
        if response.status_code >= 500:
            raise UpstreamUnavailable(f"file storage failed with status {response.status_code}")
        return response
