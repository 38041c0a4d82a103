from __future__ import annotations

from dataclasses import dataclass

from fastapi import FastAPI
from fastapi.testclient import TestClient

from activity_responses.api.handlers.deps import ApiDeps
from activity_responses.api.http_app import build_app
from activity_responses.clients.stub import StubFileStorageClient
from activity_responses.domain.contracts import IdentityProvider
from activity_responses.domain.use_cases.submissions import SubmissionService
from activity_responses.repositories.stub import InMemorySubmissionRepository


@dataclass
class StubApp:
    app: FastAPI
    repository: InMemorySubmissionRepository
    storage: StubFileStorageClient


def build_stub_app(*, identity_provider: IdentityProvider | None = None) -> StubApp:
    repository = InMemorySubmissionRepository()
    storage = StubFileStorageClient()
    api_deps = ApiDeps(
        service=SubmissionService(repository=repository, storage=storage),
        identity_provider=identity_provider,
    )
    app = build_app(role="api", run_id="integration-api", api_deps=api_deps)
    return StubApp(app=app, repository=repository, storage=storage)


def seed_submission(
    *,
    client: TestClient,
    activity_id: int,
    student_name: str = "Seed Student",
    **identity: object,
) -> int:
    response = client.post(
        "/activity-responses",
        json={"activity_id": activity_id, "student_name": student_name, **identity},
    )
    assert response.status_code == 200, response.text
    return response.json()["submission_id"]
