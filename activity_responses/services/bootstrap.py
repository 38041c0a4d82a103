from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from activity_responses.api.handlers.deps import ApiDeps
from activity_responses.clients.file_storage import HttpFileStorageClient
from activity_responses.clients.identity import JwtIdentityProvider
from activity_responses.clients.stub import StubFileStorageClient
from activity_responses.config import AppSettings, app_settings_from_env
from activity_responses.domain.contracts import FileStorageClient, IdentityProvider, SubmissionRepository
from activity_responses.domain.use_cases.submissions import SubmissionService
from activity_responses.repositories.postgres import AsyncpgPoolManager, PostgresSubmissionRepository
from activity_responses.repositories.stub import InMemorySubmissionRepository
from activity_responses.roles import RuntimeRole
from activity_responses.workers.loop import AttachmentReaperLoop


@dataclass
class RuntimeContainer:
    repository: SubmissionRepository
    storage: FileStorageClient
    identity_provider: IdentityProvider | None
    api_deps: ApiDeps
    worker_loop: AttachmentReaperLoop | None
    on_startup: Callable[[], Awaitable[None]] | None
    on_shutdown: Callable[[], Awaitable[None]] | None


def build_runtime_container(role: RuntimeRole, settings: AppSettings | None = None) -> RuntimeContainer:
    settings = settings or app_settings_from_env()
    startup_hooks: list[Callable[[], Awaitable[None]]] = []
    shutdown_hooks: list[Callable[[], Awaitable[None]]] = []

    repository: SubmissionRepository
    if settings.database_url:
        pool_manager = AsyncpgPoolManager(dsn=settings.database_url)
        repository = PostgresSubmissionRepository(pool_manager=pool_manager)
        startup_hooks.append(pool_manager.startup)
        shutdown_hooks.append(pool_manager.shutdown)
    else:
        repository = InMemorySubmissionRepository()

    storage: FileStorageClient
    if settings.file_storage_url:
        http_storage = HttpFileStorageClient.create(
            base_url=settings.file_storage_url,
            timeout_ms=settings.file_storage_timeout_ms,
        )
        storage = http_storage
        shutdown_hooks.append(http_storage.aclose)
    else:
        storage = StubFileStorageClient()

    identity_provider: IdentityProvider | None = None
    if settings.jwt_secret:
        identity_provider = JwtIdentityProvider(
            secret=settings.jwt_secret,
            algorithms=settings.jwt_algorithms,
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
        )

    api_deps = ApiDeps(
        service=SubmissionService(repository=repository, storage=storage),
        identity_provider=identity_provider,
    )

    worker_loop: AttachmentReaperLoop | None = None
    if role.name == "worker-attachment-reaper":
        worker_loop = AttachmentReaperLoop(
            role=role.name,
            repository=repository,
            ttl_seconds=settings.pending_attachment_ttl_seconds,
        )

    return RuntimeContainer(
        repository=repository,
        storage=storage,
        identity_provider=identity_provider,
        api_deps=api_deps,
        worker_loop=worker_loop,
        on_startup=_chain(startup_hooks),
        on_shutdown=_chain(list(reversed(shutdown_hooks))),
    )


def _chain(hooks: list[Callable[[], Awaitable[None]]]) -> Callable[[], Awaitable[None]] | None:
    if not hooks:
        return None

    async def run_all() -> None:
        for hook in hooks:
            await hook()

    return run_all
