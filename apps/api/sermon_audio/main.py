"""FastAPI application entrypoint."""

from __future__ import annotations

from collections.abc import Mapping
import logging

from fastapi import FastAPI, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from sermon_audio.adapters.aws import (
    ApiInvoker,
    AwsClientFactory,
    CredentialProvider,
    DynamoDbTrackingTable,
    ObjectStorage,
    S3ObjectStorage,
    TrackingTable,
)
from sermon_audio.core.config import Settings, get_settings
from sermon_audio.core.site_token import SiteTokenProvider
from sermon_audio.errors import SermonAudioError
from sermon_audio.repositories.memory import InMemoryStore
from sermon_audio.routes import announcements_router, internal_router, records_router
from sermon_audio.routes.dependencies import ServiceContainer
from sermon_audio.schemas.error import ErrorResponse
from sermon_audio.services.reconciliation import JobReconciler
from sermon_audio.services.records import RecordService
from sermon_audio.services.submission import JobSubmitter
from sermon_audio.services.sweep import RefreshSweep
from sermon_audio.services.transcripts import TranscriptRenderer

logger = logging.getLogger(__name__)

_ANNOUNCEMENT_VALIDATION_PATHS: set[tuple[str, str]] = {
    ("POST", "/api/v1/announcements/cleaning"),
    ("POST", "/api/v1/announcements/transcription"),
}


def build_services(
    settings: Settings,
    *,
    store: InMemoryStore,
    tracking_table: TrackingTable | None = None,
    invoker: ApiInvoker | None = None,
    audio_storage: ObjectStorage | None = None,
    transcript_storage: ObjectStorage | None = None,
    size_cache: Mapping[str, int] | None = None,
) -> ServiceContainer:
    """Wire adapters and services; explicit arguments replace the AWS-backed defaults."""
    credential_provider = CredentialProvider(settings)
    client_factory = AwsClientFactory(settings=settings, credential_provider=credential_provider)
    if invoker is None:
        invoker = ApiInvoker(settings=settings, credential_provider=credential_provider)
    if tracking_table is None:
        tracking_table = DynamoDbTrackingTable(settings=settings, client_factory=client_factory)
    if audio_storage is None:
        audio_storage = S3ObjectStorage(
            settings=settings,
            client_factory=client_factory,
            region_setting="audio_s3_aws_region",
        )
    if transcript_storage is None:
        transcript_storage = S3ObjectStorage(
            settings=settings,
            client_factory=client_factory,
            region_setting="transcription_s3_aws_region",
        )

    submitter = JobSubmitter(
        settings=settings,
        records=store,
        invoker=invoker,
        tracking_table=tracking_table,
    )
    reconciler = JobReconciler(
        settings=settings,
        artifacts=store,
        invoker=invoker,
        tracking_table=tracking_table,
        audio_storage=audio_storage,
        size_cache=size_cache,
    )
    sweep = RefreshSweep(records=store, reconciler=reconciler)
    renderer = TranscriptRenderer(settings=settings, storage=transcript_storage)
    return ServiceContainer(
        store=store,
        records=RecordService(store, submitter=submitter, sweep=sweep, renderer=renderer),
        sweep=sweep,
        site_token=SiteTokenProvider(settings),
    )


def create_app(
    settings: Settings | None = None,
    *,
    store: InMemoryStore | None = None,
    tracking_table: TrackingTable | None = None,
    invoker: ApiInvoker | None = None,
    audio_storage: ObjectStorage | None = None,
    transcript_storage: ObjectStorage | None = None,
    size_cache: Mapping[str, int] | None = None,
) -> FastAPI:
    settings = settings if settings is not None else get_settings()
    app = FastAPI(title="Sermon Audio Jobs API", version="1.0.0")
    app.state.store = store if store is not None else InMemoryStore()
    app.state.services = build_services(
        settings,
        store=app.state.store,
        tracking_table=tracking_table,
        invoker=invoker,
        audio_storage=audio_storage,
        transcript_storage=transcript_storage,
        size_cache=size_cache,
    )

    @app.exception_handler(SermonAudioError)
    async def handle_sermon_audio_error(request: Request, exc: SermonAudioError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.warning(
                "request.failed method=%s status=%s code=%s",
                request.method,
                exc.status_code,
                exc.code,
            )
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.payload.model_dump(mode="json", exclude_none=True),
            headers=exc.headers,
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        # Workers expect a plain 400 for malformed announcements.
        route = request.scope.get("route")
        route_path = getattr(route, "path", request.url.path)
        if (request.method.upper(), route_path) in _ANNOUNCEMENT_VALIDATION_PATHS:
            payload = ErrorResponse(code="BAD_REQUEST", message="Invalid announcement payload")
            return JSONResponse(status_code=400, content=payload.model_dump(exclude_none=True))

        return await request_validation_exception_handler(request, exc)

    api_prefix = "/api/v1"
    app.include_router(records_router, prefix=api_prefix)
    app.include_router(announcements_router, prefix=api_prefix)
    app.include_router(internal_router, prefix=api_prefix)

    return app


app = create_app()
