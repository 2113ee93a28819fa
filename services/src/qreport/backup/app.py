"""FastAPI application factory for the backup service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import AsyncIterator, Final

from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from starlette.datastructures import MutableHeaders
from starlette.exceptions import HTTPException
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from .config import BackupSettings
from .diagnostics import DiagnosticLogger
from .errors import ServiceError
from .http import (
    TRACE_ID_HEADER,
    default_error_responses,
    ensure_trace_id,
    get_trace_context,
    http_exception_to_response,
    internal_error_response,
    request_validation_response,
    resolve_trace_id,
    service_error_response,
)
from .layout import BackupLayoutManager
from .middleware import BodySizeLimitMiddleware
from .routers import api_router, health_router
from .scheduler import CleanupScheduler, VerificationScheduler
from .serializer import SnapshotSerializer
from .share_service import ShareService
from .storage import LocalFileStore

LOGGER = logging.getLogger(__name__)

SERVICE_VERSION: Final[str] = "1.0.0"


class TraceMiddleware:
    """ASGI middleware that applies trace IDs and unified error handling."""

    def __init__(self, app: ASGIApp, *, trace_context: ContextVar[str]) -> None:
        self.app = app
        self._trace_context = trace_context

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope, receive)
        trace_id = resolve_trace_id(request.headers.get(TRACE_ID_HEADER))
        token = self._trace_context.set(trace_id)
        scope.setdefault("state", {})
        scope["state"]["trace_id"] = trace_id  # type: ignore[index]

        async def send_wrapper(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                headers.setdefault(TRACE_ID_HEADER, trace_id)
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        except HTTPException as exc:
            await http_exception_to_response(exc, trace_id)(scope, receive, send)
        except RequestValidationError as exc:
            await request_validation_response(exc, trace_id)(scope, receive, send)
        except ServiceError as exc:
            await service_error_response(exc, trace_id)(scope, receive, send)
        except Exception as exc:  # pragma: no cover - last-resort handler
            LOGGER.exception(
                "Unhandled error processing %s %s",
                request.method,
                request.url.path,
                exc_info=exc,
            )
            await internal_error_response(trace_id)(scope, receive, send)
        finally:
            self._trace_context.reset(token)


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Run the background schedulers for the lifetime of the application."""

    cleanup: CleanupScheduler = app.state.cleanup_scheduler
    verifier: VerificationScheduler | None = app.state.verification_scheduler
    cleanup.start()
    if verifier is not None:
        verifier.start()
    try:
        yield
    finally:
        if verifier is not None:
            verifier.shutdown()
        cleanup.shutdown()


def create_app(settings: BackupSettings | None = None) -> FastAPI:
    """Construct the FastAPI application."""

    service_settings = settings or BackupSettings.from_environment()
    for directory in (
        service_settings.backups_dir,
        service_settings.share_dir,
        service_settings.state_dir,
    ):
        directory.mkdir(parents=True, exist_ok=True)

    application = FastAPI(
        title="QReport Backup Service",
        version=SERVICE_VERSION,
        responses=default_error_responses(),
        lifespan=_lifespan,
    )
    store = LocalFileStore(service_settings.data_dir)
    serializer = SnapshotSerializer()
    layout = BackupLayoutManager(store, serializer, service_settings.backups_dir)
    cleanup = CleanupScheduler()

    application.state.settings = service_settings
    application.state.service_version = SERVICE_VERSION
    application.state.diagnostics = DiagnosticLogger(service_settings.state_dir)
    application.state.store = store
    application.state.serializer = serializer
    application.state.layout = layout
    application.state.cleanup_scheduler = cleanup
    application.state.share_service = ShareService(settings=service_settings, cleanup=cleanup)

    verifier: VerificationScheduler | None = None
    if service_settings.verifier_enabled:
        verifier = VerificationScheduler(
            service_settings,
            layout=layout,
            serializer=serializer,
            store=store,
        )
    application.state.verification_scheduler = verifier

    async def http_exception_handler(_: Request, exc: Exception) -> Response:
        trace_id = ensure_trace_id()
        if isinstance(exc, HTTPException):
            return http_exception_to_response(exc, trace_id)
        return internal_error_response(trace_id)

    async def validation_exception_handler(_: Request, exc: Exception) -> Response:
        trace_id = ensure_trace_id()
        if isinstance(exc, RequestValidationError):
            return request_validation_response(exc, trace_id)
        return internal_error_response(trace_id)

    async def service_exception_handler(_: Request, exc: Exception) -> Response:
        trace_id = ensure_trace_id()
        if isinstance(exc, ServiceError):
            return service_error_response(exc, trace_id)
        return internal_error_response(trace_id)

    application.add_exception_handler(HTTPException, http_exception_handler)
    application.add_exception_handler(RequestValidationError, validation_exception_handler)
    application.add_exception_handler(ServiceError, service_exception_handler)

    application.add_middleware(
        BodySizeLimitMiddleware,
        limit=service_settings.max_request_body_bytes,
    )
    application.add_middleware(
        TraceMiddleware,
        trace_context=get_trace_context(),
    )

    application.include_router(health_router)
    application.include_router(api_router)

    @application.get("/", include_in_schema=False)
    async def service_index(request: Request) -> dict[str, str]:
        """Return a lightweight service manifest for manual probes."""

        version = getattr(request.app.state, "service_version", SERVICE_VERSION)
        return {
            "service": "qreport-backup",
            "version": version,
            "api_base": "/api/v1",
        }

    @application.get("/favicon.ico", include_in_schema=False)
    async def favicon_placeholder() -> Response:
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    return application


__all__ = ["SERVICE_VERSION", "TraceMiddleware", "create_app"]
