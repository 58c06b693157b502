"""Share service FastAPI application factory.

The create_app() factory is the single entry point for building the share
service ASGI application. It wires middleware (request-ID, metrics, CORS),
the owner and public routers, error rendering and the background tasks,
and injects repository implementations via dependency injection.

Usage:
    # Local development (InMemory repositories)
    app = create_app(ShareSettings(encryption_key=..., session_secret=...))

    # Production (PostgREST repositories built from settings)
    app = create_app(ShareSettings.from_env())

    # Testing (full DI control)
    app = create_app(settings, share_repo=repo, store_factory=factory, ...)
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from .analytics.access_log import AccessLogger, AccessLogRepository, InMemoryAccessLogRepository
from .backend.github import github_store_factory
from .backend.store import StoreClientFactory
from .observability import configure_logging, get_logger, metrics_text, request_id_ctx
from .observability.middleware import MetricsMiddleware, RequestIdMiddleware
from .security.encryption import CredentialCipher
from .security.owner_auth import OwnerTokenVerifier, create_owner_dependency
from .settings import ShareSettings
from .sharing.access import create_share_access_router
from .sharing.context import AccessContextResolver, AccessRecorder
from .sharing.errors import ErrorCode, ShareError, ShareRateLimited
from .sharing.model import InMemoryShareRepository, ShareRepository, utcnow
from .sharing.owners import InMemoryOwnerVaultDirectory, OwnerVaultDirectory
from .sharing.rate_limit import DepositRateLimiter, RateLimitSweeper
from .sharing.registry import ExpiredSharePurger, ShareRegistry
from .sharing.routes import create_share_router
from .sharing.service import ShareAccessService

logger = get_logger(__name__)


@dataclass(frozen=True)
class AppDependencies:
    """Container for the wired service objects.

    Stored on ``app.state.deps`` so tests and route handlers can reach them.
    """

    share_repo: ShareRepository
    access_log_repo: AccessLogRepository
    owner_directory: OwnerVaultDirectory
    cipher: CredentialCipher
    verifier: OwnerTokenVerifier
    registry: ShareRegistry
    recorder: AccessRecorder
    resolver: AccessContextResolver
    rate_limiter: DepositRateLimiter
    access_logger: AccessLogger
    service: ShareAccessService
    sweeper: RateLimitSweeper
    purger: ExpiredSharePurger


def _build_repositories(
    settings: ShareSettings,
    cipher: CredentialCipher,
    share_repo: ShareRepository | None,
    access_log_repo: AccessLogRepository | None,
    owner_directory: OwnerVaultDirectory | None,
) -> tuple[ShareRepository, AccessLogRepository, OwnerVaultDirectory]:
    """Fill missing repositories: InMemory locally, PostgREST otherwise."""
    if settings.is_local:
        return (
            share_repo or InMemoryShareRepository(),
            access_log_repo or InMemoryAccessLogRepository(),
            owner_directory or InMemoryOwnerVaultDirectory(),
        )

    from .db import (
        PostgrestAccessLogRepository,
        PostgrestClient,
        PostgrestOwnerVaultDirectory,
        PostgrestShareRepository,
    )

    client = PostgrestClient(
        supabase_url=settings.supabase_url,
        service_role_key=settings.supabase_service_role_key,
    )
    return (
        share_repo or PostgrestShareRepository(client),
        access_log_repo or PostgrestAccessLogRepository(client),
        owner_directory or PostgrestOwnerVaultDirectory(client, cipher),
    )


def _error_response(exc: ShareError) -> JSONResponse:
    body = exc.to_dict()
    body["request_id"] = request_id_ctx.get()
    headers = {}
    if isinstance(exc, ShareRateLimited):
        headers["Retry-After"] = str(exc.retry_after_seconds)
    return JSONResponse(status_code=exc.http_status, content=body, headers=headers)


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ShareError)
    async def share_error_handler(request: Request, exc: ShareError):
        return _error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        fields = [".".join(str(part) for part in err.get("loc", ())) for err in exc.errors()]
        return JSONResponse(
            status_code=400,
            content={
                "error": ErrorCode.VALIDATION_ERROR.value,
                "detail": f"Invalid request: {', '.join(fields) or 'body'}",
                "request_id": request_id_ctx.get(),
            },
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(
            "unhandled_error",
            method=request.method,
            path=request.url.path,
        )
        request_id = getattr(request.state, "request_id", None) or request_id_ctx.get()
        return JSONResponse(
            status_code=500,
            content={
                "error": ErrorCode.INTERNAL.value,
                "detail": "Internal server error.",
                "request_id": request_id,
            },
            headers={"X-Request-ID": request_id} if request_id else None,
        )


# ── Factory ─────────────────────────────────────────────────────────


def create_app(
    settings: ShareSettings | None = None,
    *,
    share_repo: ShareRepository | None = None,
    access_log_repo: AccessLogRepository | None = None,
    owner_directory: OwnerVaultDirectory | None = None,
    store_factory: StoreClientFactory | None = None,
    clock: Callable[[], datetime] = utcnow,
    configure_logs: bool = True,
) -> FastAPI:
    """Create a configured share service FastAPI application.

    Args:
        settings: Application settings. Defaults to ``ShareSettings.from_env()``.
        share_repo, access_log_repo, owner_directory: Repository overrides.
            When None, local mode uses InMemory implementations and other
            environments use PostgREST.
        store_factory: Builds store clients from decrypted credentials.
            Defaults to the GitHub contents API.
        clock: Time source for the registry (tests freeze it).
        configure_logs: Configure structlog from settings.

    Returns:
        Configured FastAPI application ready for uvicorn.run().

    Raises:
        ValueError: If settings validation fails.
    """
    if settings is None:
        settings = ShareSettings.from_env()

    errors = settings.validate()
    if errors:
        raise ValueError(
            "Share service settings validation failed:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )

    if configure_logs:
        configure_logging(level=settings.log_level, json_output=settings.log_json)

    cipher = CredentialCipher.from_secret(settings.encryption_key)
    verifier = OwnerTokenVerifier(settings.session_secret)
    share_repo, access_log_repo, owner_directory = _build_repositories(
        settings, cipher, share_repo, access_log_repo, owner_directory,
    )
    if store_factory is None:
        store_factory = github_store_factory(
            api_url=settings.github_api_url,
            timeout_seconds=settings.store_timeout_seconds,
        )

    registry = ShareRegistry(share_repo, cipher, clock=clock)
    recorder = AccessRecorder(registry.record_access)
    resolver = AccessContextResolver(
        registry,
        cipher,
        store_factory,
        recorder,
        timeout_seconds=settings.resolve_timeout_seconds,
    )
    rate_limiter = DepositRateLimiter(
        ip_limit=settings.deposit_ip_limit_per_minute,
        share_limit=settings.deposit_share_limit_per_hour,
    )
    access_logger = AccessLogger(access_log_repo)
    deps = AppDependencies(
        share_repo=share_repo,
        access_log_repo=access_log_repo,
        owner_directory=owner_directory,
        cipher=cipher,
        verifier=verifier,
        registry=registry,
        recorder=recorder,
        resolver=resolver,
        rate_limiter=rate_limiter,
        access_logger=access_logger,
        service=ShareAccessService(
            resolver,
            rate_limiter,
            access_logger,
            store_timeout_seconds=settings.store_timeout_seconds,
        ),
        sweeper=RateLimitSweeper(rate_limiter, settings.rate_limit_sweep_seconds),
        purger=ExpiredSharePurger(registry, settings.share_purge_interval_seconds),
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("share_service_startup", environment=settings.environment)
        deps.recorder.start()
        deps.sweeper.start()
        deps.purger.start()
        try:
            yield
        finally:
            await deps.purger.stop()
            await deps.sweeper.stop()
            await deps.recorder.stop()
            logger.info("share_service_shutdown")

    app = FastAPI(
        title="Vault Shares",
        description="Time-limited share links onto a private notes vault",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.deps = deps
    app.state.settings = settings

    # ── Middleware stack (applied in reverse order) ──────────────
    # Order of execution: RequestID -> Metrics -> CORS -> route handler
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Retry-After", "X-Request-ID"],
    )
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIdMiddleware)

    _register_error_handlers(app)

    @app.get("/health")
    async def health():
        return {"status": "ok", "environment": settings.environment}

    @app.get("/metrics")
    async def metrics():
        body, content_type = metrics_text()
        return Response(content=body, media_type=content_type)

    # Owner routes first: ``/api/shares/analytics`` must win over the
    # public ``/api/shares/{token}`` lookup.
    app.include_router(create_share_router(
        registry,
        owner_directory,
        access_log_repo,
        create_owner_dependency(verifier),
    ))
    app.include_router(create_share_access_router(deps.service))

    return app
