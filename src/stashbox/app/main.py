"""Stashbox FastAPI application factory.

The create_app() factory is the single entry point for building the stashbox
ASGI application. It wires middleware (auth guard, request-ID, metrics, CORS),
the sharing and public routers, and injects repository implementations via
dependency injection.

Usage:
    # Local development
    from stashbox.app import create_app, StashboxSettings
    app = create_app(StashboxSettings())

    # Testing (full DI control)
    app = create_app(settings, resource_repo=repo, user_directory=users)
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from stashbox.observability import configure_logging, get_logger, metrics_text
from stashbox.observability.middleware import (
    MetricsMiddleware,
    RequestIdMiddleware,
    RequestLoggingMiddleware,
)

from .protocols import (
    CollectionShareRepository,
    ResourceRepository,
    TokenRegistry,
    TrashRepository,
    UserDirectory,
)
from .security import AuthGuardMiddleware, SessionTokenVerifier
from .settings import StashboxSettings
from .sharing import (
    AccessControlLedger,
    PublicTokenIssuer,
    PublicViewer,
    ResourceStore,
    SharingGateway,
    create_public_router,
    create_sharing_router,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class AppDependencies:
    """Container for all injected repository instances.

    Stored on ``app.state.deps`` so route handlers and tests can reach them.
    """

    resource_repo: ResourceRepository
    collection_repo: CollectionShareRepository
    token_registry: TokenRegistry
    user_directory: UserDirectory
    trash_repo: TrashRepository


@dataclass(frozen=True)
class SharingServices:
    """Domain services built over AppDependencies (``app.state.services``)."""

    issuer: PublicTokenIssuer
    ledger: AccessControlLedger
    gateway: SharingGateway
    store: ResourceStore
    viewer: PublicViewer


def _build_inmemory_deps() -> AppDependencies:
    """Construct all-InMemory dependencies for local development."""
    from .inmemory import (
        InMemoryCollectionShareRepository,
        InMemoryResourceRepository,
        InMemoryTokenRegistry,
        InMemoryTrashRepository,
        InMemoryUserDirectory,
    )

    return AppDependencies(
        resource_repo=InMemoryResourceRepository(),
        collection_repo=InMemoryCollectionShareRepository(),
        token_registry=InMemoryTokenRegistry(),
        user_directory=InMemoryUserDirectory(),
        trash_repo=InMemoryTrashRepository(),
    )


def build_services(deps: AppDependencies, settings: StashboxSettings) -> SharingServices:
    """Wire the sharing domain over a set of repositories."""
    issuer = PublicTokenIssuer(
        deps.token_registry, token_bytes=settings.public_token_bytes,
    )
    ledger = AccessControlLedger(deps.resource_repo, deps.user_directory, issuer)
    return SharingServices(
        issuer=issuer,
        ledger=ledger,
        gateway=SharingGateway(
            ledger, deps.resource_repo, deps.collection_repo, issuer,
        ),
        store=ResourceStore(
            deps.resource_repo, deps.user_directory, issuer, deps.trash_repo,
        ),
        viewer=PublicViewer(deps.resource_repo, deps.collection_repo, issuer),
    )


def create_app(
    settings: StashboxSettings | None = None,
    *,
    resource_repo: ResourceRepository | None = None,
    collection_repo: CollectionShareRepository | None = None,
    token_registry: TokenRegistry | None = None,
    user_directory: UserDirectory | None = None,
    trash_repo: TrashRepository | None = None,
) -> FastAPI:
    """Create a configured stashbox FastAPI application.

    Args:
        settings: Application settings. Defaults to local-dev settings.
        resource_repo..trash_repo: Repository overrides. When None, local
            mode uses InMemory implementations. Non-local mode raises if
            any repository is not provided.

    Raises:
        ValueError: If settings validation fails.
        ValueError: If a non-local environment is missing repositories.
    """
    if settings is None:
        settings = StashboxSettings()

    errors = settings.validate()
    if errors:
        raise ValueError(
            "Stashbox settings validation failed:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )

    provided = {
        "resource_repo": resource_repo,
        "collection_repo": collection_repo,
        "token_registry": token_registry,
        "user_directory": user_directory,
        "trash_repo": trash_repo,
    }
    if settings.is_local:
        defaults = _build_inmemory_deps()
        deps = AppDependencies(**{
            name: value if value is not None else getattr(defaults, name)
            for name, value in provided.items()
        })
    else:
        missing = [name for name, value in provided.items() if value is None]
        if missing:
            raise ValueError(
                f"Non-local environment ({settings.environment}) requires all "
                f"repositories to be explicitly provided. Missing: {', '.join(missing)}"
            )
        deps = AppDependencies(**provided)  # type: ignore[arg-type]

    services = build_services(deps, settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(
            level=settings.log_level,
            json_output=settings.log_json,
            environment=settings.environment,
        )
        logger.info("stashbox_startup", environment=settings.environment)
        yield
        logger.info("stashbox_shutdown")

    app = FastAPI(
        title="Stashbox",
        description="Shareable clipboards, link categories and commands",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.deps = deps
    app.state.services = services
    app.state.settings = settings

    # ── Middleware stack (applied in reverse order) ──────────────
    # Execution order: RequestId -> Logging -> Metrics -> AuthGuard -> CORS -> route

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(
        AuthGuardMiddleware,
        token_verifier=SessionTokenVerifier(settings.session_secret),
    )
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIdMiddleware)

    # ── Routes ──────────────────────────────────────────────────

    @app.get("/health")
    async def health():
        return {"status": "ok", "environment": settings.environment}

    @app.get("/metrics")
    async def metrics():
        body, content_type = metrics_text()
        return Response(content=body, media_type=content_type)

    app.include_router(create_public_router(services.viewer))
    app.include_router(
        create_sharing_router(services.store, services.gateway, trash=deps.trash_repo)
    )

    return app


# For uvicorn, use --factory flag:
#   uvicorn stashbox.app.main:create_app --factory
