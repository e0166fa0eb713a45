"""Broker FastAPI application factory.

The create_app() factory is the single entry point for building the broker
ASGI application. It wires middleware (request-ID, metrics, request logging,
Basic auth), the OSB routes, and injects the collaborators (deployment
gateway, operation ledger, backup scheduler, manifest renderer) via
dependency injection.

Usage:
    # Local development (in-memory collaborators unless addresses are set)
    from blacksmith import create_app, BrokerSettings
    app = create_app(BrokerSettings(catalog_dirs=("services/redis",)))

    # Production (BOSH/Vault/SHIELD clients built from settings)
    app = create_app(BrokerSettings.from_env())

    # Testing (full DI control)
    app = create_app(settings, catalog=catalog, gateway=gw, ledger=ledger)
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from fastapi import FastAPI
from fastapi.responses import Response

from .catalog import PlanCatalog, load_catalog
from .observability import configure_logging, get_logger, metrics_text
from .observability.middleware import (
    MetricsMiddleware,
    RequestIdMiddleware,
    RequestLoggingMiddleware,
)
from .protocols import (
    BackupScheduler,
    DeploymentGateway,
    ManifestRenderer,
    OperationLedger,
)
from .provisioning import LifecycleOrchestrator, TemplateManifestRenderer
from .routes.broker import create_broker_router
from .security import BasicAuthMiddleware
from .settings import BrokerSettings

logger = get_logger(__name__)

LOCAL_CREDENTIAL_SEED = "blacksmith-local-development-seed"


@dataclass(frozen=True)
class AppDependencies:
    """Container for all injected collaborator instances.

    Stored on ``app.state.deps`` so route handlers and tests can reach them.
    ``closers`` are awaited on shutdown to release HTTP clients.
    """

    catalog: PlanCatalog
    gateway: DeploymentGateway
    ledger: OperationLedger
    renderer: ManifestRenderer
    scheduler: BackupScheduler
    closers: tuple[Callable[[], Awaitable[None]], ...] = field(default=())


def _build_deps(
    settings: BrokerSettings,
    *,
    catalog: PlanCatalog | None,
    gateway: DeploymentGateway | None,
    ledger: OperationLedger | None,
    renderer: ManifestRenderer | None,
    scheduler: BackupScheduler | None,
) -> AppDependencies:
    """Fill in any collaborator not injected by the caller.

    A collaborator whose address is configured gets its real client; in
    local mode the rest fall back to InMemory implementations.
    """
    closers: list[Callable[[], Awaitable[None]]] = []

    if catalog is None:
        catalog = load_catalog(*settings.catalog_dirs, log_config=settings.logging_config())

    if gateway is None:
        if settings.bosh_address:
            from .providers import BoshClient, BoshDeploymentGateway

            bosh = BoshClient(
                base_url=settings.bosh_address,
                username=settings.bosh_username,
                password=settings.bosh_password,
                verify=not settings.bosh_skip_verify,
            )
            closers.append(bosh.aclose)
            gateway = BoshDeploymentGateway(bosh)
        else:
            from .inmemory import InMemoryDeploymentGateway

            gateway = InMemoryDeploymentGateway()

    if ledger is None:
        if settings.vault_address:
            from .ledger import VaultClient, VaultOperationLedger

            vault = VaultClient(
                address=settings.vault_address,
                token=settings.vault_token,
                mount=settings.vault_prefix,
            )
            closers.append(vault.aclose)
            ledger = VaultOperationLedger(vault)
        else:
            from .inmemory import InMemoryOperationLedger

            ledger = InMemoryOperationLedger()

    if scheduler is None:
        if settings.backups_enabled:
            from .backups import ShieldBackupScheduler, ShieldClient

            shield = ShieldClient(
                base_url=settings.shield_address,
                token=settings.shield_token,
                tenant_uuid=settings.shield_tenant,
                verify=not settings.shield_skip_verify,
            )
            closers.append(shield.aclose)
            scheduler = ShieldBackupScheduler(
                shield,
                store_uuid=settings.shield_store,
                default_schedule=settings.shield_schedule,
                default_retain=settings.shield_retain,
            )
        else:
            from .backups import NoopBackupScheduler

            scheduler = NoopBackupScheduler()

    if renderer is None:
        renderer = TemplateManifestRenderer(
            seed=settings.credential_seed or LOCAL_CREDENTIAL_SEED,
        )

    return AppDependencies(
        catalog=catalog,
        gateway=gateway,
        ledger=ledger,
        renderer=renderer,
        scheduler=scheduler,
        closers=tuple(closers),
    )


# ── Factory ─────────────────────────────────────────────────────────


def create_app(
    settings: BrokerSettings | None = None,
    *,
    catalog: PlanCatalog | None = None,
    gateway: DeploymentGateway | None = None,
    ledger: OperationLedger | None = None,
    renderer: ManifestRenderer | None = None,
    scheduler: BackupScheduler | None = None,
) -> FastAPI:
    """Create a configured broker FastAPI application.

    Args:
        settings: Application settings. Defaults to local-dev settings.
        catalog..scheduler: Collaborator overrides. When None they are built
            from settings (see ``_build_deps``).

    Returns:
        Configured FastAPI application ready for uvicorn.run().

    Raises:
        ValueError: If settings validation fails.
        CatalogError: If a catalog directory cannot be loaded.
    """
    if settings is None:
        settings = BrokerSettings()

    errors = settings.validate()
    if errors:
        raise ValueError(
            "Broker settings validation failed:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )

    log_config = settings.logging_config()
    configure_logging(log_config)

    deps = _build_deps(
        settings,
        catalog=catalog,
        gateway=gateway,
        ledger=ledger,
        renderer=renderer,
        scheduler=scheduler,
    )
    orchestrator = LifecycleOrchestrator(
        catalog=deps.catalog,
        gateway=deps.gateway,
        ledger=deps.ledger,
        renderer=deps.renderer,
        log_config=log_config,
        serialize_instances=settings.serialize_instances,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "broker_startup",
            environment=settings.environment,
            plans=len(deps.catalog),
            backups_enabled=settings.backups_enabled,
        )
        yield
        for close in deps.closers:
            await close()
        logger.info("broker_shutdown")

    app = FastAPI(
        title="Blacksmith Service Broker",
        description="Open Service Broker API for BOSH-deployed services",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.deps = deps
    app.state.settings = settings
    app.state.orchestrator = orchestrator

    # ── Middleware stack (applied in reverse order) ──────────────
    # Order of execution: RequestId -> Metrics -> Logging -> BasicAuth -> route handler

    if settings.auth_enabled:
        app.add_middleware(
            BasicAuthMiddleware,
            username=settings.broker_username,
            password=settings.broker_password,
        )
    else:
        logger.warning("broker_auth_disabled", environment=settings.environment)

    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIdMiddleware)

    # ── Routes ──────────────────────────────────────────────────

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "environment": settings.environment,
        }

    @app.get("/metrics")
    async def metrics():
        body, content_type = metrics_text()
        return Response(content=body, media_type=content_type)

    app.include_router(create_broker_router(orchestrator, deps.scheduler))

    return app


# For uvicorn, use --factory flag:
#   uvicorn blacksmith.main:create_app --factory
# This avoids executing create_app() at import time.
