"""
FastAPI application entry point for the anchoring relay.
Configures middleware, routers, and the ledger lifecycle.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from app.core.config import Settings, get_settings
from app.core.exceptions import InklessError
from app.core.logging import configure_logging, get_logger
from app.core.middleware import SecurityHeadersMiddleware
from app.modules.ledger import RegistryLedger, build_ledger
from app.modules.signatures.relay_service import RelayService
from app.modules.signatures.router import router as signatures_router

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Checks that the relay is allowed to write to the registry on startup and
    closes the ledger connection on shutdown.
    """
    settings: Settings = app.state.settings
    ledger: RegistryLedger = app.state.relay_service.ledger
    logger.info(
        "starting_relay",
        environment=settings.environment,
        version=settings.version,
        ledger_backend=settings.ledger_backend,
    )

    ensure_authorized = getattr(ledger, "ensure_authorized", None)
    if ensure_authorized is not None:
        await ensure_authorized()
        logger.info("ledger_authority_verified")

    yield

    await ledger.close()
    logger.info("relay_shutdown_complete")


def create_application(
    settings: Settings | None = None,
    *,
    ledger: RegistryLedger | None = None,
) -> FastAPI:
    """
    Application factory function.

    ``ledger`` overrides the backend selected by settings (tests pass an
    in-memory registry here).
    """
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.project_name,
        version=settings.version,
        openapi_url=f"{settings.api_v1_prefix}/openapi.json",
        docs_url=f"{settings.api_v1_prefix}/docs",
        redoc_url=None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.relay_service = RelayService(
        ledger if ledger is not None else build_ledger(settings),
        recent_limit=settings.recent_signatures_limit,
    )

    # ==========================================================================
    # Middleware Configuration
    # ==========================================================================

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Accept", "Origin", "X-Request-ID"],
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    @app.exception_handler(InklessError)
    async def inkless_error_handler(_request: Request, exc: InklessError) -> JSONResponse:
        logger.warning("unhandled_protocol_error", code=exc.code, message=exc.message)
        return JSONResponse(status_code=500, content={"detail": exc.to_dict()})

    # ==========================================================================
    # Router Registration
    # ==========================================================================

    @app.get("/health", tags=["Health"])
    async def health_check() -> JSONResponse:
        relay: RelayService = app.state.relay_service
        checks: dict[str, str] = {}
        try:
            await relay.ledger.owner()
            checks["ledger"] = "ok"
        except InklessError:
            checks["ledger"] = "unavailable"
        healthy = all(value == "ok" for value in checks.values())
        return JSONResponse(
            status_code=200 if healthy else 503,
            content={"status": "healthy" if healthy else "degraded", "checks": checks},
        )

    app.include_router(signatures_router, prefix=settings.api_v1_prefix)

    return app


# Application instance (served with ``uvicorn app.main:app``)
app = create_application()
