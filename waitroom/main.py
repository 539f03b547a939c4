"""
Waiting Room Gate - time-limited admission windows for encrypted tokens.

Features:
- WebSocket entry with a pushed notification when the window expires
- Status and registration endpoints
- Periodic sweep of never-entered sessions
- Structured logging with correlation IDs
- Prometheus metrics
- Health checks (liveness and readiness)
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import make_asgi_app
from .config import Settings, get_settings
from .logging import setup_logging, get_logger
from .api.router import router
from .api.ws_router import router as ws_router
from .adapters.base import SessionStore
from .auth.api_key import APIKeyRegistry
from .crypto import TokenDecryptor
from .middleware import CorrelationIdMiddleware, MetricsMiddleware, ValidationMiddleware
from .metrics import Metrics
from .health import HealthChecker
from .services.gate import GateService
from .services.session_store import create_session_store
from .services.sweeper import Sweeper
from .streaming.gate_connection import ConnectionManager

SERVICE_NAME = "waitroom"
VERSION = "0.1.0"

logger = get_logger()


def create_app(settings: Settings | None = None, store: SessionStore | None = None, clock=None) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Configuration (defaults to environment settings)
        store: Session store (defaults to the configured backend)
        clock: Callable returning epoch milliseconds, for tests
    """
    settings = settings or get_settings()
    setup_logging(json_output=settings.LOG_JSON, level=settings.LOG_LEVEL)

    metrics = Metrics(service_name=SERVICE_NAME, version=VERSION)
    if store is None:
        store = create_session_store(settings)
    gate = GateService(store, window_ms=settings.ADMISSION_WINDOW_MS, clock=clock)
    sweeper = Sweeper(store, interval_seconds=settings.SWEEP_INTERVAL_SECONDS, metrics=metrics)

    app = FastAPI(
        title="Waiting Room Gate",
        version=VERSION,
        description="Single-entry admission windows with live expiry notifications",
    )

    app.state.settings = settings
    app.state.metrics = metrics
    app.state.store = store
    app.state.gate = gate
    app.state.sweeper = sweeper
    app.state.decryptor = TokenDecryptor(settings.TOKEN_PASSPHRASE.get_secret_value())
    app.state.api_keys = APIKeyRegistry(settings)
    app.state.connections = ConnectionManager(metrics=metrics)

    health_checker = HealthChecker(store, service_name=SERVICE_NAME, version=VERSION)

    # Last added runs first: correlation ID, then metrics, validation, CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in settings.CORS_ALLOW_ORIGINS.split(",") if o.strip()],
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type"],
    )
    app.add_middleware(ValidationMiddleware, max_size=settings.MAX_REQUEST_SIZE)
    app.add_middleware(MetricsMiddleware, metrics=metrics)
    app.add_middleware(CorrelationIdMiddleware)

    app.include_router(router)
    app.include_router(ws_router)

    # Mount Prometheus metrics endpoint
    app.mount("/metrics", make_asgi_app(registry=metrics.registry))

    @app.get("/", response_class=PlainTextResponse)
    async def root():
        return "Waiting Room Gate API"

    @app.get("/health")
    async def health():
        """
        Liveness probe - basic health check.

        Returns 200 if service is running.
        """
        logger.debug("health_check_liveness")
        return health_checker.liveness()

    @app.get("/health/ready")
    async def health_ready():
        """
        Readiness probe - comprehensive health check.

        Returns:
            200: Service is ready to handle traffic
            503: Service is not ready
        """
        logger.debug("health_check_readiness")
        metrics.update_system_metrics()
        result = await health_checker.readiness()
        status_code = 200 if result["status"] == "ready" else 503
        return JSONResponse(status_code=status_code, content=result)

    @app.on_event("startup")
    async def startup_event():
        """Log startup and start the sweeper."""
        logger.info(
            "service_starting",
            version=VERSION,
            env=settings.ENV,
            session_store=type(store).__name__,
            window_ms=settings.ADMISSION_WINDOW_MS,
        )
        if not settings.TOKEN_PASSPHRASE.get_secret_value():
            logger.warning("token_passphrase_missing")
        if settings.REQUIRE_AUTH and app.state.api_keys.count() == 0:
            logger.warning("auth_required_without_keys")
        if settings.SWEEP_ENABLED:
            sweeper.start()

    @app.on_event("shutdown")
    async def shutdown_event():
        """Close connections, stop the sweeper and release the store."""
        logger.info("service_stopping")
        app.state.connections.close_all()
        await sweeper.stop()
        await store.close()
        metrics.app_up.labels(service=SERVICE_NAME, version=VERSION).set(0)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "waitroom.main:app",
        host="0.0.0.0",
        port=get_settings().SERVICE_PORT,
    )
