"""FastAPI application setup and configuration."""

from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from tts_vtex_bridge import __version__
from tts_vtex_bridge.config.settings import Settings, settings as default_settings
from tts_vtex_bridge.core.errors import (
    NotFoundError,
    OrderValidationError,
    ShopConfigError,
    UnprocessableOrderError,
    UpstreamApiError,
)
from tts_vtex_bridge.core.logger import setup_logger
from tts_vtex_bridge.core.monitoring import init_monitoring
from tts_vtex_bridge.db import get_engine, get_session_factory, init_db
from tts_vtex_bridge.server.dependencies import BridgeServices, build_services

logger = setup_logger(__name__)

# (exception class, HTTP status) checked in order
ERROR_STATUS = (
    (OrderValidationError, 422),
    (UnprocessableOrderError, 422),
    (ValidationError, 422),
    (NotFoundError, 404),
    (ShopConfigError, 400),
    (UpstreamApiError, 502),
)


def _register_exception_handlers(app: FastAPI) -> None:
    for error_class, status_code in ERROR_STATUS:

        def make_handler(code: int):
            async def handler(request: Request, exc: Exception) -> JSONResponse:
                logger.warning(f"{request.method} {request.url.path} -> {code}: {exc}")
                return JSONResponse(
                    status_code=code,
                    content={"error": type(exc).__name__, "message": str(exc)},
                )

            return handler

        app.add_exception_handler(error_class, make_handler(status_code))


def create_app(
    services: Optional[BridgeServices] = None,
    app_settings: Optional[Settings] = None,
) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        services: Prebuilt service graph; built on startup from settings if omitted
        app_settings: Settings override (defaults to the global settings)
    """
    config = app_settings or (services.settings if services else default_settings)

    app = FastAPI(
        title="TikTok Shop VTEX Bridge",
        version=__version__,
        description="Imports TikTok Shop orders into VTEX and manages shipping labels",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from tts_vtex_bridge.server import routes

    app.include_router(routes.router)
    _register_exception_handlers(app)

    state = {"services": services, "engine": None}

    def get_services() -> BridgeServices:
        if state["services"] is None:
            raise RuntimeError("Services not initialized")
        return state["services"]

    # Override the stub dependency with the live service graph
    app.dependency_overrides[routes.get_services_stub] = get_services

    @app.on_event("startup")
    async def startup():
        """Initialize monitoring, database and background workers."""
        init_monitoring(config)

        if state["services"] is None:
            try:
                logger.info(f"Initializing database: {config.database_url.split('@')[-1]}")
                engine = get_engine(config.database_url)
                await init_db(engine)
                state["engine"] = engine
                state["services"] = build_services(config, get_session_factory(engine))
                logger.info("Database initialized successfully")
            except Exception as e:
                logger.error(f"Failed to initialize application: {e}", exc_info=True)
                raise

        live = state["services"]
        live.dispatcher.start()
        if live.scheduler is not None:
            live.scheduler.start()

    @app.on_event("shutdown")
    async def shutdown():
        """
        Gracefully shut down all resources.

        Queued VTEX notifications are drained before the scheduler, HTTP
        client and database connections are closed.
        """
        logger.info("Starting graceful shutdown...")

        live = state["services"]
        if live is not None:
            try:
                await live.close()
            except Exception as e:
                logger.error(f"Error stopping services: {e}", exc_info=True)

        if state["engine"] is not None:
            logger.info("Closing database connections...")
            try:
                await state["engine"].dispose()
                logger.info("Database connections closed successfully")
            except Exception as e:
                logger.error(f"Error closing database connections: {e}")

        logger.info("Graceful shutdown completed")

    return app
