"""
FastAPI application exposing the data manager routes.
"""

from __future__ import annotations

import importlib.metadata
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .config import Settings, get_settings
from .data.events import EventBus
from .db.base import create_engine_for_url, init_database
from .db.server import DataServer
from .errors import (
    ConfigurationError,
    EntityEngineError,
    NotFoundError,
    UnsupportedOperationError,
    ValidationError,
)
from .routes import router
from .schema.registry import ModelRegistry

# Initialize structured logging
logger = structlog.get_logger()

ERROR_STATUS = (
    (NotFoundError, 404),
    (ValidationError, 400),
    (UnsupportedOperationError, 400),
    (ConfigurationError, 500),
)


def _status_for(error: EntityEngineError) -> int:
    for error_type, status_code in ERROR_STATUS:
        if isinstance(error, error_type):
            return status_code
    return 500


async def build_data_server(settings: Settings, event_bus: Optional[EventBus] = None) -> DataServer:
    """Load the models from ``settings.schema_path`` and connect to the database."""
    if not settings.schema_path:
        raise ConfigurationError("SCHEMA_PATH must point to a JSON file of model definitions.")
    registry = ModelRegistry.from_json_file(settings.schema_path)
    engine = create_engine_for_url(settings.database_url)
    await init_database(engine, registry)
    return DataServer(engine, registry, event_bus=event_bus, settings=settings)


def create_app(server: Optional[DataServer] = None, settings: Optional[Settings] = None) -> FastAPI:
    """Create the application, using ``server`` when given or building one at startup."""
    settings = settings or (server.settings if server else get_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info("Starting Rapid Entities")
        owns_server = app.state.data_server is None
        if owns_server:
            try:
                app.state.data_server = await build_data_server(settings)
            except Exception as e:
                logger.error(f"Failed to start application: {e}")
                raise
        logger.info(
            "Data server ready",
            models=len(app.state.data_server.registry.models),
        )

        yield

        logger.info("Shutting down Rapid Entities")
        if owns_server:
            await app.state.data_server.engine.dispose()
        logger.info("Shutdown complete")

    app = FastAPI(
        title=settings.app_name,
        description="Relation-aware entity data manager",
        version=importlib.metadata.version("rapid-entities"),
        lifespan=lifespan,
    )
    app.state.data_server = server

    @app.exception_handler(EntityEngineError)
    async def entity_engine_error_handler(request: Request, exc: EntityEngineError) -> JSONResponse:
        status_code = _status_for(exc)
        logger.info("request_failed", path=request.url.path, error=exc.code, status_code=status_code)
        return JSONResponse(status_code=status_code, content=exc.to_dict())

    @app.get("/healthz", tags=["system"])
    def healthz() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok"}

    app.include_router(router, prefix=settings.base_url.rstrip("/"))
    return app
