from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from mediacdn.api.v1 import get_api_router
from mediacdn.core.config import get_settings
from mediacdn.core.db import create_engine, create_session_factory
from mediacdn.core.logging import configure_logging, get_logger
from mediacdn.core.storage import get_storage


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(level=settings.log_level)
    logger = get_logger(component="app")
    storage = get_storage(settings)
    engine = create_engine(settings)
    session_factory = create_session_factory(engine)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.settings = settings
        app.state.storage = storage
        app.state.engine = engine
        app.state.session_factory = session_factory
        logger.info("app_started", environment=settings.environment, storage_root=str(settings.storage_root))
        try:
            yield
        finally:
            await engine.dispose()

    app = FastAPI(
        title=settings.app_name,
        version=settings.version,
        lifespan=lifespan,
        openapi_url="/openapi.json",
        docs_url="/docs",
    )

    app.include_router(get_api_router())
    return app


app = create_app()


__all__ = ["app", "create_app"]
