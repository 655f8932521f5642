from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager

import structlog
from fastapi import APIRouter, FastAPI

from chainway.config import Settings, settings as default_settings
from chainway.logging_setup import configure_logging
from chainway.pipeline.controller import Pipeline
from chainway.routes.pipeline import mount_pipeline

log = structlog.get_logger()


def create_app(
    pipelines: Mapping[str, tuple[Pipeline, tuple[str, ...]]] | None = None,
    config: Settings | None = None,
) -> FastAPI:
    """Build an ASGI app serving each ``path -> (pipeline, methods)`` entry."""
    config = config or default_settings
    configure_logging(config.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        log.info("starting", env=config.app_env, routes=sorted(pipelines or {}))
        yield
        log.info("shutdown")

    app = FastAPI(title="Chainway", version="0.1.0", lifespan=lifespan)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    router = APIRouter()
    for path, (pipeline, methods) in (pipelines or {}).items():
        mount_pipeline(router, path, pipeline, methods)
    app.include_router(router)
    return app
