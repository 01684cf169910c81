from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from .api.routes import router as api_router
from .core.config import get_settings
from .core.logging import configure_logging, get_logger
from .dependencies import shutdown_services

settings = get_settings()
configure_logging(settings.observability.log_level, fmt=settings.observability.log_format)
logger = get_logger(name=__name__)


@asynccontextmanager
async def app_lifespan(app: FastAPI):
    logger.info("storyline_engine_started", environment=settings.environment)
    try:
        yield
    finally:
        await shutdown_services()


app = FastAPI(title="Storyline Engine", version="0.1.0", lifespan=app_lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.frontend_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(api_router, prefix=settings.api_v1_prefix)


@app.get("/", tags=["health"])
async def root() -> dict[str, str]:
    return {"message": "Storyline engine running"}


if settings.observability.prometheus_enabled:

    @app.get("/metrics", tags=["observability"])
    async def metrics() -> Response:
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
