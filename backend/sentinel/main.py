"""FastAPI application entrypoint."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from sentinel.api import ops
from sentinel.api.errors import install_error_handlers
from sentinel.detection import configure_postgres as configure_detection
from sentinel.detection import router as detection_router
from sentinel.infra import postgres
from sentinel.infra.redis import redis_client
from sentinel.obs import init as obs_init
from sentinel.settings import settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.postgres_enabled:
        pool = await postgres.init_pool()
        if settings.postgres_auto_migrate:
            applied = await postgres.apply_migrations(pool)
            logger.info("migrations_applied", extra={"scripts": applied})
        configure_detection(pool, redis_client)
    else:
        logger.warning("detection_in_memory", extra={"reason": "postgres_disabled"})
    try:
        yield
    finally:
        await postgres.close_pool()


app = FastAPI(title="Gallery Sentinel", lifespan=lifespan)
install_error_handlers(app)
obs_init(app)

allow_origins = list(getattr(settings, "cors_allow_origins", []))
if not allow_origins:
    allow_origins = ["http://localhost:5173"] if settings.is_dev() else []

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(ops.router)
app.include_router(detection_router)
