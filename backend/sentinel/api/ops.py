"""Operational endpoints: liveness, readiness and Prometheus scrape."""

from __future__ import annotations

import asyncio
import logging
from time import perf_counter
from typing import Any, Dict

from fastapi import APIRouter, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from sentinel.infra import postgres
from sentinel.infra.redis import redis_client
from sentinel.settings import settings

LOGGER = logging.getLogger(__name__)

router = APIRouter(tags=["ops"])


async def _redis_status(timeout: float = 0.2) -> Dict[str, Any]:
    start = perf_counter()
    try:
        await asyncio.wait_for(redis_client.ping(), timeout=timeout)
    except Exception as exc:  # pragma: no cover - depends on runtime
        LOGGER.warning("Redis readiness check failed", exc_info=True)
        return {"ok": False, "error": type(exc).__name__}
    return {"ok": True, "latency_ms": round((perf_counter() - start) * 1000, 2)}


async def _postgres_status(timeout: float = 0.3) -> Dict[str, Any]:
    if not settings.postgres_enabled:
        return {"ok": True, "mode": "memory"}
    start = perf_counter()
    try:
        await postgres.ping(timeout)
    except Exception as exc:  # pragma: no cover - depends on runtime
        LOGGER.warning("Postgres readiness query failed", exc_info=True)
        return {"ok": False, "error": type(exc).__name__}
    return {"ok": True, "latency_ms": round((perf_counter() - start) * 1000, 2)}


@router.get("/health/live")
async def live() -> Dict[str, str]:
    return {"status": "ok", "service": settings.service_name}


@router.get("/health/ready")
async def ready() -> JSONResponse:
    checks = {"postgres": await _postgres_status(), "redis": await _redis_status()}
    ok = all(item["ok"] for item in checks.values())
    return JSONResponse(status_code=200 if ok else 503, content={"status": "ok" if ok else "degraded", "checks": checks})


@router.get("/metrics")
async def metrics() -> Response:
    payload = generate_latest()
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)
