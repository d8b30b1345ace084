"""Per-request id, logging context and Prometheus timing."""

from __future__ import annotations

import time
import uuid

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from sentinel.obs import logging as obs_logging
from sentinel.obs import metrics

REQUEST_ID_HEADER = "X-Request-Id"

_log = obs_logging.get_logger("sentinel.http")


def _route_path(request: Request) -> str:
    # templated path (e.g. /api/admin/suspicious/{user_id}) once routing has matched
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


class ObservabilityMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        token = obs_logging.bind_context(
            request_id=request_id,
            route=_route_path(request),
            user_id=request.headers.get("X-User-Id"),
            client_ip=request.client.host if request.client else None,
        )
        started = time.perf_counter()
        status = 500
        try:
            response = await call_next(request)
            status = response.status_code
        except Exception:
            _log.exception("http_request_error", extra={"method": request.method, "path": request.url.path})
            raise
        finally:
            elapsed = time.perf_counter() - started
            metrics.observe_request(_route_path(request), request.method, status, elapsed)
            _log.info(
                "http_request",
                extra={"status": status, "method": request.method, "latency_ms": round(elapsed * 1000, 3)},
            )
            obs_logging.reset_context(token)

        response.headers.setdefault(REQUEST_ID_HEADER, request_id)
        return response


def install(app: FastAPI) -> None:
    app.add_middleware(ObservabilityMiddleware)
