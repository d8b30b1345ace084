"""Structured logging and request instrumentation."""

from __future__ import annotations

from fastapi import FastAPI

from sentinel.obs import logging as obs_logging
from sentinel.obs import middleware
from sentinel.settings import settings

_instrumented: set[int] = set()


def init(app: FastAPI) -> None:
    """Configure JSON logging and instrument ``app``; repeated calls are no-ops."""
    if not settings.obs_enabled or id(app) in _instrumented:
        return
    obs_logging.configure_logging()
    middleware.install(app)
    _instrumented.add(id(app))


__all__ = ["init"]
