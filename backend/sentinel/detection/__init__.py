"""Suspicious activity detection integration helpers exposed to the application."""

from sentinel.detection.api import router
from sentinel.detection.domain.container import configure, configure_postgres, get_services

__all__ = ["router", "configure", "configure_postgres", "get_services"]
