"""Detection API routers."""

from fastapi import APIRouter

from . import admin_suspicious

router = APIRouter()
router.include_router(admin_suspicious.router)

__all__ = ["router"]
