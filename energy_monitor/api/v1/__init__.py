"""
API Version 1 routes.

Includes series listing, vendor sync and daily aggregation admin.
"""
from fastapi import APIRouter

from ...config import get_settings
from .series import router as series_router
from .sync import router as sync_router
from .aggregation import router as aggregation_router

settings = get_settings()

# Main API router that includes all sub-routers
api_router = APIRouter(prefix=f"{settings.api_prefix}/{settings.api_version}")

api_router.include_router(series_router)
api_router.include_router(sync_router)
api_router.include_router(aggregation_router)

__all__ = [
    "api_router",
    "series_router",
    "sync_router",
    "aggregation_router",
]
