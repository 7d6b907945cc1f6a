"""
API routers module.

This module contains all API route definitions organized by domain.
"""
from api.routers.health import router as health_router
from api.routers.records import router as records_router
from api.routers.medications import router as medications_router
from api.routers.assistant import router as assistant_router
from api.routers.backups import router as backups_router
from api.routers.stats import router as stats_router
from api.routers.meta import router as meta_router

__all__ = [
    "health_router",
    "records_router",
    "medications_router",
    "assistant_router",
    "backups_router",
    "stats_router",
    "meta_router",
]
