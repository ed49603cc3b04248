from fastapi import APIRouter

from app.millstock.core.config import settings
from app.millstock.routers import auth, ops, stock, transfers


def build_api_router() -> APIRouter:
    router = APIRouter()
    router.include_router(ops.router, tags=["ops"])
    router.include_router(auth.router, prefix="/millstock/auth", tags=["auth"])
    router.include_router(transfers.router, tags=["transfers"])
    router.include_router(stock.router, tags=["stock"])
    if settings.METRICS_ENABLED:
        router.include_router(ops.metrics_router, tags=["ops"])
    return router
