"""API routes."""

from fastapi import APIRouter

from castsales.api.routes import cast_stats, promotions

api_router = APIRouter()

api_router.include_router(cast_stats.router, prefix="/cast-stats", tags=["cast-stats"])
api_router.include_router(promotions.router, prefix="/promotions", tags=["promotions"])
