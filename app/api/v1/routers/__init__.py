"""
API v1 router aggregator.

    from app.api.v1.routers import router
    app.include_router(router, prefix=settings.API_PREFIX)
"""

from app.api.v1.routers.password_reset import router

__all__ = ["router"]
