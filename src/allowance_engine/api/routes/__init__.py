"""API routes."""

from allowance_engine.api.routes.allowances import router as allowances_router
from allowance_engine.api.routes.health import router as health_router

__all__ = ["allowances_router", "health_router"]
