"""API route modules."""

from .health import router as health_router
from .reconcile import router as reconcile_router

__all__ = ["health_router", "reconcile_router"]
