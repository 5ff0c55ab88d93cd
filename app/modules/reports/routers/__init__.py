"""
Routers package for Reports module
"""

from .reconciliation import router as reconciliation_router
from .analytics import router as analytics_router

__all__ = [
    "reconciliation_router",
    "analytics_router",
]
