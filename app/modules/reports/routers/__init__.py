"""
Routers package for Reports module
"""

from .revenue import router as revenue_router

__all__ = ["revenue_router"]
