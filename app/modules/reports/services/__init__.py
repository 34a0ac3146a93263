"""
Services package for Reports module
"""

from .base import BaseReportService
from .revenue import RevenueReportService

__all__ = ["BaseReportService", "RevenueReportService"]
