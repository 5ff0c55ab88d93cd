"""
Services package for Reports module
"""

from .reconciliation import ReconciliationService, summarize
from .analytics import AnalyticsReportService

__all__ = [
    "ReconciliationService",
    "AnalyticsReportService",
    "summarize",
]
