# ==============================================================================
# Analytics Service Layer
# ==============================================================================
"""
Ingestion and analytics computations on top of the storage port.
"""

from siteanalytics.service.analytics import AnalyticsService

__all__ = [
    "AnalyticsService",
]
