"""API routers for all endpoints."""

from feedback_analytics.routers import analytics, reports

__all__ = ["analytics", "reports"]
