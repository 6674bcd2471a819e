"""Dashboard: chat management, token usage and subscriptions."""

from .service import DashboardService

__all__ = ["DashboardService"]
