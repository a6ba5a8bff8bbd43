"""
Dashboard Services Module
"""
from .dashboard import DashboardService, Page, check_status_transition

__all__ = [
    "DashboardService",
    "Page",
    "check_status_transition",
]
