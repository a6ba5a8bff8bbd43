"""
Analytics Module
"""
from .snapshot import AnalyticsSnapshot
from .aggregator import Analytics, AnalyticsOptions, compute_analytics

__all__ = [
    "AnalyticsSnapshot",
    "Analytics",
    "AnalyticsOptions",
    "compute_analytics",
]
