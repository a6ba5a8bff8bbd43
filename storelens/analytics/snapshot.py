"""
Analytics input snapshot
"""

from dataclasses import dataclass, field
from typing import Any, Sequence


@dataclass
class AnalyticsSnapshot:
    """Records of one tenant at a point in time"""
    products: Sequence[Any] = field(default_factory=list)
    customers: Sequence[Any] = field(default_factory=list)
    orders: Sequence[Any] = field(default_factory=list)
