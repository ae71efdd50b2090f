"""
Core analytics module.

Contains the request and real-time counter models shared by the plugin
pipeline and the today/historical merger.
"""

from .models import (
    Granularity,
    QueryConfig,
    TodayData,
    coerce_today_data,
)

__all__ = [
    "Granularity", "QueryConfig", "TodayData",
    "coerce_today_data",
]
