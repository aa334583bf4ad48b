"""
Edgeboard Shared Modules

This package contains configuration, models and upstream clients used by the services.
"""

from shared.config import Settings, get_settings
from shared.models import (
    Category,
    ColumnName,
    MarketColumns,
    MarketStats,
    NewsLag,
    NormalizedMarket,
    Snapshot,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Models
    "Category",
    "ColumnName",
    "MarketColumns",
    "MarketStats",
    "NewsLag",
    "NormalizedMarket",
    "Snapshot",
]
