"""
Market Curator Service

Caches, scores and curates active Polymarket markets into named columns.
"""

from services.curator.cache import SnapshotCache
from services.curator.columns import ColumnClassifier
from services.curator.service import CuratorService
from services.curator.transformer import MarketTransformer

__all__ = ["ColumnClassifier", "CuratorService", "MarketTransformer", "SnapshotCache"]
