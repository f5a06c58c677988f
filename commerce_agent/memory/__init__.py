"""
Two-tier conversation memory for the commerce agent core.
"""

from .keys import TenantScopedKey
from .models import (
    MemoryTurn,
    LegacyTurnPair,
    SweepReport,
    IsolationReport,
    RepairReport,
    normalize_entries,
    truncate_content,
)
from .cache import KeyValueCache, InMemoryCache, CachedHistory
from .store import MemoryStore

__all__ = [
    "TenantScopedKey",
    "MemoryTurn",
    "LegacyTurnPair",
    "SweepReport",
    "IsolationReport",
    "RepairReport",
    "normalize_entries",
    "truncate_content",
    "KeyValueCache",
    "InMemoryCache",
    "CachedHistory",
    "MemoryStore",
]
