"""
Database package for the commerce agent core.

This package provides SQLite persistence for the durable memory tier, orders
created from conversations and per-tenant shipping zones.

AI Assistant Notes:
- Plain sqlite3 with thread-local connections
- Migration system for schema versioning
- Repository pattern for clean data access
"""

from .connection import DatabaseConnection
from .models import ConversationMemoryRecord, OrderRecord, OrderStatus, ShippingZone
from .repositories import ConversationMemoryRepository, OrderRepository, ShippingZoneRepository
from .migrations import DatabaseMigrations

__all__ = [
    "DatabaseConnection",
    "ConversationMemoryRecord",
    "OrderRecord",
    "OrderStatus",
    "ShippingZone",
    "ConversationMemoryRepository",
    "OrderRepository",
    "ShippingZoneRepository",
    "DatabaseMigrations",
]
