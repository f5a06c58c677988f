"""
Schema migrations for the commerce agent core.

AI Assistant Notes:
- Migrations are an ordered, append-only list; never edit an applied one,
  add a new version instead
- Applied versions are recorded in schema_migrations, so run_migrations()
  is safe to call on every start
- conversation_memory.tenant_id is nullable on purpose: historical rows may
  lack it and the isolation audit must be able to find them
"""

from typing import List, NamedTuple
import logging

from .connection import DatabaseConnection

logger = logging.getLogger(__name__)


class Migration(NamedTuple):
    version: int
    name: str
    sql: str


MIGRATIONS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    version INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    executed_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
"""

CORE_TABLES_SQL = """
-- Tier-2 memory: one row per user/agent exchange
CREATE TABLE IF NOT EXISTS conversation_memory (
    id TEXT PRIMARY KEY,
    tenant_id TEXT,
    conversation_id TEXT,
    participant_id TEXT NOT NULL,
    user_message TEXT,
    ai_response TEXT,
    intent TEXT,
    sentiment TEXT,
    metadata TEXT,
    timestamp TIMESTAMP NOT NULL
);

CREATE TABLE IF NOT EXISTS orders (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    order_number TEXT UNIQUE NOT NULL,
    tenant_id TEXT NOT NULL,
    customer_id TEXT,
    customer_name TEXT NOT NULL,
    customer_phone TEXT NOT NULL,
    customer_address TEXT NOT NULL,
    city TEXT NOT NULL,
    product_name TEXT NOT NULL,
    product_color TEXT,
    product_size TEXT,
    quantity INTEGER NOT NULL DEFAULT 1 CHECK (quantity >= 1),
    order_status TEXT DEFAULT 'pending',
    extraction_method TEXT,
    notes TEXT,
    created_at TIMESTAMP NOT NULL,
    updated_at TIMESTAMP
);

CREATE TABLE IF NOT EXISTS shipping_zones (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    tenant_id TEXT NOT NULL,
    governorate TEXT NOT NULL,
    delivery_time TEXT NOT NULL,
    price REAL,
    is_active BOOLEAN DEFAULT 1,
    UNIQUE (tenant_id, governorate)
);
"""

LOOKUP_INDEXES_SQL = """
-- Memory reads and wipes are always tenant + participant scoped
CREATE INDEX IF NOT EXISTS idx_memory_scope
    ON conversation_memory(tenant_id, participant_id, timestamp);
CREATE INDEX IF NOT EXISTS idx_memory_conversation
    ON conversation_memory(tenant_id, conversation_id, participant_id);
-- Retention sweep
CREATE INDEX IF NOT EXISTS idx_memory_timestamp ON conversation_memory(timestamp);

-- Duplicate-order guard
CREATE INDEX IF NOT EXISTS idx_orders_tenant_phone
    ON orders(tenant_id, customer_phone, created_at);
"""

ORDER_TRIGGERS_SQL = """
CREATE TRIGGER IF NOT EXISTS touch_orders_updated_at
AFTER UPDATE ON orders
FOR EACH ROW
WHEN NEW.updated_at IS OLD.updated_at
BEGIN
    UPDATE orders SET updated_at = CURRENT_TIMESTAMP WHERE id = NEW.id;
END;
"""

MIGRATIONS = (
    Migration(1, "core_tables", CORE_TABLES_SQL),
    Migration(2, "lookup_indexes", LOOKUP_INDEXES_SQL),
    Migration(3, "order_triggers", ORDER_TRIGGERS_SQL),
)


class DatabaseMigrations:
    """Applies pending entries of MIGRATIONS in version order."""

    def __init__(self, db_connection: DatabaseConnection):
        self.db = db_connection

    def applied_versions(self) -> List[int]:
        self.db.execute_script(MIGRATIONS_TABLE_SQL)
        rows = self.db.execute_query("SELECT version FROM schema_migrations ORDER BY version")
        return [row["version"] for row in rows]

    def get_pending_migrations(self) -> List[Migration]:
        applied = set(self.applied_versions())
        return [migration for migration in MIGRATIONS if migration.version not in applied]

    def run_migrations(self) -> int:
        """
        Apply every pending migration.

        Returns:
            Number of migrations applied
        """
        pending = self.get_pending_migrations()
        if not pending:
            logger.info("Database schema is up to date")
            return 0

        for migration in pending:
            try:
                self.db.execute_script(migration.sql)
                self.db.execute_insert(
                    "INSERT INTO schema_migrations (version, name) VALUES (?, ?)",
                    (migration.version, migration.name)
                )
            except Exception as e:
                logger.error(f"Migration {migration.version} ({migration.name}) failed: {e}")
                raise
            logger.info(f"Applied migration {migration.version}: {migration.name}")

        return len(pending)
