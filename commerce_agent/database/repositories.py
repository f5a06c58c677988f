"""
Repository pattern implementation for database operations.

AI Assistant Notes:
- Clean separation of data access logic
- Every conversation-memory query is tenant scoped; the only unscoped
  statements are the global sweep and the isolation audit/repair helpers
- Repositories are synchronous; async callers dispatch them with asyncio.to_thread
- Timestamps are stored as ISO-8601 UTC strings with microseconds so that
  lexicographic comparison in SQL matches chronological order
"""

from __future__ import annotations

from commerce_agent.utils import observe
from typing import List, Optional, Dict, Any, TYPE_CHECKING
import logging
import json
import uuid
from datetime import datetime, timezone

from commerce_agent.config import settings
from .connection import DatabaseConnection
from .models import ConversationMemoryRecord, OrderRecord, OrderStatus, ShippingZone

if TYPE_CHECKING:
    from commerce_agent.orders.models import OrderDraft

logger = logging.getLogger(__name__)

UNSPECIFIED = "غير محدد"


def to_db_timestamp(value: datetime) -> str:
    """Serialize a datetime as a sortable UTC ISO string."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


class BaseRepository:
    """Base repository with common functionality."""

    def __init__(self, db: DatabaseConnection, table_name: str):
        """
        Initialize base repository.

        Args:
            db: Database connection instance
            table_name: Name of the database table
        """
        self.db = db
        self.table_name = table_name

    def _row_to_model(self, row: Dict[str, Any]) -> Dict[str, Any]:
        """Convert database row to model-compatible dictionary."""
        for key, value in row.items():
            if isinstance(value, str) and (key.endswith('_at') or key == 'timestamp'):
                try:
                    row[key] = datetime.fromisoformat(value)
                except ValueError:
                    pass  # Keep original value if not a valid datetime

        if row.get('metadata') and isinstance(row['metadata'], str):
            try:
                row['metadata'] = json.loads(row['metadata'])
            except json.JSONDecodeError as e:
                logger.warning(f"Failed to parse metadata JSON for row {row.get('id')}: {e}")
                row['metadata'] = None

        return row


class ConversationMemoryRepository(BaseRepository):
    """Repository for durable (tier-2) conversation memory."""

    def __init__(self, db: DatabaseConnection):
        super().__init__(db, "conversation_memory")

    @observe(name="database_memory_insert")
    def insert_durable(
        self,
        tenant_id: str,
        conversation_id: Optional[str],
        participant_id: str,
        user_text: Optional[str],
        agent_text: Optional[str],
        intent: Optional[str],
        sentiment: Optional[str],
        timestamp: datetime
    ) -> str:
        """
        Insert one exchange as a single durable record.

        Args:
            tenant_id: Owning tenant (required)
            conversation_id: Optional conversation identifier
            participant_id: End customer identifier
            user_text: Customer text, may be empty
            agent_text: Agent text, may be empty
            intent: Detected intent
            sentiment: Detected sentiment
            timestamp: Exchange timestamp

        Returns:
            Identifier of the new record
        """
        record_id = uuid.uuid4().hex
        metadata = {
            'message_length': len(user_text or ''),
            'response_length': len(agent_text or ''),
        }
        query = """
        INSERT INTO conversation_memory (
            id, tenant_id, conversation_id, participant_id, user_message,
            ai_response, intent, sentiment, metadata, timestamp
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """
        params = (
            record_id,
            tenant_id,
            conversation_id,
            participant_id,
            user_text,
            agent_text,
            intent,
            sentiment,
            json.dumps(metadata),
            to_db_timestamp(timestamp)
        )
        self.db.execute_insert(query, params)
        return record_id

    @observe(name="database_memory_recent")
    def find_recent_durable(
        self,
        tenant_id: str,
        participant_id: str,
        conversation_id: Optional[str],
        since: datetime,
        limit: int
    ) -> List[ConversationMemoryRecord]:
        """
        Get the newest records for a participant within a tenant.

        The conversation filter is applied only when conversation_id is set,
        otherwise the participant's history across conversations is returned.

        Returns:
            Records ordered newest-first
        """
        query = """
        SELECT * FROM conversation_memory
        WHERE tenant_id = ? AND participant_id = ? AND timestamp >= ?
        """
        params: list = [tenant_id, participant_id, to_db_timestamp(since)]

        if conversation_id:
            query += " AND conversation_id = ?"
            params.append(conversation_id)

        query += " ORDER BY timestamp DESC LIMIT ?"
        params.append(limit)

        rows = self.db.execute_query(query, tuple(params))
        return [ConversationMemoryRecord(**self._row_to_model(row)) for row in rows]

    def delete_durable_older_than(self, tenant_id: Optional[str], cutoff: datetime) -> int:
        """
        Delete records older than the cutoff.

        Args:
            tenant_id: Restrict to one tenant, or None for a global sweep
            cutoff: Records strictly older than this are deleted

        Returns:
            Number of deleted records
        """
        query = "DELETE FROM conversation_memory WHERE timestamp < ?"
        params: list = [to_db_timestamp(cutoff)]

        if tenant_id:
            query += " AND tenant_id = ?"
            params.append(tenant_id)

        deleted_count = self.db.execute_update(query, tuple(params))
        scope = f"tenant {tenant_id}" if tenant_id else "all tenants"
        logger.info(f"Deleted {deleted_count} old memory records for {scope}")
        return deleted_count

    def delete_durable_for_participant(self, tenant_id: str, participant_id: str) -> int:
        """Delete every record of one participant inside one tenant."""
        query = "DELETE FROM conversation_memory WHERE tenant_id = ? AND participant_id = ?"
        return self.db.execute_update(query, (tenant_id, participant_id))

    def find_for_participant(self, tenant_id: str, participant_id: str, limit: int = 50) -> List[ConversationMemoryRecord]:
        """Newest-first records of one participant, regardless of age."""
        query = """
        SELECT * FROM conversation_memory
        WHERE tenant_id = ? AND participant_id = ?
        ORDER BY timestamp DESC LIMIT ?
        """
        rows = self.db.execute_query(query, (tenant_id, participant_id, limit))
        return [ConversationMemoryRecord(**self._row_to_model(row)) for row in rows]

    def find_for_conversation(
        self,
        tenant_id: str,
        conversation_id: str,
        participant_id: str
    ) -> List[ConversationMemoryRecord]:
        """Oldest-first records of one conversation."""
        query = """
        SELECT * FROM conversation_memory
        WHERE tenant_id = ? AND conversation_id = ? AND participant_id = ?
        ORDER BY timestamp ASC
        """
        rows = self.db.execute_query(query, (tenant_id, conversation_id, participant_id))
        return [ConversationMemoryRecord(**self._row_to_model(row)) for row in rows]

    def search(
        self,
        tenant_id: str,
        participant_id: str,
        conversation_id: Optional[str],
        term: str,
        limit: int = 5
    ) -> List[ConversationMemoryRecord]:
        """Newest-first records whose user or agent text contains the term."""
        query = """
        SELECT * FROM conversation_memory
        WHERE tenant_id = ? AND participant_id = ?
        AND (user_message LIKE ? OR ai_response LIKE ?)
        """
        pattern = f"%{term}%"
        params: list = [tenant_id, participant_id, pattern, pattern]

        if conversation_id:
            query += " AND conversation_id = ?"
            params.append(conversation_id)

        query += " ORDER BY timestamp DESC LIMIT ?"
        params.append(limit)

        rows = self.db.execute_query(query, tuple(params))
        return [ConversationMemoryRecord(**self._row_to_model(row)) for row in rows]

    def count(self, tenant_id: Optional[str] = None) -> int:
        """Count records, optionally for one tenant."""
        if tenant_id:
            rows = self.db.execute_query(
                "SELECT COUNT(*) AS total FROM conversation_memory WHERE tenant_id = ?",
                (tenant_id,)
            )
        else:
            rows = self.db.execute_query("SELECT COUNT(*) AS total FROM conversation_memory")
        return rows[0]['total'] if rows else 0

    def count_participants(self, tenant_id: Optional[str] = None) -> int:
        """Count distinct participants with memory, optionally for one tenant."""
        query = "SELECT COUNT(DISTINCT participant_id) AS total FROM conversation_memory"
        params: tuple = ()
        if tenant_id:
            query += " WHERE tenant_id = ?"
            params = (tenant_id,)
        rows = self.db.execute_query(query, params)
        return rows[0]['total'] if rows else 0

    def count_orphaned(self) -> int:
        """Count records with a null or empty tenant."""
        rows = self.db.execute_query(
            "SELECT COUNT(*) AS total FROM conversation_memory WHERE tenant_id IS NULL OR tenant_id = ''"
        )
        return rows[0]['total'] if rows else 0

    def reassign_orphaned(self, default_tenant_id: str) -> int:
        """Assign every orphaned record to the given tenant."""
        query = """
        UPDATE conversation_memory SET tenant_id = ?
        WHERE tenant_id IS NULL OR tenant_id = ''
        """
        updated = self.db.execute_update(query, (default_tenant_id,))
        logger.warning(f"Reassigned {updated} orphaned memory records to tenant {default_tenant_id}")
        return updated


class OrderRepository(BaseRepository):
    """Repository for orders created from conversations."""

    def __init__(self, db: DatabaseConnection):
        super().__init__(db, "orders")

    @staticmethod
    def generate_order_number() -> str:
        """Generate a unique order number."""
        timestamp = datetime.now().strftime("%y%m%d%H%M%S")
        return f"{settings.order_number_prefix}-{timestamp[-6:]}-{uuid.uuid4().hex[:4].upper()}"

    @observe(name="database_order_creation")
    def create_order(
        self,
        draft: OrderDraft,
        tenant_id: str,
        customer_id: Optional[str] = None,
        notes: Optional[str] = None
    ) -> OrderRecord:
        """
        Create an order from a resolved draft.

        Args:
            draft: Draft with every required field resolved
            tenant_id: Owning tenant
            customer_id: Optional customer identifier
            notes: Optional free-form notes

        Returns:
            The persisted order record
        """
        item = draft.primary_item
        record = OrderRecord(
            order_number=self.generate_order_number(),
            tenant_id=tenant_id,
            customer_id=customer_id,
            customer_name=draft.customer_name,
            customer_phone=draft.customer_phone,
            customer_address=draft.customer_address,
            city=draft.city,
            product_name=item.product if item else None,
            product_color=(item.color if item and item.color else UNSPECIFIED),
            product_size=(item.size if item and item.size else UNSPECIFIED),
            quantity=item.quantity if item else 1,
            order_status=OrderStatus.PENDING,
            extraction_method="single_pass_ai",
            notes=notes,
            created_at=datetime.now(timezone.utc)
        )

        query = """
        INSERT INTO orders (
            order_number, tenant_id, customer_id, customer_name, customer_phone,
            customer_address, city, product_name, product_color, product_size,
            quantity, order_status, extraction_method, notes, created_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """
        params = (
            record.order_number,
            record.tenant_id,
            record.customer_id,
            record.customer_name,
            record.customer_phone,
            record.customer_address,
            record.city,
            record.product_name,
            record.product_color,
            record.product_size,
            record.quantity,
            record.order_status,
            record.extraction_method,
            record.notes,
            to_db_timestamp(record.created_at)
        )

        record.id = self.db.execute_insert(query, params)
        logger.info(f"Created order {record.order_number} with ID {record.id} for tenant {tenant_id}")
        return record

    def get_by_number(self, order_number: str, tenant_id: str) -> Optional[OrderRecord]:
        """Get an order by number within a tenant."""
        query = "SELECT * FROM orders WHERE order_number = ? AND tenant_id = ?"
        rows = self.db.execute_query(query, (order_number, tenant_id))

        if not rows:
            return None

        row = self._row_to_model(rows[0])
        row.pop('updated_at', None)
        return OrderRecord(**row)

    def find_recent_duplicate(
        self,
        tenant_id: str,
        customer_phone: str,
        product_name: str,
        since: datetime
    ) -> Optional[OrderRecord]:
        """
        Find an order for the same phone and product created after `since`.

        Used to avoid placing the same order twice when a confirmation is
        delivered more than once.
        """
        query = """
        SELECT * FROM orders
        WHERE tenant_id = ? AND customer_phone = ? AND product_name = ? AND created_at >= ?
        ORDER BY created_at DESC LIMIT 1
        """
        rows = self.db.execute_query(
            query, (tenant_id, customer_phone, product_name, to_db_timestamp(since))
        )

        if not rows:
            return None

        row = self._row_to_model(rows[0])
        row.pop('updated_at', None)
        return OrderRecord(**row)


class ShippingZoneRepository(BaseRepository):
    """Repository for per-tenant delivery estimates."""

    def __init__(self, db: DatabaseConnection):
        super().__init__(db, "shipping_zones")

    def upsert_zone(self, zone: ShippingZone) -> int:
        """Create or replace the estimate for a governorate."""
        query = """
        INSERT INTO shipping_zones (tenant_id, governorate, delivery_time, price, is_active)
        VALUES (?, ?, ?, ?, ?)
        ON CONFLICT(tenant_id, governorate) DO UPDATE SET
            delivery_time = excluded.delivery_time,
            price = excluded.price,
            is_active = excluded.is_active
        """
        params = (zone.tenant_id, zone.governorate, zone.delivery_time, zone.price, zone.is_active)
        return self.db.execute_insert(query, params)

    def estimate_delivery_time(self, city: str, tenant_id: str) -> Optional[str]:
        """
        Look up the delivery estimate for a city.

        Exact governorate match wins; otherwise a zone whose governorate is
        contained in the city text (or vice versa) is used.

        Returns:
            Delivery time text, or None when no active zone matches
        """
        if not city or not tenant_id:
            return None

        rows = self.db.execute_query(
            "SELECT governorate, delivery_time FROM shipping_zones WHERE tenant_id = ? AND is_active = 1",
            (tenant_id,)
        )
        city = city.strip()
        for row in rows:
            if row['governorate'] == city:
                return row['delivery_time']
        for row in rows:
            if row['governorate'] in city or city in row['governorate']:
                return row['delivery_time']
        return None
