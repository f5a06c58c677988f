"""Shared test fixtures."""

import json
from typing import Any, Dict, Optional
from unittest.mock import AsyncMock

import pytest

from commerce_agent.database import (
    ConversationMemoryRepository,
    DatabaseConnection,
    DatabaseMigrations,
    OrderRepository,
    ShippingZoneRepository,
)
from commerce_agent.llm import LanguageModelReply
from commerce_agent.memory import InMemoryCache, MemoryStore, TenantScopedKey
from commerce_agent.orders import OrderDraft, OrderExtractionEngine, OrderItem


@pytest.fixture
def db(tmp_path):
    """Migrated SQLite database in a temporary directory."""
    connection = DatabaseConnection(str(tmp_path / "agent_core.db"))
    DatabaseMigrations(connection).run_migrations()
    yield connection
    connection.close_all_connections()


@pytest.fixture
def memory_repository(db) -> ConversationMemoryRepository:
    return ConversationMemoryRepository(db)


@pytest.fixture
def order_repository(db) -> OrderRepository:
    return OrderRepository(db)


@pytest.fixture
def shipping_repository(db) -> ShippingZoneRepository:
    return ShippingZoneRepository(db)


@pytest.fixture
def cache() -> InMemoryCache:
    return InMemoryCache()


@pytest.fixture
def memory(memory_repository, cache) -> MemoryStore:
    return MemoryStore(memory_repository, cache=cache, retention_days=30, max_cached_turns=20)


@pytest.fixture
def key() -> TenantScopedKey:
    return TenantScopedKey("shoe_store", "cust_1", "conv_1")


@pytest.fixture
def complete_draft() -> OrderDraft:
    return OrderDraft(
        customer_name="أحمد محمد",
        customer_phone="01012345678",
        customer_address="شارع التحرير عمارة 5",
        city="القاهرة",
        items=[OrderItem(product="حذاء رياضي", size="42", color="أسود")]
    )


def model_reply(
    status: str,
    order: Optional[Dict[str, Any]] = None,
    response: str = "تمام",
    missing: Optional[list] = None
) -> LanguageModelReply:
    """Build a language-model reply carrying the extraction JSON."""
    payload = {
        "order": order,
        "missingFields": missing or [],
        "status": status,
        "response": response,
    }
    return LanguageModelReply(content=f"```json\n{json.dumps(payload, ensure_ascii=False)}\n```")


@pytest.fixture
def complete_order_json() -> Dict[str, Any]:
    return {
        "customerName": "أحمد محمد",
        "customerPhone": "01012345678",
        "customerAddress": "شارع التحرير عمارة 5",
        "city": "القاهرة",
        "items": [{"product": "حذاء رياضي", "size": "42", "color": "أسود", "quantity": 1}],
    }


@pytest.fixture
def reply():
    """Factory for model replies."""
    return model_reply


@pytest.fixture
def llm() -> AsyncMock:
    """Language-model collaborator returning a collecting_data reply by default."""
    client = AsyncMock()
    client.generate.return_value = model_reply("collecting_data", response="ممكن الاسم؟")
    return client


@pytest.fixture
def engine(memory, llm, order_repository, shipping_repository) -> OrderExtractionEngine:
    return OrderExtractionEngine(
        memory=memory,
        llm_client=llm,
        order_repository=order_repository,
        shipping_lookup=shipping_repository
    )
