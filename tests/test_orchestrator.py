"""Tests for the conversation orchestrator."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from commerce_agent.errors import PersistenceFailure
from commerce_agent.memory import TenantScopedKey
from commerce_agent.orchestrator import ConversationOrchestrator, MessageDeduplicator
from commerce_agent.orchestrator.orchestrator import CANCELLED_REPLY
from commerce_agent.orders import ExtractionResult, ExtractionStatus


@pytest.fixture
def orchestrator(memory, engine) -> ConversationOrchestrator:
    return ConversationOrchestrator(memory, engine)


# -- dedup --------------------------------------------------------------------


class TestMessageDeduplicator:
    def test_same_message_inside_window_is_duplicate(self, key) -> None:
        dedup = MessageDeduplicator(window_seconds=30)
        assert not dedup.is_duplicate(key, "hello", now=100.0)
        assert dedup.is_duplicate(key, " hello ", now=110.0)

    def test_window_expiry(self, key) -> None:
        dedup = MessageDeduplicator(window_seconds=30)
        dedup.is_duplicate(key, "hello", now=100.0)
        assert not dedup.is_duplicate(key, "hello", now=131.0)

    def test_other_conversation_is_not_duplicate(self, key) -> None:
        dedup = MessageDeduplicator(window_seconds=30)
        other = TenantScopedKey(key.tenant_id, key.participant_id, "conv_2")
        dedup.is_duplicate(key, "hello", now=100.0)
        assert not dedup.is_duplicate(other, "hello", now=101.0)

    def test_forgotten_message_is_accepted_again(self, key) -> None:
        dedup = MessageDeduplicator(window_seconds=30)
        dedup.is_duplicate(key, "hello", now=100.0)
        dedup.forget(key, " hello")
        assert not dedup.is_duplicate(key, "hello", now=101.0)


# -- handle_message -----------------------------------------------------------


async def test_turn_is_recorded_after_reply(orchestrator, memory, key) -> None:
    response = await orchestrator.handle_message(key, "مرحبا")

    assert response.status == "collecting_data"
    turns = await memory.get_recent(key, 10)
    assert [t.content for t in turns] == ["مرحبا", "ممكن الاسم؟"]
    assert turns[0].intent == "collecting_data"


async def test_duplicate_message_is_skipped(orchestrator, llm, key) -> None:
    await orchestrator.handle_message(key, "مرحبا")
    second = await orchestrator.handle_message(key, "مرحبا")

    assert second.duplicate is True
    assert llm.generate.await_count == 1


async def test_retry_after_model_failure_is_processed(orchestrator, llm, key) -> None:
    llm.generate.side_effect = RuntimeError("upstream 500")
    failed = await orchestrator.handle_message(key, "عايز حذاء")
    assert failed.status == "error"

    llm.generate.side_effect = None
    retried = await orchestrator.handle_message(key, "عايز حذاء")

    assert retried.duplicate is False
    assert retried.answer == "ممكن الاسم؟"
    assert llm.generate.await_count == 2


async def test_retry_after_engine_exception_is_processed(memory, key) -> None:
    engine = MagicMock()
    engine.process = AsyncMock(side_effect=[
        RuntimeError("boom"),
        ExtractionResult(status=ExtractionStatus.COLLECTING_DATA, response="ok"),
    ])
    orchestrator = ConversationOrchestrator(memory, engine)

    with pytest.raises(RuntimeError):
        await orchestrator.handle_message(key, "مرحبا")
    retried = await orchestrator.handle_message(key, "مرحبا")

    assert retried.answer == "ok"


async def test_confirmed_order_number_is_surfaced(orchestrator, llm, reply, complete_order_json, key) -> None:
    llm.generate.return_value = reply("confirmed", complete_order_json)

    response = await orchestrator.handle_message(key, "yes, confirm")

    assert response.order_number
    assert response.metadata["order_created"] is True


async def test_memory_failure_still_returns_reply(orchestrator, memory, key, monkeypatch) -> None:
    monkeypatch.setattr(memory, "append", AsyncMock(side_effect=PersistenceFailure("disk full")))

    response = await orchestrator.handle_message(key, "مرحبا")

    assert response.answer == "ممكن الاسم؟"


async def test_cancelled_request_persists_inbound_message(memory, key) -> None:
    started = asyncio.Event()

    async def slow_process(*args, **kwargs) -> ExtractionResult:
        started.set()
        await asyncio.sleep(5)
        return ExtractionResult(status=ExtractionStatus.COLLECTING_DATA, response="late")

    engine = MagicMock()
    engine.process = slow_process
    orchestrator = ConversationOrchestrator(memory, engine)

    task = asyncio.create_task(orchestrator.handle_message(key, "عايز أطلب"))
    await started.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    turns = await memory.get_recent(key, 10)
    assert [t.content for t in turns] == ["عايز أطلب", CANCELLED_REPLY]
    assert not orchestrator.deduplicator.is_duplicate(key, "عايز أطلب")
