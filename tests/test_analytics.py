"""Tests for memory analytics."""

from datetime import datetime, timedelta, timezone

import pytest

from commerce_agent.database import ConversationMemoryRecord
from commerce_agent.memory import TenantScopedKey
from commerce_agent.memory.analytics import (
    build_conversation_summary,
    build_customer_profile,
    categorize_customer,
    format_duration,
    overall_sentiment,
)

BASE = datetime(2025, 3, 1, 10, 0, tzinfo=timezone.utc)


def _record(i: int, intent: str = None, sentiment: str = None, offset: timedelta = timedelta(0)) -> ConversationMemoryRecord:
    return ConversationMemoryRecord(
        id=f"r{i}",
        tenant_id="t1",
        conversation_id="c1",
        participant_id="p1",
        user_message=f"q{i}",
        ai_response=f"a{i}",
        intent=intent,
        sentiment=sentiment,
        timestamp=BASE + offset
    )


@pytest.mark.parametrize("total,expected", [
    (25, "frequent_customer"),
    (20, "frequent_customer"),
    (12, "regular_customer"),
    (5, "returning_customer"),
    (1, "new_customer"),
])
def test_categorize_customer(total: int, expected: str) -> None:
    assert categorize_customer(total) == expected


def test_customer_profile_from_newest_first_records() -> None:
    records = [
        _record(3, "order_inquiry", "positive", timedelta(days=2)),
        _record(2, "order_inquiry", "neutral", timedelta(days=1)),
        _record(1, "greeting", "positive"),
    ]

    profile = build_customer_profile("t1", "p1", records)

    assert profile.total_interactions == 3
    assert profile.most_common_intent == "order_inquiry"
    assert profile.dominant_sentiment == "positive"
    assert profile.first_seen == BASE
    assert profile.interaction_frequency == 1.5
    assert profile.customer_type == "new_customer"


def test_customer_profile_without_records() -> None:
    assert build_customer_profile("t1", "p1", []) is None


def test_overall_sentiment_band() -> None:
    assert overall_sentiment([_record(1, sentiment="positive"), _record(2, sentiment="neutral")]) == "positive"
    assert overall_sentiment([_record(1, sentiment="negative"), _record(2, sentiment="positive")]) == "neutral"
    assert overall_sentiment([]) == "neutral"


def test_format_duration() -> None:
    assert format_duration(BASE, BASE + timedelta(minutes=25)) == "25 دقيقة"
    assert format_duration(BASE, BASE + timedelta(minutes=135)) == "2 ساعة و 15 دقيقة"


def test_conversation_summary() -> None:
    records = [
        _record(1, "greeting", "neutral"),
        _record(2, "order_inquiry", "negative", timedelta(minutes=10)),
        _record(3, "order_inquiry", "positive", timedelta(minutes=20)),
    ]

    summary = build_conversation_summary("t1", "c1", "p1", records)

    assert summary.total_messages == 3
    assert summary.duration == "20 دقيقة"
    assert summary.main_topics[0].intent == "order_inquiry"
    assert summary.main_topics[0].count == 2
    assert summary.resolution_status == "resolved"


async def test_store_profile_and_summary(memory) -> None:
    key = TenantScopedKey("t1", "p1", "c1")
    await memory.append(key, "مرحبا", "أهلاً", intent="greeting", sentiment="positive")
    await memory.append(key, "عايز أطلب", "تمام", intent="order_inquiry", sentiment="neutral")

    profile = await memory.get_customer_profile("t1", "p1")
    summary = await memory.get_conversation_summary(key)

    assert profile.total_interactions == 2
    assert summary.total_messages == 2
    assert summary.resolution_status == "resolved"
    assert await memory.get_customer_profile("t2", "p1") is None
