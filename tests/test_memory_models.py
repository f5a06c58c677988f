"""Tests for memory turn models and legacy normalization."""

from datetime import datetime, timezone

from commerce_agent.database import ConversationMemoryRecord
from commerce_agent.memory import LegacyTurnPair, MemoryTurn, normalize_entries, truncate_content

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def test_truncate_content_includes_marker_in_ceiling() -> None:
    text = truncate_content("a" * 50, max_chars=20, marker="...")
    assert text == "a" * 17 + "..."
    assert len(text) == 20


def test_short_content_is_only_stripped() -> None:
    assert truncate_content("  hello  ", max_chars=20) == "hello"


def test_legacy_pair_splits_in_order() -> None:
    turns = LegacyTurnPair(id="r1", user_message="q", ai_response="a", timestamp=NOW).split()

    assert [(t.id, t.is_from_customer) for t in turns] == [("r1_user", True), ("r1_ai", False)]
    assert all(t.created_at == NOW for t in turns)


def test_normalize_mixed_entries() -> None:
    canonical = MemoryTurn(id="m1", content="hi", is_from_customer=True, created_at=NOW)
    record = ConversationMemoryRecord(
        id="r2", tenant_id="t1", participant_id="p1", user_message=None, ai_response="reply", timestamp=NOW
    )
    camel = {"id": "m3", "content": "camel", "isFromCustomer": False, "createdAt": NOW.isoformat()}

    turns, migrated = normalize_entries([canonical, record, camel, {"id": "bad"}, 42])

    assert [t.id for t in turns] == ["m1", "r2_ai", "m3"]
    assert migrated is True


def test_normalize_is_idempotent() -> None:
    turns, _ = normalize_entries([LegacyTurnPair(id="r1", user_message="q", ai_response="a", timestamp=NOW)])
    again, migrated = normalize_entries(turns)

    assert again == turns
    assert migrated is False


def test_naive_legacy_timestamp_is_read_as_utc() -> None:
    pair = LegacyTurnPair(id="r1", user_message="q", ai_response="a", timestamp=datetime(2025, 3, 1, 12, 0))

    turns = pair.split()

    assert all(turn.created_at == NOW for turn in turns)
