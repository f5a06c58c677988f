"""
Conversation memory data models.

AI Assistant Notes:
- MemoryTurn is the only shape that leaves the storage boundary
- Historical data stored one user/agent exchange per record (LegacyTurnPair);
  normalize_entries() is the single place that tells the two shapes apart
- Content is truncated to the configured ceiling before it is cached or prompted
"""

from pydantic import BaseModel, ConfigDict, Field, AliasChoices, ValidationError as PydanticValidationError
from typing import Any, Iterable, List, Optional, Tuple, Union
from datetime import datetime
import logging

from commerce_agent.config import settings
from commerce_agent.database.models import ConversationMemoryRecord, as_utc

logger = logging.getLogger(__name__)


def truncate_content(text: Optional[str], max_chars: Optional[int] = None, marker: Optional[str] = None) -> str:
    """
    Strip and cap text at max_chars, marker included.

    Args:
        text: Raw content
        max_chars: Hard ceiling, defaults to settings.max_message_chars
        marker: Visible truncation marker, defaults to settings.truncation_marker

    Returns:
        Text no longer than max_chars
    """
    max_chars = max_chars or settings.max_message_chars
    marker = settings.truncation_marker if marker is None else marker
    text = (text or "").strip()
    if len(text) <= max_chars:
        return text
    return text[:max(max_chars - len(marker), 0)] + marker[:max_chars]


class MemoryTurn(BaseModel):
    """One message of a conversation, from the customer or from the agent."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    content: str
    is_from_customer: bool = Field(validation_alias=AliasChoices("is_from_customer", "isFromCustomer"))
    created_at: datetime = Field(validation_alias=AliasChoices("created_at", "createdAt"))
    intent: Optional[str] = None
    sentiment: Optional[str] = None

    def truncated(self) -> "MemoryTurn":
        """Return a copy whose content respects the truncation ceiling."""
        content = truncate_content(self.content)
        if content == self.content:
            return self
        return self.model_copy(update={"content": content})


class LegacyTurnPair(BaseModel):
    """Historical exchange shape: one record holding both sides."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    user_message: Optional[str] = Field(None, validation_alias=AliasChoices("user_message", "userMessage"))
    ai_response: Optional[str] = Field(None, validation_alias=AliasChoices("ai_response", "aiResponse"))
    timestamp: datetime
    intent: Optional[str] = None
    sentiment: Optional[str] = None

    def split(self) -> List[MemoryTurn]:
        """Split into up to two turns, user side first, skipping empty sides."""
        created_at = as_utc(self.timestamp)
        turns = []
        if self.user_message and self.user_message.strip():
            turns.append(MemoryTurn(
                id=f"{self.id}_user",
                content=truncate_content(self.user_message),
                is_from_customer=True,
                created_at=created_at,
                intent=self.intent,
                sentiment=self.sentiment
            ))
        if self.ai_response and self.ai_response.strip():
            turns.append(MemoryTurn(
                id=f"{self.id}_ai",
                content=truncate_content(self.ai_response),
                is_from_customer=False,
                created_at=created_at,
                intent=self.intent,
                sentiment=self.sentiment
            ))
        return turns


StoredEntry = Union[MemoryTurn, LegacyTurnPair, ConversationMemoryRecord, dict]


def coerce_entry(entry: StoredEntry) -> Tuple[List[MemoryTurn], bool]:
    """
    Convert any stored entry into canonical turns.

    Returns:
        (turns, was_legacy); unrecognizable entries yield ([], True) so the
        caller rewrites the cache without them
    """
    if isinstance(entry, MemoryTurn):
        return [entry.truncated()], False

    if isinstance(entry, LegacyTurnPair):
        return entry.split(), True

    if isinstance(entry, ConversationMemoryRecord):
        pair = LegacyTurnPair(
            id=entry.id,
            user_message=entry.user_message,
            ai_response=entry.ai_response,
            timestamp=entry.timestamp,
            intent=entry.intent,
            sentiment=entry.sentiment
        )
        return pair.split(), True

    if isinstance(entry, dict):
        try:
            if "content" in entry:
                return [MemoryTurn.model_validate(entry).truncated()], False
            return LegacyTurnPair.model_validate(entry).split(), True
        except PydanticValidationError as e:
            logger.warning(f"Dropping unreadable memory entry {entry.get('id')}: {e.error_count()} errors")
            return [], True

    logger.warning(f"Dropping memory entry of unsupported type {type(entry).__name__}")
    return [], True


def normalize_entries(entries: Iterable[Any]) -> Tuple[List[MemoryTurn], bool]:
    """
    Normalize a mixed sequence of stored entries, preserving order.

    Returns:
        (turns, migrated) where migrated is True if any entry was not
        already a canonical MemoryTurn
    """
    turns: List[MemoryTurn] = []
    migrated = False
    for entry in entries:
        converted, was_legacy = coerce_entry(entry)
        turns.extend(converted)
        migrated = migrated or was_legacy
    return turns, migrated


class SweepReport(BaseModel):
    """Outcome of a retention sweep."""
    purged_durable: int = 0
    evicted_cached: int = 0


class IsolationReport(BaseModel):
    """Tenant-isolation violations found by an audit. Read only."""
    orphaned_cache_keys: List[str] = Field(default_factory=list)
    orphaned_durable_records: int = 0

    @property
    def is_clean(self) -> bool:
        return not self.orphaned_cache_keys and self.orphaned_durable_records == 0


class RepairReport(BaseModel):
    """Outcome of an isolation repair."""
    default_tenant_id: str
    reassigned_durable: int = 0
    rekeyed_cache: List[str] = Field(default_factory=list)
