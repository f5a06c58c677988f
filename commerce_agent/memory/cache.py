"""
Tier-1 conversation memory cache.

AI Assistant Notes:
- KeyValueCache is the seam: MemoryStore only talks to get/set/delete/scan_prefix
  and the per-key lock, so a distributed cache can replace InMemoryCache
- Locks are striped per key and created lazily; there is no global lock
- Cache operations never block and never await; callers hold lock(key)
  around read-modify-write sequences
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Protocol, Tuple


@dataclass
class CachedHistory:
    """
    Turns cached for one key, with their owner and last access time.

    hydrated is True once the entry holds the newest durable history for the
    key; entries created by an append on a cold key only hold the new turns.
    participant_id is None for entries whose participant is not known, such as
    entries rekeyed by an isolation repair.
    """

    tenant_id: Optional[str]
    turns: List[Any] = field(default_factory=list)
    hydrated: bool = False
    last_access: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    participant_id: Optional[str] = None
    conversation_id: Optional[str] = None

    @classmethod
    def for_key(cls, key: Any, **kwargs) -> "CachedHistory":
        return cls(
            tenant_id=key.tenant_id,
            participant_id=key.participant_id,
            conversation_id=key.conversation_id,
            **kwargs
        )

    def owned_by(self, key: Any) -> bool:
        """True unless the recorded owner differs from the key's."""
        if self.tenant_id != key.tenant_id:
            return False
        if self.participant_id is None:
            return True
        return self.participant_id == key.participant_id and self.conversation_id == key.conversation_id

    def touch(self) -> None:
        self.last_access = datetime.now(timezone.utc)

    @property
    def last_activity(self) -> datetime:
        """Latest of the last access and the newest cached turn."""
        newest = getattr(self.turns[-1], "created_at", None) if self.turns else None
        if isinstance(newest, datetime) and newest > self.last_access:
            return newest
        return self.last_access


class KeyValueCache(Protocol):
    """Minimal cache interface used by MemoryStore."""

    def get(self, key: str) -> Optional[CachedHistory]: ...

    def set(self, key: str, value: CachedHistory) -> None: ...

    def delete(self, key: str) -> bool: ...

    def scan_prefix(self, prefix: str) -> Iterator[Tuple[str, CachedHistory]]: ...

    def lock(self, key: str) -> asyncio.Lock: ...


class InMemoryCache:
    """Process-local KeyValueCache with one asyncio.Lock per key."""

    def __init__(self):
        self._entries: Dict[str, CachedHistory] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def get(self, key: str) -> Optional[CachedHistory]:
        return self._entries.get(key)

    def set(self, key: str, value: CachedHistory) -> None:
        self._entries[key] = value

    def delete(self, key: str) -> bool:
        removed = self._entries.pop(key, None) is not None
        lock = self._locks.get(key)
        if lock is not None and not lock.locked():
            del self._locks[key]
        return removed

    def scan_prefix(self, prefix: str) -> Iterator[Tuple[str, CachedHistory]]:
        """Yield (key, value) pairs whose key starts with prefix; '' scans everything."""
        for key, value in list(self._entries.items()):
            if key.startswith(prefix):
                yield key, value

    def lock(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries
