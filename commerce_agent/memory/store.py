"""
Two-tier conversation memory.

AI Assistant Notes:
- Tier 1 is a lock-striped KeyValueCache, tier 2 the conversation_memory table
- Every operation is scoped by a TenantScopedKey; there is no default tenant
- Durable calls run in worker threads with a bounded timeout and are never
  awaited while a per-key lock is held
- Entries found in the historical pair shape are rewritten as MemoryTurns the
  first time they are read
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, List, Optional

from commerce_agent.config import settings
from commerce_agent.database.repositories import ConversationMemoryRepository
from commerce_agent.errors import IsolationError, PersistenceFailure, ValidationError
from .analytics import (
    ConversationSummary,
    CustomerProfile,
    MemoryStats,
    build_conversation_summary,
    build_customer_profile,
)
from .cache import CachedHistory, InMemoryCache, KeyValueCache
from .keys import TenantScopedKey, is_well_formed, tenant_prefix
from .models import (
    IsolationReport,
    LegacyTurnPair,
    MemoryTurn,
    RepairReport,
    SweepReport,
    normalize_entries,
)

logger = logging.getLogger(__name__)


class MemoryStore:
    """
    Per-tenant, per-participant conversation memory.

    Features:
    - Session-isolated or participant-global history depending on the key
    - Retention window for durable records, idle eviction for cached ones
    - Self-healing migration of the historical pair shape
    - Isolation audit and repair for administrators
    """

    def __init__(
        self,
        repository: ConversationMemoryRepository,
        cache: Optional[KeyValueCache] = None,
        retention_days: Optional[int] = None,
        idle_eviction_minutes: Optional[int] = None,
        max_cached_turns: Optional[int] = None,
        durable_timeout: Optional[float] = None
    ):
        """
        Initialize the memory store.

        Args:
            repository: Durable tier
            cache: Tier-1 cache, a fresh InMemoryCache if None
            retention_days: Durable retention window
            idle_eviction_minutes: Tier-1 inactivity threshold
            max_cached_turns: Tier-1 cap per key
            durable_timeout: Seconds allowed for each durable call
        """
        self.repository = repository
        self.cache = cache if cache is not None else InMemoryCache()
        self.retention = timedelta(days=retention_days or settings.memory_retention_days)
        self.idle_threshold = timedelta(minutes=idle_eviction_minutes or settings.memory_idle_eviction_minutes)
        self.max_cached_turns = max_cached_turns or settings.short_term_max_turns
        self.durable_timeout = durable_timeout or settings.durable_timeout_seconds

        logger.info(
            f"Memory store initialized (retention={self.retention.days}d, "
            f"idle={self.idle_threshold}, max_cached_turns={self.max_cached_turns})"
        )

    @staticmethod
    def _require_key(key: Any) -> TenantScopedKey:
        if not isinstance(key, TenantScopedKey):
            raise IsolationError(f"Memory access requires a TenantScopedKey, got {type(key).__name__}")
        return key

    async def _durable(self, operation: Callable, *args):
        """Run a blocking repository call in a worker thread with a timeout."""
        return await asyncio.wait_for(asyncio.to_thread(operation, *args), timeout=self.durable_timeout)

    async def append(
        self,
        key: TenantScopedKey,
        user_text: Optional[str],
        agent_text: Optional[str],
        intent: Optional[str] = None,
        sentiment: Optional[str] = None
    ) -> List[MemoryTurn]:
        """
        Record one exchange.

        Writes a single durable record, then appends the user and agent turns
        to tier 1 together.

        Raises:
            IsolationError: key is not tenant scoped
            ValidationError: both texts are empty (nothing is written)
            PersistenceFailure: durable write failed or timed out
        """
        key = self._require_key(key)
        user_text = (user_text or "").strip()
        agent_text = (agent_text or "").strip()
        if not user_text and not agent_text:
            raise ValidationError("Cannot append an exchange with neither user nor agent text")

        timestamp = datetime.now(timezone.utc)
        try:
            record_id = await self._durable(
                self.repository.insert_durable,
                key.tenant_id,
                key.conversation_id,
                key.participant_id,
                user_text or None,
                agent_text or None,
                intent,
                sentiment,
                timestamp
            )
        except asyncio.TimeoutError as e:
            logger.error(f"Durable memory write timed out for {key.cache_key}")
            raise PersistenceFailure(f"Timed out saving memory for {key.cache_key}") from e
        except Exception as e:
            logger.error(f"Durable memory write failed for {key.cache_key}: {e}")
            raise PersistenceFailure(f"Failed to save memory for {key.cache_key}") from e

        turns = LegacyTurnPair(
            id=record_id,
            user_message=user_text,
            ai_response=agent_text,
            timestamp=timestamp,
            intent=intent,
            sentiment=sentiment
        ).split()

        async with self.cache.lock(key.cache_key):
            entry = self.cache.get(key.cache_key)
            if entry is not None and not entry.owned_by(key):
                logger.warning(f"Replacing cache entry {key.cache_key} recorded for another owner")
                entry = None
            if entry is None:
                entry = CachedHistory.for_key(key)
            existing, _ = normalize_entries(entry.turns)
            # A concurrent rehydration may already hold this record
            known_ids = {turn.id for turn in existing}
            fresh = [turn for turn in turns if turn.id not in known_ids]
            entry.turns = (existing + fresh)[-self.max_cached_turns:]
            entry.touch()
            self.cache.set(key.cache_key, entry)

        logger.debug(f"Appended {len(turns)} turns for {key.cache_key}")
        return turns

    async def get_recent(self, key: TenantScopedKey, limit: Optional[int] = None) -> List[MemoryTurn]:
        """
        Get at most `limit` turns, most recent last.

        Tier 1 is served when it holds enough history; otherwise the durable
        tier is read within the retention window and tier 1 is backfilled.
        A failing durable read is logged and returns what tier 1 has.
        """
        key = self._require_key(key)
        limit = settings.default_history_limit if limit is None else limit
        if limit <= 0:
            return []

        cached: List[MemoryTurn] = []
        async with self.cache.lock(key.cache_key):
            entry = self.cache.get(key.cache_key)
            if entry is not None and entry.owned_by(key):
                cached, migrated = normalize_entries(entry.turns)
                if migrated:
                    entry.turns = cached
                    logger.info(f"Migrated legacy memory entries for {key.cache_key}")
                entry.touch()
                # A hydrated entry below the cap already holds all retained history
                if len(cached) >= limit or (entry.hydrated and len(cached) < self.max_cached_turns):
                    return cached[-limit:]

        since = datetime.now(timezone.utc) - self.retention
        try:
            records = await self._durable(
                self.repository.find_recent_durable,
                key.tenant_id,
                key.participant_id,
                key.conversation_id,
                since,
                max(limit, self.max_cached_turns)
            )
        except Exception as e:
            logger.error(f"Failed to load durable memory for {key.cache_key}: {e}")
            return cached[-limit:]

        loaded, _ = normalize_entries(reversed(records))

        async with self.cache.lock(key.cache_key):
            entry = self.cache.get(key.cache_key)
            loaded_ids = {turn.id for turn in loaded}
            newer = []
            if entry is not None and entry.owned_by(key):
                current, _ = normalize_entries(entry.turns)
                newer = [turn for turn in current if turn.id not in loaded_ids]
            merged = loaded + newer
            self.cache.set(key.cache_key, CachedHistory.for_key(
                key,
                turns=merged[-self.max_cached_turns:],
                hydrated=True
            ))

        logger.debug(f"Rehydrated {len(loaded)} turns for {key.cache_key} from durable memory")
        return merged[-limit:]

    async def sweep(self, scope_tenant_id: Optional[str] = None) -> SweepReport:
        """
        Purge durable records past the retention window and evict idle tier-1 entries.

        Args:
            scope_tenant_id: Restrict both tiers to one tenant, or None for all

        Raises:
            PersistenceFailure: durable purge failed or timed out
        """
        now = datetime.now(timezone.utc)
        try:
            purged = await self._durable(
                self.repository.delete_durable_older_than, scope_tenant_id, now - self.retention
            )
        except Exception as e:
            logger.error(f"Memory sweep failed: {e}")
            raise PersistenceFailure("Failed to purge expired memory") from e

        prefix = tenant_prefix(scope_tenant_id) if scope_tenant_id else ""
        idle_cutoff = now - self.idle_threshold
        evicted = 0
        for cache_key, entry in list(self.cache.scan_prefix(prefix)):
            if scope_tenant_id and entry.tenant_id != scope_tenant_id:
                continue
            async with self.cache.lock(cache_key):
                current = self.cache.get(cache_key)
                if current is not None and current.last_activity < idle_cutoff:
                    self.cache.delete(cache_key)
                    evicted += 1

        scope = f"tenant {scope_tenant_id}" if scope_tenant_id else "all tenants"
        logger.info(f"Memory sweep for {scope}: purged {purged} durable records, evicted {evicted} cached keys")
        return SweepReport(purged_durable=purged, evicted_cached=evicted)

    async def wipe_participant(self, key: TenantScopedKey) -> int:
        """
        Erase one participant's memory inside one tenant, in both tiers.

        Returns:
            Durable records deleted plus cache entries removed
        """
        key = self._require_key(key)
        try:
            deleted = await self._durable(
                self.repository.delete_durable_for_participant, key.tenant_id, key.participant_id
            )
        except Exception as e:
            logger.error(f"Failed to wipe durable memory for {key.participant_id}: {e}")
            raise PersistenceFailure(f"Failed to wipe memory for participant {key.participant_id}") from e

        removed = 0
        for cache_key, entry in list(self.cache.scan_prefix(key.tenant_prefix)):
            if entry.tenant_id != key.tenant_id or entry.participant_id != key.participant_id:
                continue
            async with self.cache.lock(cache_key):
                current = self.cache.get(cache_key)
                if current is not None and current.participant_id == key.participant_id:
                    self.cache.delete(cache_key)
                    removed += 1

        logger.warning(
            f"Wiped memory for participant {key.participant_id} in tenant {key.tenant_id}: "
            f"{deleted} durable records, {removed} cached keys"
        )
        return deleted + removed

    async def audit_isolation(self) -> IsolationReport:
        """Report tier-1 keys without an owning tenant and durable records without a tenant."""
        orphaned_keys = [
            cache_key for cache_key, entry in self.cache.scan_prefix("")
            if not is_well_formed(cache_key, entry.tenant_id)
        ]
        try:
            orphaned_records = await self._durable(self.repository.count_orphaned)
        except Exception as e:
            logger.error(f"Isolation audit failed: {e}")
            raise PersistenceFailure("Failed to audit durable memory") from e

        report = IsolationReport(orphaned_cache_keys=orphaned_keys, orphaned_durable_records=orphaned_records)
        if not report.is_clean:
            logger.warning(
                f"Isolation audit found {len(orphaned_keys)} cache keys and "
                f"{orphaned_records} durable records without a tenant"
            )
        return report

    async def repair_isolation(self, default_tenant_id: str) -> RepairReport:
        """
        Assign every orphaned record and cache entry to default_tenant_id.

        Offending cache entries are rekeyed to `{default_tenant_id}_{old_key}`.
        Destructive; meant for administrators only.
        """
        if not default_tenant_id or not default_tenant_id.strip():
            raise IsolationError("repair_isolation requires an explicit default tenant")

        try:
            reassigned = await self._durable(self.repository.reassign_orphaned, default_tenant_id)
        except Exception as e:
            logger.error(f"Isolation repair failed: {e}")
            raise PersistenceFailure("Failed to repair durable memory") from e

        rekeyed = []
        for cache_key, entry in list(self.cache.scan_prefix("")):
            if is_well_formed(cache_key, entry.tenant_id):
                continue

            async with self.cache.lock(cache_key):
                current = self.cache.get(cache_key)
                if current is None or is_well_formed(cache_key, current.tenant_id):
                    continue
                self.cache.delete(cache_key)

            new_key = f"{tenant_prefix(default_tenant_id)}{cache_key}"
            async with self.cache.lock(new_key):
                target = self.cache.get(new_key)
                turns, _ = normalize_entries(current.turns)
                if target is not None:
                    existing, _ = normalize_entries(target.turns)
                    turns = turns + existing
                self.cache.set(new_key, CachedHistory(
                    tenant_id=default_tenant_id,
                    turns=turns[-self.max_cached_turns:],
                    hydrated=False
                ))
            rekeyed.append(new_key)

        logger.warning(
            f"Isolation repair assigned {reassigned} durable records and "
            f"{len(rekeyed)} cache keys to tenant {default_tenant_id}"
        )
        return RepairReport(default_tenant_id=default_tenant_id, reassigned_durable=reassigned, rekeyed_cache=rekeyed)

    async def get_customer_profile(self, tenant_id: str, participant_id: str) -> Optional[CustomerProfile]:
        """Interaction patterns from the participant's latest 50 records, None if unknown."""
        key = TenantScopedKey(tenant_id=tenant_id, participant_id=participant_id)
        try:
            records = await self._durable(
                self.repository.find_for_participant, key.tenant_id, key.participant_id, 50
            )
        except Exception as e:
            logger.error(f"Failed to build customer profile for {participant_id}: {e}")
            return None
        return build_customer_profile(tenant_id, participant_id, records)

    async def get_conversation_summary(self, key: TenantScopedKey) -> Optional[ConversationSummary]:
        """Summary of a session-isolated conversation, None without records."""
        key = self._require_key(key)
        if not key.conversation_id:
            raise ValidationError("A conversation summary needs a key with a conversation_id")
        try:
            records = await self._durable(
                self.repository.find_for_conversation, key.tenant_id, key.conversation_id, key.participant_id
            )
        except Exception as e:
            logger.error(f"Failed to summarize conversation {key.conversation_id}: {e}")
            return None
        return build_conversation_summary(key.tenant_id, key.conversation_id, key.participant_id, records)

    async def search(self, key: TenantScopedKey, term: str, limit: int = 5) -> List[MemoryTurn]:
        """Turns from the participant's durable history containing `term`, most recent last."""
        key = self._require_key(key)
        term = (term or "").strip()
        if not term:
            raise ValidationError("Search term must not be empty")
        try:
            records = await self._durable(
                self.repository.search, key.tenant_id, key.participant_id, key.conversation_id, term, limit
            )
        except Exception as e:
            logger.error(f"Memory search failed for {key.cache_key}: {e}")
            return []
        turns, _ = normalize_entries(reversed(records))
        return [turn for turn in turns if term in turn.content]

    async def get_stats(self, tenant_id: Optional[str] = None) -> MemoryStats:
        """Durable and cached memory counters, optionally for one tenant."""
        try:
            durable_records = await self._durable(self.repository.count, tenant_id)
            participants = await self._durable(self.repository.count_participants, tenant_id)
        except Exception as e:
            logger.error(f"Failed to collect memory stats: {e}")
            raise PersistenceFailure("Failed to collect memory stats") from e

        prefix = tenant_prefix(tenant_id) if tenant_id else ""
        entries = [
            entry for _, entry in self.cache.scan_prefix(prefix)
            if not tenant_id or entry.tenant_id == tenant_id
        ]
        return MemoryStats(
            tenant_id=tenant_id,
            durable_records=durable_records,
            unique_participants=participants,
            cached_keys=len(entries),
            cached_turns=sum(len(entry.turns) for entry in entries),
            retention_days=self.retention.days,
            isolated=tenant_id is not None,
            generated_at=datetime.now(timezone.utc)
        )
