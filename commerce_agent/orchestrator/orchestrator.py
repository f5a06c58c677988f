"""
Conversation orchestrator: one inbound message in, one reply out.

AI Assistant Notes:
- Tags the trace with tenant/participant/conversation before any work
- Drops a repeat of the same message in the same conversation inside the
  dedup window (webhook retries, double sends); a message whose attempt
  failed or was cancelled may be sent again
- Runs the order extraction engine, then records the turn in memory
- A memory write failure is logged; the customer still gets the reply
- If the request is cancelled mid-flight the turn is still persisted with a
  placeholder reply, then the cancellation propagates
"""

import asyncio
import hashlib
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from ..config import settings
from ..errors import PersistenceFailure
from ..memory import MemoryStore, TenantScopedKey
from ..orders import ExtractionResult, ExtractionStatus, OrderExtractionEngine
from ..utils import langfuse_client, observe

logger = logging.getLogger(__name__)

CANCELLED_REPLY = "(request cancelled before a reply was generated)"


@dataclass
class OrchestratorResponse:
    """Reply for one inbound message."""
    answer: str
    status: str
    processing_time: float
    duplicate: bool = False
    order_number: Optional[str] = None
    result: Optional[ExtractionResult] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class MessageDeduplicator:
    """Remembers recent (conversation, message) pairs for a short window."""

    def __init__(self, window_seconds: Optional[float] = None):
        self.window_seconds = window_seconds if window_seconds is not None else settings.duplicate_message_window_seconds
        self._seen: Dict[str, float] = {}

    @staticmethod
    def _fingerprint(key: TenantScopedKey, message: str) -> str:
        digest = hashlib.sha256(message.strip().encode("utf-8")).hexdigest()
        return f"{key.cache_key}:{digest}"

    def _purge(self, now: float) -> None:
        expired = [fp for fp, seen_at in self._seen.items() if now - seen_at > self.window_seconds]
        for fp in expired:
            del self._seen[fp]

    def is_duplicate(self, key: TenantScopedKey, message: str, now: Optional[float] = None) -> bool:
        """Return True if this message was already seen in the window; records it otherwise."""
        now = now if now is not None else time.monotonic()
        self._purge(now)
        fingerprint = self._fingerprint(key, message)
        if fingerprint in self._seen:
            return True
        self._seen[fingerprint] = now
        return False

    def forget(self, key: TenantScopedKey, message: str) -> None:
        """Let the same message through again, e.g. a retry after a failed attempt."""
        self._seen.pop(self._fingerprint(key, message), None)


class ConversationOrchestrator:
    """
    Coordinates memory and order extraction for each inbound message.
    """

    def __init__(
        self,
        memory: MemoryStore,
        engine: OrderExtractionEngine,
        deduplicator: Optional[MessageDeduplicator] = None
    ):
        """
        Initialize the orchestrator.

        Args:
            memory: Conversation memory store
            engine: Order extraction engine
            deduplicator: Inbound message dedup, defaults to the settings window
        """
        self.memory = memory
        self.engine = engine
        self.deduplicator = deduplicator or MessageDeduplicator()

    async def _record_turn(self, key: TenantScopedKey, message: str, reply: str, intent: str) -> None:
        try:
            await self.memory.append(key, message, reply, intent=intent)
        except PersistenceFailure as e:
            logger.error(f"Failed to record turn for {key.cache_key}: {e}")

    @observe(name="commerce_agent_message", as_type="agent")
    async def handle_message(
        self,
        key: TenantScopedKey,
        message: str,
        customer: Optional[Dict[str, Any]] = None,
        personality: Optional[str] = None,
        knowledge_hits: Optional[list] = None
    ) -> OrchestratorResponse:
        """
        Process one inbound customer message.

        Args:
            key: Tenant-scoped conversation key
            message: Customer message text
            customer: Known customer record, if any
            personality: Tenant personality text
            knowledge_hits: Raw retrieval hits for the knowledge context

        Returns:
            OrchestratorResponse with the reply text and extraction outcome
        """
        start_time = time.time()
        key = MemoryStore._require_key(key)
        langfuse_client.tag_trace(key.tenant_id, key.participant_id, key.conversation_id)

        if self.deduplicator.is_duplicate(key, message):
            logger.info(f"Ignoring duplicate message for {key.cache_key}")
            return OrchestratorResponse(
                answer="",
                status="duplicate",
                processing_time=time.time() - start_time,
                duplicate=True
            )

        try:
            result = await self.engine.process(
                key,
                message,
                customer=customer,
                personality=personality,
                knowledge_hits=knowledge_hits
            )
        except asyncio.CancelledError:
            self.deduplicator.forget(key, message)
            logger.warning(f"Request cancelled for {key.cache_key}, persisting the inbound message")
            await asyncio.shield(asyncio.create_task(
                self._record_turn(key, message, CANCELLED_REPLY, "cancelled")
            ))
            raise
        except Exception:
            self.deduplicator.forget(key, message)
            raise

        # Error replies ask the customer to send the message again
        if result.status == ExtractionStatus.ERROR:
            self.deduplicator.forget(key, message)

        await self._record_turn(key, message, result.response, result.status.value)

        order_number = result.order_created.order_number if result.order_created else None
        return OrchestratorResponse(
            answer=result.response,
            status=result.status.value,
            processing_time=time.time() - start_time,
            order_number=order_number,
            result=result,
            metadata={
                "missing_fields": result.missing_fields,
                "error": result.error,
                "order_created": result.status == ExtractionStatus.CONFIRMED and order_number is not None,
            }
        )
