"""
Per-message coordination of memory and order extraction.
"""

from .orchestrator import ConversationOrchestrator, MessageDeduplicator, OrchestratorResponse

__all__ = ["ConversationOrchestrator", "MessageDeduplicator", "OrchestratorResponse"]
