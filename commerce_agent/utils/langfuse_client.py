"""
Langfuse integration for workflow tracing and observability.

The @observe decorator is re-exported from langfuse; LangfuseClient only adds
enrichment of the current observation (model usage, order outcomes, trace
attribution) and degrades to a no-op when credentials are missing.
"""

import os
import logging
from typing import Optional, Dict, Any
from datetime import datetime, timezone

from langfuse import Langfuse, observe

from commerce_agent.config import settings

logger = logging.getLogger(__name__)


class LangfuseClient:
    """
    Wrapper for Langfuse client with enhanced tracing capabilities.
    Uses Langfuse's @observe decorator pattern for proper parent-child relationships.
    """

    def __init__(self):
        """Initialize Langfuse client with configuration."""
        self.client: Optional[Langfuse] = None
        self.enabled = self._initialize_client()

    def _initialize_client(self) -> bool:
        """Initialize the Langfuse client with proper configuration."""
        secret_key = settings.langfuse_secret_key or os.getenv('LANGFUSE_SECRET_KEY')
        public_key = settings.langfuse_public_key or os.getenv('LANGFUSE_PUBLIC_KEY')
        host = settings.langfuse_base_url or os.getenv('LANGFUSE_BASE_URL')

        if not all([secret_key, public_key, host]):
            logger.info("Langfuse credentials not found. Observability disabled.")
            return False

        try:
            self.client = Langfuse(
                secret_key=secret_key,
                public_key=public_key,
                host=host  # Note: parameter is 'host', not 'base_url'
            )
        except Exception as e:
            logger.warning(f"Failed to initialize Langfuse client: {e}. Continuing without observability")
            return False

        logger.info("Langfuse client initialized successfully")
        return True

    def tag_trace(self, tenant_id: str, participant_id: str, conversation_id: Optional[str] = None) -> None:
        """Attribute the current trace to a tenant, participant and session."""
        if not self.enabled or not self.client:
            return

        try:
            self.client.update_current_trace(
                user_id=participant_id,
                session_id=conversation_id,
                tags=[f"tenant:{tenant_id}"],
                metadata={"tenant_id": tenant_id}
            )
        except Exception as e:
            logger.warning(f"[Langfuse] Failed to tag trace: {e}")

    def log_llm_call(
        self,
        model_name: str,
        token_usage: Dict[str, int],
        response_time: float,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None
    ) -> None:
        """Attach model usage and timing to the current generation observation."""
        if not self.enabled or not self.client:
            return

        usage_details = None
        if token_usage.get("prompt_tokens") is not None and token_usage.get("completion_tokens") is not None:
            usage_details = {
                "input": token_usage.get("prompt_tokens", 0),
                "output": token_usage.get("completion_tokens", 0),
                "total": token_usage.get("total_tokens", 0)
            }

        try:
            self.client.update_current_generation(
                model=model_name,
                usage_details=usage_details,
                model_parameters={"temperature": temperature, "max_tokens": max_tokens},
                metadata={
                    "response_time_seconds": response_time,
                    "performance_tier": "fast" if response_time < 2.0 else "medium" if response_time < 5.0 else "slow",
                    "timestamp": datetime.now(timezone.utc).isoformat()
                }
            )
        except Exception as e:
            logger.warning(f"[Langfuse] Failed to log generation: {e}")

    def log_extraction_outcome(
        self,
        status: str,
        missing_fields: list,
        order_number: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        """Attach the order state machine outcome to the current span."""
        if not self.enabled or not self.client:
            return

        outcome = {
            "status": status,
            "missing_fields": missing_fields,
            "order_number": order_number,
            "order_created": order_number is not None,
            **(metadata or {})
        }
        try:
            self.client.update_current_span(metadata=outcome)
        except Exception as e:
            logger.warning(f"[Langfuse] Failed to log extraction outcome: {e}")

    def flush(self) -> None:
        """Flush any pending traces to Langfuse"""
        if self.enabled and self.client:
            try:
                self.client.flush()
            except Exception as e:
                logger.warning(f"Failed to flush Langfuse: {e}")


# Global Langfuse client instance
langfuse_client = LangfuseClient()

__all__ = ["langfuse_client", "LangfuseClient", "observe"]
