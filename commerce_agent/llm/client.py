"""
Language-model collaborator.

AI Assistant Notes:
- The engine depends only on the LanguageModelClient protocol
- OpenRouterClient uses the synchronous OpenAI SDK against OpenRouter's
  OpenAI-compatible endpoint, dispatched to a worker thread with a timeout
- Failures surface as exceptions; the engine maps them to status=error
"""

import asyncio
import time
import logging
from typing import Any, Dict, Optional, Protocol

from openai import OpenAI
from pydantic import BaseModel

from commerce_agent.config import settings
from commerce_agent.errors import ConfigurationError
from commerce_agent.utils import langfuse_client, observe

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"


class LanguageModelReply(BaseModel):
    """Text answer of a model call."""
    content: str
    model: Optional[str] = None
    usage: Optional[Dict[str, int]] = None


class LanguageModelClient(Protocol):
    async def generate(
        self,
        prompt: str,
        tenant_id: str,
        options: Optional[Dict[str, Any]] = None
    ) -> LanguageModelReply: ...


class OpenRouterClient:
    """LanguageModelClient backed by OpenRouter through the OpenAI SDK."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model_name: Optional[str] = None,
        timeout: Optional[float] = None
    ):
        """
        Initialize the client.

        Args:
            api_key: OpenRouter API key, defaults to settings
            base_url: API base URL, defaults to OpenRouter
            model_name: Model identifier, defaults to settings.model_name
            timeout: Seconds allowed per call, defaults to settings.llm_timeout_seconds

        Raises:
            ConfigurationError: no API key is configured
        """
        self.model_name = model_name or settings.model_name
        self.timeout = timeout or settings.llm_timeout_seconds
        api_key = api_key or settings.openrouter_api_key
        if not api_key:
            raise ConfigurationError("OPENROUTER_API_KEY is not set")
        self._llm_client = OpenAI(
            api_key=api_key,
            base_url=base_url or settings.openrouter_base_url or DEFAULT_BASE_URL
        )

    def _complete(self, prompt: str, tenant_id: str, temperature: float, max_tokens: int) -> LanguageModelReply:
        start_time = time.time()
        response = self._llm_client.chat.completions.create(
            extra_headers={
                "X-Title": "commerce-agent-core"
            },
            model=self.model_name,
            messages=[
                {"role": "user", "content": prompt}
            ],
            max_tokens=max_tokens,
            temperature=temperature,
            user=tenant_id,
        )
        response_time = time.time() - start_time

        if not response or not getattr(response, 'choices', None):
            raise RuntimeError(f"Invalid LLM response: {response}")

        content = (response.choices[0].message.content or "").strip()
        if not content:
            raise RuntimeError("Empty response content from language model")

        token_usage = {
            "prompt_tokens": response.usage.prompt_tokens if response.usage else 0,
            "completion_tokens": response.usage.completion_tokens if response.usage else 0,
            "total_tokens": response.usage.total_tokens if response.usage else 0
        }
        langfuse_client.log_llm_call(
            model_name=self.model_name,
            token_usage=token_usage,
            response_time=response_time,
            temperature=temperature,
            max_tokens=max_tokens
        )

        logger.info(f"LLM response received in {response_time:.2f}s ({token_usage['total_tokens']} tokens)")
        return LanguageModelReply(content=content, model=self.model_name, usage=token_usage)

    @observe(name="order_extraction_llm_call", as_type="generation")
    async def generate(
        self,
        prompt: str,
        tenant_id: str,
        options: Optional[Dict[str, Any]] = None
    ) -> LanguageModelReply:
        """
        Send one prompt and return the model's text.

        Args:
            prompt: Full prompt text
            tenant_id: Tenant the call is billed/traced to
            options: Optional overrides: temperature, max_tokens

        Raises:
            asyncio.TimeoutError: the call exceeded the timeout
            Exception: any SDK or transport error
        """
        options = options or {}
        temperature = options.get("temperature", settings.order_extraction_temperature)
        max_tokens = options.get("max_tokens", settings.order_extraction_max_tokens)

        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._complete, prompt, tenant_id, temperature, max_tokens),
                timeout=self.timeout
            )
        except asyncio.TimeoutError:
            logger.error(f"LLM call timed out after {self.timeout}s for tenant {tenant_id}")
            raise
        except Exception as e:
            logger.error(f"LLM API call failed: {e}")
            logger.error(f"Prompt was: {prompt[:200]}...")
            raise
