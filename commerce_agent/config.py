"""
Configuration management for the commerce agent core.

AI Assistant Notes:
- Central configuration using Pydantic Settings for type safety and validation
- All settings can be overridden via environment variables (.env file)
- Key categories: LLM, Langfuse, Database, Memory, Order extraction
- Memory limits (retention, idle eviction, truncation) are hard caps, not hints
- Use settings.model_name, settings.memory_retention_days for common access patterns
"""
from pydantic_settings import BaseSettings
from pydantic import Field
from typing import Optional


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # LLM Configuration
    openrouter_api_key: Optional[str] = Field(None)
    openrouter_base_url: Optional[str] = None
    model_name: str = "anthropic/claude-3.5-haiku"
    order_extraction_temperature: float = Field(0.2)
    order_extraction_max_tokens: int = Field(1500)
    llm_timeout_seconds: float = Field(45.0)

    # Langfuse Configuration
    langfuse_secret_key: Optional[str] = Field(None)
    langfuse_public_key: Optional[str] = Field(None)
    langfuse_base_url: str = Field(
        "https://cloud.langfuse.com")

    # Application Configuration
    debug: bool = Field(False)
    log_level: str = Field("INFO")

    # Database Configuration
    database_path: str = Field("database/agent_core.db")
    database_timeout: int = Field(30)
    durable_timeout_seconds: float = Field(10.0)

    # Conversation Memory Configuration
    memory_retention_days: int = Field(30)
    memory_idle_eviction_minutes: int = Field(60)
    max_message_chars: int = Field(2000)
    truncation_marker: str = Field("... (مقطوع لتوفير التوكنز)")
    short_term_max_turns: int = Field(20)  # 10 interactions x 2 turns
    default_history_limit: int = Field(50)

    # Order Extraction Configuration
    order_history_turns: int = Field(10)
    order_number_prefix: str = Field("ORD")
    default_delivery_time: str = Field("3-5 أيام")
    response_language: str = Field("Arabic")
    default_personality: str = Field("أنت مساعد مبيعات محترف وودود.")
    duplicate_message_window_seconds: int = Field(30)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore"  # Ignore extra fields in .env
    }


# Global settings instance
settings = Settings()
