"""
Agent configuration.

All settings are resolved once, at the process boundary, by
AgentConfig.from_env(). Core logic receives an AgentConfig and never reads
the environment itself.
"""

import asyncio
import os
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from analyst.model.llm import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_MODEL,
    DEFAULT_RETRY_BASE_DELAY,
    DEFAULT_TIMEOUT,
    Provider,
)

DEFAULT_MAX_ITERATIONS = 10
DEFAULT_SCRATCHPAD_DIR = ".analyst/scratchpad"


class AgentConfig(BaseModel):
    """Configuration options for the Agent."""

    model_config = {"arbitrary_types_allowed": True}

    model: str = DEFAULT_MODEL
    provider: Provider = Provider.OPENAI
    fast_model: Optional[str] = None  # For summaries and routing, defaults to model
    max_iterations: int = Field(DEFAULT_MAX_ITERATIONS, ge=1)
    cancellation_token: Optional[asyncio.Event] = Field(None, exclude=True)

    api_key: Optional[str] = Field(None, repr=False)
    base_url: Optional[str] = None
    request_timeout: int = DEFAULT_TIMEOUT
    max_retries: int = Field(DEFAULT_MAX_RETRIES, ge=1)
    retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY

    scratchpad_dir: str = DEFAULT_SCRATCHPAD_DIR
    event_buffer_size: int = Field(32, ge=1)

    tavily_api_key: Optional[str] = Field(None, repr=False)
    financial_datasets_api_key: Optional[str] = Field(None, repr=False)

    @classmethod
    def from_env(cls, **overrides: Any) -> "AgentConfig":
        """Build a config from the environment (and .env), then apply overrides."""
        load_dotenv()

        values: dict[str, Any] = {
            "model": os.getenv("ANALYST_MODEL"),
            "provider": os.getenv("ANALYST_PROVIDER"),
            "fast_model": os.getenv("ANALYST_FAST_MODEL"),
            "max_iterations": os.getenv("ANALYST_MAX_ITERATIONS"),
            "scratchpad_dir": os.getenv("ANALYST_SCRATCHPAD_DIR"),
            "api_key": os.getenv("OPENAI_API_KEY") or os.getenv("OPENROUTER_API_KEY"),
            "base_url": os.getenv("OPENAI_BASE_URL"),
            "tavily_api_key": os.getenv("TAVILY_API_KEY"),
            "financial_datasets_api_key": os.getenv("FINANCIAL_DATASETS_API_KEY"),
        }
        # Unset variables fall back to the field defaults
        values = {k: v for k, v in values.items() if v}
        values.update(overrides)
        return cls(**values)
