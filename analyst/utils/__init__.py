"""
Utility modules for the agent system.

- logger: Structured logging with loguru
- cancellation: asyncio.Event based cancellation helpers
- message_history: Multi-turn conversation history (import it directly)
"""

from analyst.utils.logger import get_logger, set_log_level, LoggerManager
from analyst.utils.cancellation import (
    cancellable,
    iterate_cancellable,
    raise_if_cancelled,
)

__all__ = [
    # Logger
    "get_logger",
    "set_log_level",
    "LoggerManager",
    # Cancellation
    "cancellable",
    "iterate_cancellable",
    "raise_if_cancelled",
]
