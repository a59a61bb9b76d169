"""
Error taxonomy for the agent core.

- ToolExecutionError: a concrete tool failed, recorded as data
- GatewayError: the reasoning service failed after retries, aborts the run
- RunCancelled: cancellation signal, a terminal outcome rather than a failure
- IterationBudgetExceeded: the loop hit its iteration cap
"""

import asyncio


class AgentError(Exception):
    """Base class for agent errors."""


class ToolExecutionError(AgentError):
    """Raised when a tool fails. The message is shown to the model as-is."""

    def __init__(self, message: str, tool_name: str | None = None):
        super().__init__(message)
        self.message = message
        self.tool_name = tool_name


class GatewayError(AgentError):
    """Raised when the reasoning service keeps failing after all retries."""

    def __init__(self, message: str, attempts: int = 0):
        super().__init__(message)
        self.attempts = attempts


class IterationBudgetExceeded(AgentError):
    """The agent loop reached max_iterations without a tool-free response."""

    def __init__(self, max_iterations: int):
        super().__init__(
            f"Reached maximum iterations ({max_iterations}) without a final answer."
        )
        self.max_iterations = max_iterations


class RunCancelled(asyncio.CancelledError):
    """Raised at a suspension point once the run's cancellation token is set.

    Subclasses CancelledError so generic ``except Exception`` handlers
    never swallow it.
    """
