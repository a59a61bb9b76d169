"""
Agent module - financial research agent loop.

Core components:
- Agent: Main agent class with tool execution loop
- Scratchpad: Append-only JSONL log of the agent's work on one query
- EventChannel / AgentRun: Bounded event transport to the consumer
- Types: Event types for UI updates
- Prompts: Customization layer (swap for different agent types)

Usage:
    from analyst.agent import Agent
    from analyst.config import AgentConfig

    agent = Agent.create(AgentConfig.from_env())
    async with agent.run("Your query") as run:
        async for event in run:
            print(event)
"""

from analyst.agent.agent import Agent
from analyst.agent.channel import AgentRun, EventChannel
from analyst.agent.scratchpad import Scratchpad
from analyst.agent.types import (
    AgentEvent,
    ThinkingEvent,
    ToolStartEvent,
    ToolEndEvent,
    ToolErrorEvent,
    AnswerStartEvent,
    AnswerChunkEvent,
    DoneEvent,
    ToolCallRecord,
)

__all__ = [
    "Agent",
    "AgentRun",
    "EventChannel",
    "Scratchpad",
    "AgentEvent",
    "ThinkingEvent",
    "ToolStartEvent",
    "ToolEndEvent",
    "ToolErrorEvent",
    "AnswerStartEvent",
    "AnswerChunkEvent",
    "DoneEvent",
    "ToolCallRecord",
]
