import asyncio

from analyst.agent import (
    Agent,
    AnswerChunkEvent,
    AnswerStartEvent,
    DoneEvent,
    ThinkingEvent,
    ToolEndEvent,
    ToolErrorEvent,
    ToolStartEvent,
)
from analyst.config import AgentConfig
from analyst.errors import GatewayError
from analyst.tools.types import get_tool_description
from analyst.utils.message_history import MessageHistory


def print_event(event) -> None:
    if isinstance(event, ThinkingEvent):
        print(f"💭 {event.message}")
    elif isinstance(event, ToolStartEvent):
        print(f"🔧 {get_tool_description(event.tool, event.args)} ...")
    elif isinstance(event, ToolEndEvent):
        print(f"   ✓ {event.tool} ({event.duration}ms)")
    elif isinstance(event, ToolErrorEvent):
        print(f"   ✗ {event.tool}: {event.error}")
    elif isinstance(event, AnswerStartEvent):
        print("\nAnswer:")
    elif isinstance(event, AnswerChunkEvent):
        print(event.text, end="", flush=True)
    elif isinstance(event, DoneEvent):
        print(f"\n\n[{len(event.tool_calls)} tool calls, {event.iterations} iterations]\n")


async def main():
    # Reads OPENAI_API_KEY / FINANCIAL_DATASETS_API_KEY / TAVILY_API_KEY from .env
    config = AgentConfig.from_env(max_iterations=5)
    agent = Agent.create(config=config)
    history = MessageHistory(agent.gateway)

    print("Financial Analyst 示例 (输入 exit 退出)\n")

    while True:
        try:
            query = input("> ").strip()
        except EOFError:
            break
        if not query:
            continue
        if query.lower() in ("exit", "quit"):
            break

        try:
            async with agent.run(query, history) as run:
                async for event in run:
                    print_event(event)
        except GatewayError as e:
            print(f"\n模型服务不可用: {e}\n")


if __name__ == "__main__":
    asyncio.run(main())
