"""
共享测试夹具

- FakeGateway: 按脚本返回响应的 ReasoningGateway，记录所有调用
- make_tool: 快速构造 StructuredTool
"""

import asyncio
from typing import Any, Callable, Optional

import pytest
from langchain_core.tools import StructuredTool
from pydantic import BaseModel, Field

from analyst.config import AgentConfig
from analyst.model.llm import GatewayResponse, ToolCall


class FakeGateway:
    """Scripted gateway.

    - invoke(fast=False): pops the next scripted response (exceptions are raised);
      an exhausted script returns an empty, tool-free response
    - invoke(fast=True): summaries/routing, returns ``summary`` unless ``fast_responses`` is scripted
    - invoke_structured: returns ``structured`` (raised if it is an exception)
    - stream: yields ``stream_chunks``
    """

    def __init__(
        self,
        responses: Optional[list[Any]] = None,
        stream_chunks: Optional[list[str]] = None,
        summary: str = "compact summary",
        structured: Any = None,
        fast_responses: Optional[list[Any]] = None,
    ):
        self.responses = list(responses or [])
        self.stream_chunks = list(stream_chunks or [])
        self.summary = summary
        self.structured = structured
        self.fast_responses = list(fast_responses or [])

        self.invoke_calls: list[dict[str, Any]] = []
        self.structured_calls: list[dict[str, Any]] = []
        self.stream_calls: list[list[Any]] = []

    async def invoke(self, messages, tools=None, cancellation_token=None, fast=False):
        self.invoke_calls.append(
            {"messages": list(messages), "tools": tools, "fast": fast}
        )
        if fast:
            if self.fast_responses:
                return self._unwrap(self.fast_responses.pop(0))
            return GatewayResponse(text=self.summary)
        if not self.responses:
            return GatewayResponse(text="")
        return self._unwrap(self.responses.pop(0))

    async def invoke_structured(
        self, messages, output_schema, cancellation_token=None, fast=False
    ):
        self.structured_calls.append({"messages": list(messages), "schema": output_schema})
        return self._unwrap(self.structured)

    async def stream(self, messages, cancellation_token=None, fast=False):
        self.stream_calls.append(list(messages))
        for chunk in self.stream_chunks:
            await asyncio.sleep(0)
            yield chunk

    @staticmethod
    def _unwrap(value: Any) -> Any:
        if isinstance(value, BaseException):
            raise value
        return value

    @property
    def loop_prompts(self) -> list[str]:
        """User prompts of the main-loop calls (fast calls excluded)."""
        return [c["messages"][-1].content for c in self.invoke_calls if not c["fast"]]

    @property
    def fast_prompts(self) -> list[str]:
        return [c["messages"][-1].content for c in self.invoke_calls if c["fast"]]


def tool_calls(*calls: tuple[str, dict[str, Any]], text: str = "") -> GatewayResponse:
    """GatewayResponse requesting the given (name, args) calls."""
    return GatewayResponse(
        text=text,
        tool_calls=[
            ToolCall(name=name, args=args, id=f"call_{i}")
            for i, (name, args) in enumerate(calls)
        ],
    )


class QueryInput(BaseModel):
    query: str = Field(..., description="Natural-language query.")


def make_tool(
    name: str,
    coroutine: Callable[..., Any],
    args_schema: type[BaseModel] = QueryInput,
    description: Optional[str] = None,
) -> StructuredTool:
    return StructuredTool.from_function(
        coroutine=coroutine,
        name=name,
        description=description or f"Test tool {name}.",
        args_schema=args_schema,
    )


@pytest.fixture
def token() -> asyncio.Event:
    return asyncio.Event()


@pytest.fixture
def config(tmp_path, token) -> AgentConfig:
    return AgentConfig(
        scratchpad_dir=str(tmp_path / "scratchpad"),
        cancellation_token=token,
        max_iterations=5,
    )
