"""
Tool router (the `financial_search` meta-tool).

Looks like one ordinary tool to the agent: a single natural-language `query`
argument. Internally a secondary model call picks concrete data tools and
their arguments, the selected tools run concurrently, and all results,
failures included, come back as one aggregate string.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Sequence

from langchain_core.tools import BaseTool, StructuredTool
from pydantic import BaseModel, Field

from analyst.errors import ToolExecutionError
from analyst.model.llm import ReasoningGateway, ToolCall, build_messages
from analyst.tools.base import invoke_tool
from analyst.tools.types import get_tool_description
from analyst.utils.cancellation import raise_if_cancelled
from analyst.utils.logger import get_logger

log = get_logger(__name__)

ROUTER_TOOL_NAME = "financial_search"

ROUTER_TOOL_DESCRIPTION = """
Search financial data: stock prices (current and historical), income statements,
balance sheets, cash flow statements and company news.

Pass a natural-language request, e.g. "Apple and Microsoft revenue for the last 4 quarters".
One request can cover several companies and data types; the data is fetched in parallel.
""".strip()

ROUTER_SYSTEM_PROMPT_TEMPLATE = """You are the data routing component of a financial research agent.

Current date: {current_date}

Given a natural-language data request, call the tools that fetch exactly that data.

Guidelines:
- Call every tool needed; independent calls run in parallel.
- Use ticker symbols (e.g. "Apple" -> "AAPL").
- Resolve relative periods ("last quarter", "past 5 years") against the current date.
- Prefer fewer, broader calls (e.g. limit=8) over many small ones.
"""


def get_router_system_prompt() -> str:
    return ROUTER_SYSTEM_PROMPT_TEMPLATE.format(
        current_date=datetime.now().strftime("%A, %B %d, %Y")
    )


def build_router_prompt(query: str) -> str:
    return f"Data request: {query}\n\nCall the tools needed to fetch this data."


class RouterInput(BaseModel):
    query: str = Field(
        ...,
        description="Natural-language description of the financial data to fetch.",
    )


@dataclass
class RoutedResult:
    """Outcome of one concrete tool call made by the router."""

    tool_name: str
    args: dict[str, Any]
    result: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def format_routed_results(results: Sequence[RoutedResult]) -> str:
    """One section per call; failures are inline [ERROR] sections."""
    sections = []
    for r in results:
        label = get_tool_description(r.tool_name, r.args)
        if r.ok:
            sections.append(f"### {label}\n{r.result}")
        else:
            sections.append(f"### {label} [ERROR]\nError: {r.error}")
    return "\n\n".join(sections)


class ToolRouter:
    """
    Routes a natural-language data request to concrete tools.

    Usage:
        router = ToolRouter(gateway, finance_tools, cancellation_token=token)
        tool = router.as_tool()  # hand this to the Agent
    """

    def __init__(
        self,
        gateway: ReasoningGateway,
        tools: Sequence[BaseTool],
        cancellation_token: Optional[asyncio.Event] = None,
    ):
        self.gateway = gateway
        self.tools = list(tools)
        self.tool_map: dict[str, BaseTool] = {t.name: t for t in self.tools}
        self.cancellation_token = cancellation_token

    async def route(self, query: str) -> str:
        """Select tools for ``query``, run them concurrently, aggregate the results."""
        if not self.tools:
            raise ToolExecutionError("No data tools are configured.", ROUTER_TOOL_NAME)

        response = await self.gateway.invoke(
            build_messages(build_router_prompt(query), get_router_system_prompt()),
            tools=self.tools,
            cancellation_token=self.cancellation_token,
            fast=True,
        )

        if not response.tool_calls:
            log.info(f"Router selected no tools for query='{query[:50]}'")
            return response.text.strip() or f"No data tools matched the request: {query}"

        log.info(
            f"Router dispatching {len(response.tool_calls)} call(s): "
            f"{[tc.name for tc in response.tool_calls]}"
        )

        # A failing call never fails its siblings; cancellation still propagates
        try:
            results = await asyncio.gather(
                *(self._run_one(tc) for tc in response.tool_calls)
            )
        except asyncio.CancelledError:
            # gather may surface a child's RunCancelled as a plain CancelledError
            raise_if_cancelled(self.cancellation_token, "Routed tools cancelled.")
            raise
        return format_routed_results(results)

    async def _run_one(self, tool_call: ToolCall) -> RoutedResult:
        tool = self.tool_map.get(tool_call.name)
        if tool is None:
            return RoutedResult(
                tool_call.name, tool_call.args, error=f"Tool '{tool_call.name}' not found"
            )

        try:
            result = await invoke_tool(tool, tool_call.args, self.cancellation_token)
        except ToolExecutionError as e:
            log.warning(f"Routed tool {tool_call.name} failed: {e}")
            return RoutedResult(tool_call.name, tool_call.args, error=str(e))

        return RoutedResult(tool_call.name, tool_call.args, result=result)

    def as_tool(self) -> StructuredTool:
        """Expose the router as an ordinary tool."""
        return StructuredTool.from_function(
            coroutine=self.route,
            name=ROUTER_TOOL_NAME,
            description=ROUTER_TOOL_DESCRIPTION,
            args_schema=RouterInput,
        )
