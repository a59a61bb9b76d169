"""
Tool registry for managing and discovering available tools.

This module provides:
- RegisteredTool: A Pydantic model for tools with metadata
- get_tool_registry: Get all registered outer tools with descriptions
- build_tool_descriptions: Format tool descriptions for logging/prompts
"""

from typing import Any

from pydantic import BaseModel, Field

from analyst.config import AgentConfig
from analyst.model.llm import ReasoningGateway
from analyst.tools.finance import FinancialDatasetsClient, build_finance_tools
from analyst.tools.router import ROUTER_TOOL_DESCRIPTION, ToolRouter
from analyst.tools.search import build_web_search_tool
from analyst.utils.logger import get_logger

log = get_logger(__name__)


class RegisteredTool(BaseModel):
    """A registered tool with its rich description."""

    name: str = Field(..., description="Tool name (must match the tool's name property)")
    tool: Any = Field(..., description="The actual tool instance (StructuredTool)")
    description: str = Field(
        ...,
        description="Rich description (includes when to use, when not to use, etc.)",
    )


def get_tool_registry(config: AgentConfig, gateway: ReasoningGateway) -> list[RegisteredTool]:
    """
    Get all tools the agent loop can call directly.
    Conditionally includes tools based on which API keys are configured.

    Args:
        config: Agent configuration (API keys, cancellation token)
        gateway: Reasoning gateway, used by the router's tool selection

    Returns:
        Array of registered tools
    """
    tools: list[RegisteredTool] = []

    if config.financial_datasets_api_key:
        client = FinancialDatasetsClient(api_key=config.financial_datasets_api_key)
        router = ToolRouter(
            gateway,
            build_finance_tools(client),
            cancellation_token=config.cancellation_token,
        )
        router_tool = router.as_tool()
        tools.append(
            RegisteredTool(
                name=router_tool.name,
                tool=router_tool,
                description=ROUTER_TOOL_DESCRIPTION,
            )
        )
    else:
        log.warning("FINANCIAL_DATASETS_API_KEY not set; financial_search disabled")

    if config.tavily_api_key:
        web_search = build_web_search_tool(config.tavily_api_key)
        tools.append(
            RegisteredTool(
                name=web_search.name,
                tool=web_search,
                description=web_search.description,
            )
        )

    return tools


def build_tool_descriptions(tools: list[RegisteredTool]) -> str:
    """Format each tool's description under a header."""
    return "\n\n".join(f"### {t.name}\n\n{t.description}" for t in tools)
