"""
Tools available to the agent.

- base: tool contract (validation, cancellation, error wrapping)
- router: the financial_search meta-tool
- finance: concrete Financial Datasets API tools
- search: web search
- registry: assembles the outer tool set from config
"""

from analyst.tools.base import invoke_tool, validate_args
from analyst.tools.router import ToolRouter

__all__ = ["invoke_tool", "validate_args", "ToolRouter"]
