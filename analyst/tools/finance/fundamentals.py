"""
Financial statement and news tools.

The three statement tools share one input schema and differ only in the
endpoint and response key, so they're generated from STATEMENT_ENDPOINTS.
"""

from typing import Literal

from langchain_core.tools import StructuredTool
from pydantic import BaseModel, Field

from analyst.tools.finance.api import FinancialDatasetsClient
from analyst.tools.types import format_tool_result


class StatementsInput(BaseModel):
    ticker: str = Field(..., description="Stock ticker symbol, e.g. 'AAPL'.")
    period: Literal["annual", "quarterly", "ttm"] = Field(
        "annual", description="Reporting period."
    )
    limit: int = Field(4, ge=1, le=40, description="Number of periods to return.")


class NewsInput(BaseModel):
    ticker: str = Field(..., description="Stock ticker symbol, e.g. 'AAPL'.")
    limit: int = Field(5, ge=1, le=50, description="Maximum number of articles.")


# tool name -> (path, response key, description)
STATEMENT_ENDPOINTS: dict[str, tuple[str, str, str]] = {
    "get_income_statements": (
        "/financials/income-statements/",
        "income_statements",
        "Fetch income statements (revenue, expenses, net income, EPS) for a company.",
    ),
    "get_balance_sheets": (
        "/financials/balance-sheets/",
        "balance_sheets",
        "Fetch balance sheets (assets, liabilities, equity) for a company.",
    ),
    "get_cash_flow_statements": (
        "/financials/cash-flow-statements/",
        "cash_flow_statements",
        "Fetch cash flow statements (operating, investing, financing) for a company.",
    ),
}


def _statement_tool(
    client: FinancialDatasetsClient, name: str, path: str, key: str, description: str
) -> StructuredTool:
    async def fetch(ticker: str, period: str = "annual", limit: int = 4) -> str:
        data = await client.get(path, {"ticker": ticker, "period": period, "limit": limit})
        rows = data.get(key)
        if not rows:
            return f"No {key.replace('_', ' ')} found for {ticker} ({period})."
        return format_tool_result(rows)

    return StructuredTool.from_function(
        coroutine=fetch,
        name=name,
        description=description,
        args_schema=StatementsInput,
    )


def build_fundamentals_tools(client: FinancialDatasetsClient) -> list[StructuredTool]:
    tools = [
        _statement_tool(client, name, path, key, description)
        for name, (path, key, description) in STATEMENT_ENDPOINTS.items()
    ]

    async def get_news(ticker: str, limit: int = 5) -> str:
        data = await client.get("/news/", {"ticker": ticker, "limit": limit})
        articles = data.get("news")
        if not articles:
            return f"No recent news found for {ticker}."
        urls = [a["url"] for a in articles if isinstance(a, dict) and a.get("url")]
        return format_tool_result(articles, source_urls=urls or None)

    tools.append(
        StructuredTool.from_function(
            coroutine=get_news,
            name="get_news",
            description="Fetch recent news articles about a company.",
            args_schema=NewsInput,
        )
    )
    return tools
