from typing import Literal, Optional

from langchain_core.tools import StructuredTool
from pydantic import BaseModel, Field

from analyst.tools.finance.api import FinancialDatasetsClient
from analyst.tools.types import format_tool_result


class PriceSnapshotInput(BaseModel):
    ticker: str = Field(..., description="Stock ticker symbol, e.g. 'AAPL'.")


class PricesInput(BaseModel):
    ticker: str = Field(..., description="Stock ticker symbol, e.g. 'AAPL'.")
    start_date: str = Field(..., description="Start date in YYYY-MM-DD format.")
    end_date: str = Field(..., description="End date in YYYY-MM-DD format.")
    interval: Literal["minute", "day", "week", "month", "year"] = Field(
        "day", description="Price bar interval."
    )
    interval_multiplier: int = Field(
        1, ge=1, description="Number of intervals per bar (e.g. 5 with 'minute')."
    )


def build_price_tools(client: FinancialDatasetsClient) -> list[StructuredTool]:
    async def get_price_snapshot(ticker: str) -> str:
        data = await client.get("/prices/snapshot/", {"ticker": ticker})
        snapshot = data.get("snapshot")
        if not snapshot:
            return f"No price snapshot found for {ticker}."
        return format_tool_result(snapshot)

    async def get_prices(
        ticker: str,
        start_date: str,
        end_date: str,
        interval: str = "day",
        interval_multiplier: int = 1,
    ) -> str:
        data = await client.get(
            "/prices/",
            {
                "ticker": ticker,
                "interval": interval,
                "interval_multiplier": interval_multiplier,
                "start_date": start_date,
                "end_date": end_date,
            },
        )
        prices: Optional[list] = data.get("prices")
        if not prices:
            return f"No prices found for {ticker} between {start_date} and {end_date}."
        return format_tool_result(prices)

    return [
        StructuredTool.from_function(
            coroutine=get_price_snapshot,
            name="get_price_snapshot",
            description="Fetch the latest price snapshot (price, change, volume) for a stock ticker.",
            args_schema=PriceSnapshotInput,
        ),
        StructuredTool.from_function(
            coroutine=get_prices,
            name="get_prices",
            description="Fetch historical price bars for a stock ticker over a date range.",
            args_schema=PricesInput,
        ),
    ]
