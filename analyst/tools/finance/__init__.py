from langchain_core.tools import StructuredTool

from analyst.tools.finance.api import FinancialDatasetsClient
from analyst.tools.finance.fundamentals import build_fundamentals_tools
from analyst.tools.finance.prices import build_price_tools


def build_finance_tools(client: FinancialDatasetsClient) -> list[StructuredTool]:
    """All concrete financial data tools, sharing one API client."""
    return build_price_tools(client) + build_fundamentals_tools(client)


__all__ = ["FinancialDatasetsClient", "build_finance_tools"]
