import json

from langchain_core.tools import StructuredTool
from langchain_tavily import TavilySearch
from pydantic import BaseModel, Field

from analyst.tools.types import format_tool_result


class WebSearchInput(BaseModel):
    query: str = Field(..., description="The search query to look up on the web.")


def build_web_search_tool(api_key: str, max_results: int = 5) -> StructuredTool:
    """Web search backed by Tavily."""
    tavily_client = TavilySearch(max_results=max_results, tavily_api_key=api_key)

    async def web_search(query: str) -> str:
        result = await tavily_client.ainvoke({"query": query})

        parsed = json.loads(result) if isinstance(result, str) else result
        results = parsed.get("results", []) if isinstance(parsed, dict) else []
        if not results:
            return f"No web results found for: {query}"

        urls = [r["url"] for r in results if isinstance(r, dict) and r.get("url")]
        return format_tool_result(data=parsed, source_urls=urls)

    return StructuredTool.from_function(
        coroutine=web_search,
        name="web_search",
        description=(
            "Search the web for current information: news, company events, "
            "analyst commentary, and anything not covered by financial_search."
        ),
        args_schema=WebSearchInput,
    )
