from analyst.tools.search.tavily import build_web_search_tool

__all__ = ["build_web_search_tool"]
