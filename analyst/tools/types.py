"""
Type definitions and utility functions for tool execution results.

This module provides:
- ToolResult: A Pydantic model for structured tool outputs
- format_tool_result: Serializes tool results to JSON strings
- stringify_result: Normalizes whatever a tool returned into text
- get_tool_description: Human-readable label for a tool call
"""

import json
from typing import Any, Optional

from pydantic import BaseModel, Field


class ToolResult(BaseModel):
    data: Any = Field(..., description="The result data from the tool execution.")
    source_urls: Optional[list[str]] = Field(
        None,
        description="Optional list of source URLs related to the result.",
    )


def format_tool_result(data: Any, source_urls: Optional[list[str]] = None) -> str:
    """Format tool result as JSON string."""
    result = ToolResult(data=data, source_urls=source_urls)
    return result.model_dump_json()


def stringify_result(result: Any) -> str:
    """Tools should return text; anything else is JSON-encoded."""
    if isinstance(result, str):
        return result
    if isinstance(result, BaseModel):
        return result.model_dump_json()
    return json.dumps(result, ensure_ascii=False, default=str)


def get_tool_description(tool_name: str, args: dict[str, Any]) -> str:
    """Short label for a tool call, e.g. 'get_prices(AAPL, from 2024-01-01 to 2024-03-31)'."""
    parts: list[str] = []
    used_keys: set[str] = set()

    for key in ("query", "ticker"):
        if args.get(key):
            parts.append(str(args[key]))
            used_keys.add(key)

    if args.get("start_date") and args.get("end_date"):
        parts.append(f"from {args['start_date']} to {args['end_date']}")
        used_keys.update({"start_date", "end_date"})

    parts.extend(f"{k}={v}" for k, v in args.items() if k not in used_keys)

    return f"{tool_name}({', '.join(parts)})" if parts else tool_name
