"""
Tool contract.

Every tool, the router included, is a LangChain BaseTool with a name, a
description and a Pydantic args_schema. invoke_tool() is the single entry
point the agent uses: it validates arguments against the schema, races the
cancellation token and turns every failure into a ToolExecutionError.
"""

import asyncio
from typing import Any, Optional

from langchain_core.tools import BaseTool
from pydantic import ValidationError

from analyst.errors import RunCancelled, ToolExecutionError
from analyst.tools.types import stringify_result
from analyst.utils.cancellation import cancellable


def validate_args(tool: BaseTool, args: dict[str, Any]) -> dict[str, Any]:
    """Validate ``args`` against the tool's schema."""
    if not isinstance(args, dict):
        raise ToolExecutionError(
            f"Arguments for '{tool.name}' must be an object, got {type(args).__name__}",
            tool_name=tool.name,
        )

    schema = tool.args_schema
    if schema is None or not hasattr(schema, "model_validate"):
        return args

    try:
        schema.model_validate(args)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'args'}: {err['msg']}"
            for err in e.errors()
        )
        raise ToolExecutionError(
            f"Invalid arguments for '{tool.name}': {problems}", tool_name=tool.name
        ) from e
    return args


async def invoke_tool(
    tool: BaseTool,
    args: dict[str, Any],
    cancellation_token: Optional[asyncio.Event] = None,
) -> str:
    """Run a tool and return its result as text.

    Raises:
        ToolExecutionError: invalid arguments or any failure inside the tool.
        RunCancelled: the token was set while the tool was running.
    """
    validate_args(tool, args)

    try:
        result = await cancellable(
            tool.ainvoke(args),
            cancellation_token,
            f"Tool '{tool.name}' cancelled.",
        )
    except (RunCancelled, ToolExecutionError):
        raise
    except Exception as e:
        raise ToolExecutionError(str(e) or type(e).__name__, tool_name=tool.name) from e

    return stringify_result(result)
