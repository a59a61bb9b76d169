import json
from datetime import datetime
from typing import Any, Optional

# ======================================================================
# Helper Time Function
# ======================================================================


def get_current_time() -> str:
    """Returns the current date formatted for prompts.

    Returns:
        str: such as 'Thursday, January 22, 2026'
    """
    return datetime.now().strftime("%A, %B %d, %Y")


# ======================================================================
# Agent System Prompt
# ======================================================================

SYSTEM_PROMPT_TEMPLATE = """You are a financial research agent.

Current date: {current_date}

You answer research questions about companies, markets and the economy.
You are equipped with tools to gather data. Be methodical: decide what data
you need, call tools to fetch it, then answer.

## Working Rules

- If you can answer directly (greetings, definitions, general knowledge), answer without tools.
- Otherwise call tools. Prefer one broad financial_search per distinct question over many narrow calls.
- Review the summaries of data you have already gathered before calling a tool again.
- Don't repeat a call that already succeeded. If a tool failed, adjust the request or try another tool.
- When you have enough data, reply WITHOUT calling any tools. The final answer is written in a separate step.

## Available Tools

{tool_descriptions}
"""


def get_system_prompt(tool_descriptions: str = "") -> str:
    """Agent system prompt with today's date and the tool descriptions."""
    return SYSTEM_PROMPT_TEMPLATE.format(
        current_date=get_current_time(),
        tool_descriptions=tool_descriptions or "No tools are available; answer directly.",
    )


# ======================================================================
# Iteration Prompts
# ======================================================================


def build_initial_prompt(query: str, conversation_context: Optional[str] = None) -> str:
    """First iteration: the query plus summaries of relevant prior turns."""
    context_section = (
        f"""Previous conversation (for context):
{conversation_context}

---
"""
        if conversation_context else ""
    )  # fmt: skip

    return f"""{context_section}
Query: {query}"""


def build_iteration_prompt(
    query: str,
    tool_summaries: list[str],
    tool_usage: Optional[str] = None,
) -> str:
    """Later iterations: the query plus compact summaries of gathered data.

    Only summaries go in here, never full tool results.
    """
    summaries = "\n".join(f"- {s}" for s in tool_summaries) or "- (none yet)"
    usage_section = f"\n\n{tool_usage}" if tool_usage else ""

    return f"""Query: {query}

## Data Gathered So Far

{summaries}{usage_section}

Review the data above. If you have enough to answer the query, respond without calling tools.
Otherwise call the tools needed to fill the gaps."""


# ======================================================================
# Final Answer Prompts
# ======================================================================

FINAL_ANSWER_SYSTEM_PROMPT = f"""You are the answer component of a financial research agent.

Current date: {get_current_time()}

Write the final answer to the user's query using the data provided.

Guidelines:
- Lead with the direct answer, then supporting detail.
- Cite specific numbers, dates and periods from the data.
- If some data could not be retrieved, say what is missing instead of guessing.
- Use short sections or tables when comparing several figures.
- Do not mention tools, prompts or internal steps.
"""


def build_final_answer_prompt(query: str, full_context: str) -> str:
    """Final answer: the query plus the full, uncompacted tool results."""
    return f"""Query: {query}

## Data

{full_context}

Answer the query using the data above."""


# ======================================================================
# Tool Summary Prompts (context compaction)
# ======================================================================

TOOL_SUMMARY_SYSTEM_PROMPT = "You are a concise data summarizer."


def build_tool_summary_prompt(
    query: str,
    tool_name: str,
    tool_args: dict[str, Any],
    result: str,
    max_result_chars: int = 6000,
) -> str:
    """Ask for a one-line summary of a tool result."""
    preview = result[:max_result_chars]
    args = json.dumps(tool_args, ensure_ascii=False, default=str)

    return f"""User query: {query}
Tool: {tool_name}
Arguments: {args}

Result:
{preview}

Summarize this result in one sentence. Include the key entities, periods and
figures it contains, or state that it returned no useful data."""

