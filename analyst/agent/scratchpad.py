"""
Append-only scratchpad for tracking agent work on a query.

Uses JSONL format (newline-delimited JSON) for resilient appending.
Files are persisted in the scratchpad directory for debugging/history.

This is the single source of truth for all agent work on a query:
- An in-memory index (tool names, args, summaries) serves the loop prompts
- Full tool results are re-read from disk only for the final answer

Includes soft limit warnings to guide the LLM:
- Tool call counting with suggested limits (warnings, not blocks)
- Query similarity detection to help prevent retry loops
"""

import hashlib
import json
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Union

from analyst.agent.types import ToolCallRecord
from analyst.tools.types import get_tool_description
from analyst.utils.logger import get_logger

log = get_logger(__name__)


# ============================================================================
# Entry Types
# ============================================================================


@dataclass(frozen=True)
class InitEntry:
    query: str
    timestamp: str
    type: str = "init"


@dataclass(frozen=True)
class ThinkingEntry:
    text: str
    timestamp: str
    type: str = "thinking"


@dataclass(frozen=True)
class ToolResultEntry:
    tool_name: str
    args: dict[str, Any]
    result: str
    summary: str
    timestamp: str
    type: str = "tool_result"


ScratchpadEntry = Union[InitEntry, ThinkingEntry, ToolResultEntry]


def entry_to_record(entry: ScratchpadEntry) -> dict[str, Any]:
    """Serialize an entry to its persisted JSON object."""
    if isinstance(entry, InitEntry):
        return {"type": entry.type, "timestamp": entry.timestamp, "query": entry.query}
    if isinstance(entry, ThinkingEntry):
        return {"type": entry.type, "timestamp": entry.timestamp, "text": entry.text}
    return {
        "type": entry.type,
        "timestamp": entry.timestamp,
        "toolName": entry.tool_name,
        "args": entry.args,
        "result": entry.result,
        "summary": entry.summary,
    }


def entry_from_record(data: dict[str, Any]) -> Optional[ScratchpadEntry]:
    """Parse a persisted JSON object; unknown record types return None."""
    entry_type = data.get("type")
    timestamp = data.get("timestamp", "")
    if entry_type == "init":
        return InitEntry(query=data.get("query", ""), timestamp=timestamp)
    if entry_type == "thinking":
        return ThinkingEntry(text=data.get("text", ""), timestamp=timestamp)
    if entry_type == "tool_result":
        return ToolResultEntry(
            tool_name=data.get("toolName", ""),
            args=data.get("args") or {},
            result=data.get("result", ""),
            summary=data.get("summary", ""),
            timestamp=timestamp,
        )
    return None


# ============================================================================
# Data Types
# ============================================================================


@dataclass
class ToolContext:
    """Full context data for final answer generation."""

    tool_name: str
    args: dict[str, Any]
    result: str


@dataclass
class ToolLimitConfig:
    """Tool call limit configuration."""

    max_calls_per_tool: int = 3
    similarity_threshold: float = 0.7


@dataclass
class ToolUsageStatus:
    """Status of tool usage for graceful exit mechanism."""

    tool_name: str
    call_count: int
    max_calls: int
    remaining_calls: int
    recent_queries: list[str] = field(default_factory=list)


@dataclass
class ToolLimitCheck:
    """Soft-limit guidance for a tool call. Never blocks the call."""

    warning: Optional[str] = None


# ============================================================================
# Scratchpad Implementation
# ============================================================================


class Scratchpad:
    """
    Append-only scratchpad for one agent run.

    Usage:
        scratchpad = Scratchpad("What is AAPL's P/E?")
        scratchpad.add_tool_result("financial_search", {"query": "..."}, result, summary)
        scratchpad.get_tool_summaries()
    """

    def __init__(
        self,
        query: str,
        scratchpad_dir: str = ".analyst/scratchpad",
        limit_config: Optional[ToolLimitConfig] = None,
    ):
        self.query = query
        self.scratchpad_dir = Path(scratchpad_dir)
        self.limit_config = limit_config or ToolLimitConfig()

        # In-memory index; tool_result entries here carry no payload
        self._entries: list[ScratchpadEntry] = []

        # In-memory tracking for tool limits
        self.tool_call_counts: dict[str, int] = {}
        self.tool_queries: dict[str, list[str]] = {}

        self.scratchpad_dir.mkdir(parents=True, exist_ok=True)
        self.filepath = self._unique_filepath(query)

        self._append(InitEntry(query=query, timestamp=datetime.now().isoformat()))
        log.debug(f"Scratchpad created at {self.filepath}")

    def _unique_filepath(self, query: str) -> Path:
        """<timestamp>_<query hash>.jsonl, suffixed if a run already claimed it."""
        query_hash = hashlib.md5(query.encode()).hexdigest()[:12]
        timestamp = datetime.now().strftime("%Y-%m-%d-%H%M%S-%f")
        base = f"{timestamp}_{query_hash}"

        candidate = self.scratchpad_dir / f"{base}.jsonl"
        suffix = 1
        while candidate.exists():
            candidate = self.scratchpad_dir / f"{base}-{suffix}.jsonl"
            suffix += 1
        return candidate

    # ========================================================================
    # Core Methods
    # ========================================================================

    def add_tool_result(
        self,
        tool_name: str,
        args: dict[str, Any],
        result: str,
        summary: str,
    ) -> None:
        """Append a tool result with its full payload and its summary."""
        self._append(
            ToolResultEntry(
                tool_name=tool_name,
                args=dict(args),
                result=result,
                summary=summary,
                timestamp=datetime.now().isoformat(),
            )
        )

    def add_thinking(self, text: str) -> None:
        """Append thinking/reasoning."""
        self._append(ThinkingEntry(text=text, timestamp=datetime.now().isoformat()))

    # ========================================================================
    # Query Methods
    # ========================================================================

    @property
    def entries(self) -> list[ScratchpadEntry]:
        """Entries in append order (tool results without their payload)."""
        return list(self._entries)

    def has_tool_results(self) -> bool:
        return any(isinstance(e, ToolResultEntry) for e in self._entries)

    def get_tool_summaries(self) -> list[str]:
        """Summaries for the iteration prompt, as "tool(args): summary".

        Served from memory; never touches tool payloads.
        """
        return [
            f"{get_tool_description(e.tool_name, e.args)}: {e.summary}"
            for e in self._entries
            if isinstance(e, ToolResultEntry)
        ]

    def get_full_contexts(self) -> list[ToolContext]:
        """Reload full tool results from the log for final answer generation."""
        return [
            ToolContext(tool_name=e.tool_name, args=e.args, result=e.result)
            for e in self.read_log(self.filepath)
            if isinstance(e, ToolResultEntry)
        ]

    def get_tool_call_records(
        self, contexts: Optional[list[ToolContext]] = None
    ) -> list[ToolCallRecord]:
        """Tool call records for DoneEvent. Pass already loaded contexts to skip a re-read."""
        if contexts is None:
            contexts = self.get_full_contexts()
        return [
            ToolCallRecord(tool=c.tool_name, args=c.args, result=c.result)
            for c in contexts
        ]

    # ========================================================================
    # Tool Limit / Graceful Exit Methods
    # ========================================================================

    def can_call_tool(self, tool_name: str, query: Optional[str] = None) -> ToolLimitCheck:
        """
        Check if a tool call can proceed. Always allows the call but returns a
        warning to guide the LLM when limits are approached or exceeded.
        """
        current_count = self.tool_call_counts.get(tool_name, 0)
        max_calls = self.limit_config.max_calls_per_tool

        if current_count >= max_calls:
            return ToolLimitCheck(
                warning=(
                    f"Tool '{tool_name}' has been called {current_count} times "
                    f"(suggested limit: {max_calls}). If previous calls didn't return "
                    f"the needed data, try a different tool, use different search terms, "
                    f"or proceed with what you have and note the data gaps."
                ),
            )

        if query:
            similar_query = self._find_similar_query(query, self.tool_queries.get(tool_name, []))
            if similar_query:
                remaining = max_calls - current_count
                return ToolLimitCheck(
                    warning=(
                        f"This query is very similar to a previous '{tool_name}' call "
                        f"({similar_query!r}). {remaining} attempt(s) left before the "
                        f"suggested limit."
                    ),
                )

        if current_count == max_calls - 1:
            return ToolLimitCheck(
                warning=(
                    f"Approaching the suggested limit for '{tool_name}' "
                    f"({current_count + 1}/{max_calls})."
                ),
            )

        return ToolLimitCheck()

    def record_tool_call(self, tool_name: str, query: Optional[str] = None) -> None:
        """Record a tool call attempt. Call this AFTER the tool executes."""
        self.tool_call_counts[tool_name] = self.tool_call_counts.get(tool_name, 0) + 1
        if query:
            self.tool_queries.setdefault(tool_name, []).append(query)

    def get_tool_usage_status(self) -> list[ToolUsageStatus]:
        max_calls = self.limit_config.max_calls_per_tool
        return [
            ToolUsageStatus(
                tool_name=tool_name,
                call_count=call_count,
                max_calls=max_calls,
                remaining_calls=max(0, max_calls - call_count),
                recent_queries=self.tool_queries.get(tool_name, [])[-3:],
            )
            for tool_name, call_count in self.tool_call_counts.items()
        ]

    def format_tool_usage_for_prompt(self) -> Optional[str]:
        """Format tool usage status for injection into iteration prompts."""
        statuses = self.get_tool_usage_status()
        if not statuses:
            return None

        lines = []
        for s in statuses:
            if s.call_count >= s.max_calls:
                status = f"{s.call_count} calls (over suggested limit of {s.max_calls})"
            else:
                status = f"{s.call_count}/{s.max_calls} calls"
            lines.append(f"- {s.tool_name}: {status}")

        return (
            "## Tool Usage This Query\n\n"
            + "\n".join(lines)
            + "\n\nNote: If a tool isn't returning useful results after several "
            "attempts, consider trying a different tool/approach."
        )

    # ========================================================================
    # Persistence
    # ========================================================================

    def _append(self, entry: ScratchpadEntry) -> None:
        """Write the entry to disk, then index it in memory."""
        record = entry_to_record(entry)
        with open(self.filepath, "a", encoding="utf-8") as f:
            f.write(json.dumps(record, ensure_ascii=False, default=str) + "\n")
            f.flush()

        if isinstance(entry, ToolResultEntry):
            # Keep the payload on disk only
            entry = ToolResultEntry(
                tool_name=entry.tool_name,
                args=entry.args,
                result="",
                summary=entry.summary,
                timestamp=entry.timestamp,
            )
        self._entries.append(entry)

    @staticmethod
    def read_log(filepath: Union[str, Path]) -> list[ScratchpadEntry]:
        """Read a persisted scratchpad, skipping corrupt or partial lines."""
        path = Path(filepath)
        if not path.exists():
            return []

        entries: list[ScratchpadEntry] = []
        with open(path, "r", encoding="utf-8") as f:
            for line_no, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    data = json.loads(line)
                except json.JSONDecodeError:
                    log.warning(f"Skipping corrupt scratchpad line {line_no} in {path}")
                    continue
                entry = entry_from_record(data) if isinstance(data, dict) else None
                if entry is not None:
                    entries.append(entry)
        return entries

    # ========================================================================
    # Private Methods
    # ========================================================================

    def _find_similar_query(self, new_query: str, previous_queries: list[str]) -> Optional[str]:
        """Return a previous query that is too similar to ``new_query``."""
        new_words = self._tokenize(new_query)
        for prev_query in previous_queries:
            if new_query == prev_query:
                return prev_query
            similarity = self._calculate_similarity(new_words, self._tokenize(prev_query))
            if similarity >= self.limit_config.similarity_threshold:
                return prev_query
        return None

    def _tokenize(self, query: str) -> set[str]:
        """Normalized word set; Unicode-aware so CJK text also works."""
        words = re.sub(r"[^\w\s]", " ", query.lower(), flags=re.UNICODE).split()
        return {w for w in words if len(w) > 1}

    def _calculate_similarity(self, set1: set[str], set2: set[str]) -> float:
        """Jaccard similarity of two word sets."""
        if not set1 or not set2:
            return 0.0
        return len(set1 & set2) / len(set1 | set2)
