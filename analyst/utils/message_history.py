"""
MessageHistory keeps the session's conversation in memory; it is cleared
when the process restarts.

  - summarizes each answered turn
  - selects prior turns relevant to a new query (memoized by query hash)
  - formats selected turns for the first-iteration prompt
"""

import asyncio
import hashlib
import json
from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel, Field

from analyst.model.llm import ReasoningGateway, build_messages
from analyst.utils.logger import get_logger

log = get_logger(__name__)


MESSAGE_SUMMARY_SYSTEM_PROMPT = """You are the summarization component of a financial research agent.
Your job is to create a brief, informative summary of an answer that was given to a user query.

The summary should:
- Be 1-2 sentences maximum.
- Capture the key information and data points from the answer.
- Include specific entities mentioned (company names, ticker symbols, metrics, periods).
- Be useful for determining if the answer is relevant to future queries.

Example input:
{
    "query": "What was Apple's revenue last quarter?",
    "answer": "Apple reported revenue of $94.9B for the quarter ending September 2024, up 6% year over year."
}

Example output:
Apple (AAPL) quarterly revenue of $94.9B for Q4 FY2024, up 6% YoY.
"""


MESSAGE_SELECTION_SYSTEM_PROMPT = """You are the message selection component of a financial research agent.
Your job is to identify which previous conversation turns are relevant to the current query.

You will be given:
1. The current user query.
2. A list of previous conversation summaries.

Your task:
- Analyze which previous conversations contain context relevant to understanding or answering the current query.
- Consider if the current query references previous topics (e.g., "And what about Microsoft?" after discussing Apple's revenue).
- Select only messages that would help provide context for the current query.
- Return a JSON object with a "message_ids" field containing a list of IDs (0-indexed) of relevant messages.

If the current query is self-contained and doesn't reference previous context, return an empty list.

Return format:
{"message_ids": [0, 2]}
"""

ANSWER_PREVIEW_CHARS = 1500


# One conversation turn (query + answer + summary)
@dataclass
class Message:
    id: int
    query: str
    answer: str
    summary: str  # LLM-generated summary of the answer


class SelectedMessagesSchema(BaseModel):
    message_ids: list[int] = Field(
        ..., description="List of relevant message IDs (0-indexed)"
    )


def hash_query(query: str) -> str:
    """
    Generate a 12-character MD5 hash of the query.

    Example:
        >>> hash_query("hello world")
        '5eb63bbbe01e'
    """
    return hashlib.md5(query.encode()).hexdigest()[:12]


# In-memory conversation history for a multi-turn session.
# Stores user queries, final answers and LLM-generated summaries.
class MessageHistory:
    def __init__(
        self,
        gateway: ReasoningGateway,
        cancellation_token: Optional[asyncio.Event] = None,
    ) -> None:
        self.gateway = gateway
        self.cancellation_token = cancellation_token
        self.messages: list[Message] = []
        # query hash -> selected message ids; lives as long as the process
        self.relevant_ids_by_query: dict[str, list[int]] = {}
        self._lock = asyncio.Lock()

    async def generate_summary(
        self,
        query: str,
        answer: str,
        cancellation_token: Optional[asyncio.Event] = None,
    ) -> str:
        """Summarize a query/answer pair, falling back to a fixed label on failure."""
        answer_preview = answer[:ANSWER_PREVIEW_CHARS]
        prompt = f"""Query: {query}
Answer: {answer_preview}

Generate a brief 1-2 sentence summary of this answer.
"""

        try:
            response = await self.gateway.invoke(
                build_messages(prompt, MESSAGE_SUMMARY_SYSTEM_PROMPT),
                cancellation_token=cancellation_token or self.cancellation_token,
                fast=True,
            )
            summary = response.text.strip()
            log.debug(f"Generated summary: {summary}")
            return summary or f"Answer to: {query[:100]}"

        except Exception as e:
            log.warning(f"Summary generation failed, using fallback: {e}")
            return f"Answer to: {query[:100]}"

    async def add_message(
        self,
        query: str,
        answer: str,
        cancellation_token: Optional[asyncio.Event] = None,
    ) -> Message:
        """
        Summarize and append a completed turn.

        Returns:
            The appended Message
        """
        async with self._lock:
            summary = await self.generate_summary(query, answer, cancellation_token)
            message = Message(
                id=len(self.messages),
                query=query,
                answer=answer,
                summary=summary,
            )
            self.messages.append(message)
            log.debug(f"Added message {message.id} to history: summary={summary}")
            return message

    async def select_relevant_messages(
        self,
        current_query: str,
        cancellation_token: Optional[asyncio.Event] = None,
    ) -> list[Message]:
        """
        Use the LLM to select which prior turns are relevant to the current query.
        Results are cached by query hash so repeating a query costs no LLM call.
        """
        async with self._lock:
            if not self.messages:
                return []

            cache_key = hash_query(current_query)
            cached = self.relevant_ids_by_query.get(cache_key)
            if cached is not None:
                log.debug(f"Relevance cache hit for key={cache_key}")
                return [self.messages[i] for i in cached]

            messages_info = [
                {
                    "id": message.id,
                    "query": message.query,
                    "summary": message.summary,
                } for message in self.messages
            ]  # fmt: skip

            prompt = f"""Current user query: {current_query}

Previous Conversations:
{json.dumps(messages_info, ensure_ascii=False, indent=2)}

Select which previous messages are relevant to understanding or answering the current query.
"""

            try:
                response = await self.gateway.invoke_structured(
                    build_messages(prompt, MESSAGE_SELECTION_SYSTEM_PROMPT),
                    SelectedMessagesSchema,
                    cancellation_token=cancellation_token or self.cancellation_token,
                    fast=True,
                )
            except Exception as e:
                # Don't inject potentially irrelevant context
                log.warning(f"Message selection failed: {e}")
                return []

            selected_ids = self._parse_selected_ids(response)
            self.relevant_ids_by_query[cache_key] = selected_ids
            return [self.messages[i] for i in selected_ids]

    def _parse_selected_ids(self, response: object) -> list[int]:
        """Keep valid, in-range ids in first-seen order."""
        if isinstance(response, SelectedMessagesSchema):
            raw_ids: object = response.message_ids
        elif isinstance(response, dict):
            raw_ids = response.get("message_ids")
        else:
            raw_ids = None

        if not isinstance(raw_ids, list):
            return []

        selected: list[int] = []
        for idx in raw_ids:
            if (
                isinstance(idx, int)
                and not isinstance(idx, bool)
                and 0 <= idx < len(self.messages)
                and idx not in selected
            ):
                selected.append(idx)
        return selected

    def format_for_planning(self, messages: list[Message]) -> str:
        """Format selected messages (query + summary) for the first-iteration prompt."""
        if not messages:
            return ""

        return "\n\n".join(
            f"User: {message.query}\nAssistant: {message.summary}"
            for message in messages
        )

    def get_messages(self) -> list[Message]:
        return self.messages.copy()

    def get_user_messages(self) -> list[str]:
        return [message.query for message in self.messages]

    def has_messages(self) -> bool:
        return len(self.messages) > 0

    def clear(self) -> None:
        """Forget all messages and cached selections."""
        self.messages.clear()
        self.relevant_ids_by_query.clear()
