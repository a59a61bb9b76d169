"""
Reasoning service gateway.

Wraps a LangChain chat model behind a uniform invoke/stream contract:
- invoke: one completion, optionally with tools bound, returns text + tool calls
- invoke_structured: one completion parsed into a Pydantic schema
- stream: lazy sequence of text fragments

Every call is retried with exponential backoff and races the run's
cancellation token. The provider is chosen once, in create_gateway().
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Optional, Protocol, Sequence

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import (
    AIMessage,
    BaseMessage,
    HumanMessage,
    SystemMessage,
)
from langchain_openai import ChatOpenAI

from analyst.errors import GatewayError, RunCancelled
from analyst.utils.cancellation import cancellable, iterate_cancellable
from analyst.utils.logger import get_logger

log = get_logger(__name__)


DEFAULT_MODEL = "gpt-4.1"
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_BASE_DELAY = 0.5  # seconds, doubled after each failed attempt
DEFAULT_TIMEOUT = 60


class Provider(str, Enum):
    """Supported reasoning service backends (all OpenAI-compatible)."""

    OPENAI = "openai"
    OPENROUTER = "openrouter"
    OLLAMA = "ollama"


PROVIDER_BASE_URLS: dict[Provider, Optional[str]] = {
    Provider.OPENAI: None,
    Provider.OPENROUTER: "https://openrouter.ai/api/v1",
    Provider.OLLAMA: "http://localhost:11434/v1",
}


# ======================================================================
## Response Types
# ======================================================================


@dataclass
class ToolCall:
    """A tool invocation requested by the model."""

    name: str
    args: dict[str, Any] = field(default_factory=dict)
    id: Optional[str] = None


@dataclass
class GatewayResponse:
    """Provider-agnostic result of a single invoke() call."""

    text: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


class ReasoningGateway(Protocol):
    """What the agent core needs from a language-model backend."""

    async def invoke(
        self,
        messages: Sequence[BaseMessage],
        tools: Optional[Sequence[Any]] = None,
        cancellation_token: Optional[asyncio.Event] = None,
        fast: bool = False,
    ) -> GatewayResponse: ...

    async def invoke_structured(
        self,
        messages: Sequence[BaseMessage],
        output_schema: type,
        cancellation_token: Optional[asyncio.Event] = None,
        fast: bool = False,
    ) -> Any: ...

    def stream(
        self,
        messages: Sequence[BaseMessage],
        cancellation_token: Optional[asyncio.Event] = None,
        fast: bool = False,
    ) -> AsyncIterator[str]: ...


# ======================================================================
## Helpers
# ======================================================================


def build_messages(prompt: str, system_prompt: Optional[str] = None) -> list[BaseMessage]:
    """Build a system + user message list."""
    messages: list[BaseMessage] = []
    if system_prompt:
        messages.append(SystemMessage(content=system_prompt))
    messages.append(HumanMessage(content=prompt))
    return messages


def extract_text_content(content: Any) -> str:
    """Flatten message content (str or list of content blocks) to text."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            block.get("text", "") if isinstance(block, dict) else str(block)
            for block in content
        )
    return ""


def to_gateway_response(message: AIMessage) -> GatewayResponse:
    """Convert an AIMessage into a GatewayResponse."""
    return GatewayResponse(
        text=extract_text_content(message.content),
        tool_calls=[
            ToolCall(
                name=tc.get("name", ""),
                args=tc.get("args") or {},
                id=tc.get("id"),
            )
            for tc in (message.tool_calls or [])
        ],
    )


# ======================================================================
## LangChain Gateway
# ======================================================================


class ChatModelGateway:
    """
    ReasoningGateway over LangChain chat models.

    Usage:
        gateway = create_gateway(Provider.OPENAI, model="gpt-4.1", api_key="...")
        response = await gateway.invoke(build_messages("Hello"))
    """

    def __init__(
        self,
        chat_model: BaseChatModel,
        fast_chat_model: Optional[BaseChatModel] = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY,
    ):
        self.chat_model = chat_model
        self.fast_chat_model = fast_chat_model or chat_model
        self.max_retries = max(1, max_retries)
        self.retry_base_delay = retry_base_delay

    def _select_model(self, fast: bool) -> BaseChatModel:
        # The fast model serves summaries and tool routing
        return self.fast_chat_model if fast else self.chat_model

    async def _with_retry(
        self,
        operation: str,
        call,
        cancellation_token: Optional[asyncio.Event],
    ):
        """Run ``call()`` with exponential backoff; raise GatewayError when exhausted."""
        last_error: Optional[BaseException] = None

        for attempt in range(self.max_retries):
            try:
                return await cancellable(call(), cancellation_token)
            except RunCancelled:
                raise
            except Exception as e:
                last_error = e
                if attempt + 1 >= self.max_retries:
                    break
                delay = self.retry_base_delay * (2**attempt)
                log.warning(
                    f"{operation} failed (attempt {attempt + 1}/{self.max_retries}): "
                    f"{e}; retrying in {delay:.1f}s"
                )
                await cancellable(asyncio.sleep(delay), cancellation_token)

        log.error(f"{operation} failed after {self.max_retries} attempts: {last_error}")
        raise GatewayError(
            f"{operation} failed after {self.max_retries} attempts: {last_error}",
            attempts=self.max_retries,
        ) from last_error

    async def invoke(
        self,
        messages: Sequence[BaseMessage],
        tools: Optional[Sequence[Any]] = None,
        cancellation_token: Optional[asyncio.Event] = None,
        fast: bool = False,
    ) -> GatewayResponse:
        llm: Any = self._select_model(fast)
        if tools:
            llm = llm.bind_tools(list(tools))

        log.debug(f"Invoking model: tools={len(tools or [])}, messages={len(messages)}")
        response = await self._with_retry(
            "invoke", lambda: llm.ainvoke(list(messages)), cancellation_token
        )
        if not isinstance(response, AIMessage):
            raise GatewayError(f"Malformed response type: {type(response).__name__}")
        return to_gateway_response(response)

    async def invoke_structured(
        self,
        messages: Sequence[BaseMessage],
        output_schema: type,
        cancellation_token: Optional[asyncio.Event] = None,
        fast: bool = False,
    ) -> Any:
        llm = self._select_model(fast).with_structured_output(
            output_schema, method="json_mode"
        )
        return await self._with_retry(
            "invoke_structured", lambda: llm.ainvoke(list(messages)), cancellation_token
        )

    async def stream(
        self,
        messages: Sequence[BaseMessage],
        cancellation_token: Optional[asyncio.Event] = None,
        fast: bool = False,
    ) -> AsyncIterator[str]:
        """Yield text fragments. Retries only until the first fragment arrives."""
        llm = self._select_model(fast)
        yielded = False

        for attempt in range(self.max_retries):
            try:
                async for chunk in iterate_cancellable(
                    llm.astream(list(messages)), cancellation_token
                ):
                    text = extract_text_content(getattr(chunk, "content", ""))
                    # Skip empty chunks (metadata only)
                    if text:
                        yielded = True
                        yield text
                return
            except RunCancelled:
                raise
            except Exception as e:
                if yielded:
                    raise GatewayError(f"stream interrupted: {e}", attempts=attempt + 1) from e
                if attempt + 1 >= self.max_retries:
                    raise GatewayError(
                        f"stream failed after {self.max_retries} attempts: {e}",
                        attempts=self.max_retries,
                    ) from e
                delay = self.retry_base_delay * (2**attempt)
                log.warning(f"stream failed (attempt {attempt + 1}): {e}; retrying in {delay:.1f}s")
                await cancellable(asyncio.sleep(delay), cancellation_token)


# ======================================================================
## Provider Selection
# ======================================================================


def _build_chat_model(
    provider: Provider,
    model: str,
    api_key: Optional[str],
    base_url: Optional[str],
    timeout: int,
) -> ChatOpenAI:
    """Initialise a ChatOpenAI client for an OpenAI-compatible provider."""
    if provider != Provider.OLLAMA and not api_key:
        raise ValueError(f"An API key is required for provider '{provider.value}'.")

    return ChatOpenAI(
        model=model,
        # Ollama ignores the key but the client requires one
        api_key=api_key or "ollama",
        base_url=base_url or PROVIDER_BASE_URLS[provider],
        timeout=timeout,
        max_retries=0,
    )


def create_gateway(
    provider: Provider | str = Provider.OPENAI,
    model: str = DEFAULT_MODEL,
    api_key: Optional[str] = None,
    base_url: Optional[str] = None,
    fast_model: Optional[str] = None,
    max_retries: int = DEFAULT_MAX_RETRIES,
    retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY,
    timeout: int = DEFAULT_TIMEOUT,
) -> ChatModelGateway:
    """Resolve a provider into a concrete gateway."""
    provider = Provider(provider)
    chat_model = _build_chat_model(provider, model, api_key, base_url, timeout)
    fast_chat_model = (
        _build_chat_model(provider, fast_model, api_key, base_url, timeout)
        if fast_model and fast_model != model
        else None
    )
    log.info(f"Gateway ready: provider={provider.value}, model={model}")
    return ChatModelGateway(
        chat_model,
        fast_chat_model=fast_chat_model,
        max_retries=max_retries,
        retry_base_delay=retry_base_delay,
    )
