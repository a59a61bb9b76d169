"""
Core Agent implementation.

This is the agent engine. It handles:
- The main agent loop (query → tools → answer)
- Tool execution and result tracking
- Context compaction with LLM summaries
- Event streaming through a bounded EventChannel
- Multi-turn context via MessageHistory
"""

import json
import time
from contextlib import aclosing
from typing import Any, Awaitable, Callable, Optional

from langchain_core.tools import BaseTool

from analyst.agent.channel import AgentRun, EventChannel
from analyst.agent.prompts import (
    FINAL_ANSWER_SYSTEM_PROMPT,
    TOOL_SUMMARY_SYSTEM_PROMPT,
    build_final_answer_prompt,
    build_initial_prompt,
    build_iteration_prompt,
    build_tool_summary_prompt,
    get_system_prompt,
)
from analyst.agent.scratchpad import Scratchpad, ToolContext
from analyst.agent.types import (
    AgentEvent,
    AnswerChunkEvent,
    AnswerStartEvent,
    DoneEvent,
    ThinkingEvent,
    ToolCallRecord,
    ToolEndEvent,
    ToolErrorEvent,
    ToolStartEvent,
)
from analyst.config import AgentConfig
from analyst.errors import IterationBudgetExceeded, RunCancelled, ToolExecutionError
from analyst.model.llm import ReasoningGateway, build_messages, create_gateway
from analyst.tools.base import invoke_tool
from analyst.tools.registry import (
    RegisteredTool,
    build_tool_descriptions,
    get_tool_registry,
)
from analyst.tools.types import get_tool_description
from analyst.utils.cancellation import raise_if_cancelled
from analyst.utils.logger import get_logger
from analyst.utils.message_history import MessageHistory

log = get_logger(__name__)

Emit = Callable[[AgentEvent], Awaitable[None]]


class Agent:
    """
    Core agent that handles the agent loop and tool execution.

    Usage:
        agent = Agent.create(AgentConfig.from_env())
        async with agent.run("What is Apple's P/E?", history) as run:
            async for event in run:
                print(event)
    """

    def __init__(
        self,
        config: AgentConfig,
        gateway: ReasoningGateway,
        tools: list[BaseTool],
        system_prompt: str,
    ):
        self.config = config
        self.gateway = gateway
        self.max_iterations = config.max_iterations
        self.cancellation_token = config.cancellation_token
        self.tools = tools
        self.tool_map = {t.name: t for t in tools}
        self.system_prompt = system_prompt

        log.info(
            f"Agent initialized with model={config.model}, provider={config.provider.value}, "
            f"max_iterations={self.max_iterations}, tools={list(self.tool_map)}"
        )

    @classmethod
    def create(
        cls,
        config: Optional[AgentConfig] = None,
        tools: Optional[list[BaseTool]] = None,
        gateway: Optional[ReasoningGateway] = None,
    ) -> "Agent":
        """
        Create a new Agent instance with its gateway and tools.

        Args:
            config: Agent configuration (model, provider, max_iterations, token, keys)
            tools: Outer tools; defaults to the registry built from config
            gateway: Reasoning gateway; defaults to one resolved from config
        """
        config = config or AgentConfig()

        if gateway is None:
            gateway = create_gateway(
                provider=config.provider,
                model=config.model,
                api_key=config.api_key,
                base_url=config.base_url,
                fast_model=config.fast_model,
                max_retries=config.max_retries,
                retry_base_delay=config.retry_base_delay,
                timeout=config.request_timeout,
            )

        if tools is None:
            registry = get_tool_registry(config, gateway)
        else:
            registry = [
                RegisteredTool(name=t.name, tool=t, description=t.description)
                for t in tools
            ]

        system_prompt = get_system_prompt(build_tool_descriptions(registry))
        return cls(config, gateway, [t.tool for t in registry], system_prompt)

    def run(
        self,
        query: str,
        history: Optional[MessageHistory] = None,
    ) -> AgentRun:
        """
        Start a run and return its event stream.

        Args:
            query: The user's query
            history: Optional conversation history. Relevant prior turns are
                     added to the first prompt; the finished turn is recorded.

        Returns:
            AgentRun, an async iterator of AgentEvents. Iteration raises
            GatewayError if the reasoning service fails; it simply ends,
            without a DoneEvent, if the run is cancelled.
        """
        log.info(f"Starting agent run: query='{query[:50]}...'")

        # Single source of truth for this query
        scratchpad = Scratchpad(query, self.config.scratchpad_dir)
        channel = EventChannel(self.config.event_buffer_size, self.cancellation_token)

        async def producer(channel: EventChannel) -> None:
            await self._drive(query, history, scratchpad, channel)

        return AgentRun(producer, channel, scratchpad)

    async def _drive(
        self,
        query: str,
        history: Optional[MessageHistory],
        scratchpad: Scratchpad,
        channel: EventChannel,
    ) -> None:
        """Producer task: run the loop and close the channel however it ends."""
        try:
            await self._run_loop(query, history, scratchpad, channel.send)
        except RunCancelled:
            log.info(f"Run cancelled: query='{query[:50]}...'")
            await channel.close()
            return
        except Exception as e:
            log.error(f"Run failed: {type(e).__name__}: {e}")
            await channel.close(e)
            return
        await channel.close()

    async def _run_loop(
        self,
        query: str,
        history: Optional[MessageHistory],
        scratchpad: Scratchpad,
        emit: Emit,
    ) -> None:
        token = self.cancellation_token

        conversation_context = None
        if history is not None:
            relevant = await history.select_relevant_messages(query, token)
            conversation_context = history.format_for_planning(relevant) or None
            log.debug(f"Selected {len(relevant)} relevant prior message(s)")

        current_prompt = build_initial_prompt(query, conversation_context)

        # Main agent loop
        for iteration in range(1, self.max_iterations + 1):
            raise_if_cancelled(token)
            log.debug(f"Iteration {iteration}/{self.max_iterations}")

            response = await self.gateway.invoke(
                build_messages(current_prompt, self.system_prompt),
                tools=self.tools or None,
                cancellation_token=token,
            )
            response_text = response.text

            # No tool calls = ready to answer
            if not response.has_tool_calls:
                # Direct response (greetings, simple questions)
                if not scratchpad.has_tool_results() and response_text.strip():
                    log.debug("Direct response (no tool results)")
                    await emit(AnswerStartEvent())
                    await emit(AnswerChunkEvent(text=response_text))
                    await self._finish(query, response_text, [], iteration, history, emit)
                    return

                await self._stream_final_answer(query, scratchpad, iteration, history, emit)
                return

            # Reasoning text only counts as thinking next to tool calls
            if response_text.strip():
                scratchpad.add_thinking(response_text)
                await emit(ThinkingEvent(message=response_text))

            log.debug(f"Executing {len(response.tool_calls)} tool calls")
            for tool_call in response.tool_calls:
                await self._execute_single_tool(
                    tool_call.name, tool_call.args, query, scratchpad, emit
                )

            # Build iteration prompt with summaries only
            current_prompt = build_iteration_prompt(
                query,
                scratchpad.get_tool_summaries(),
                scratchpad.format_tool_usage_for_prompt(),
            )

        # Max iterations reached - answer with whatever was gathered
        log.warning(str(IterationBudgetExceeded(self.max_iterations)))
        await self._stream_final_answer(
            query, scratchpad, self.max_iterations, history, emit
        )

    async def _stream_final_answer(
        self,
        query: str,
        scratchpad: Scratchpad,
        iteration: int,
        history: Optional[MessageHistory],
        emit: Emit,
    ) -> None:
        """Generate the final answer from the full tool results and stream it."""
        log.debug("Generating final answer with tool context")
        contexts = scratchpad.get_full_contexts()
        final_prompt = build_final_answer_prompt(query, self._build_full_context(contexts))

        await emit(AnswerStartEvent())
        chunks: list[str] = []
        async with aclosing(
            self.gateway.stream(
                build_messages(final_prompt, FINAL_ANSWER_SYSTEM_PROMPT),
                cancellation_token=self.cancellation_token,
            )
        ) as stream:
            async for chunk in stream:
                chunks.append(chunk)
                await emit(AnswerChunkEvent(text=chunk))

        await self._finish(
            query,
            "".join(chunks),
            scratchpad.get_tool_call_records(contexts),
            iteration,
            history,
            emit,
        )

    async def _finish(
        self,
        query: str,
        answer: str,
        tool_calls: list[ToolCallRecord],
        iteration: int,
        history: Optional[MessageHistory],
        emit: Emit,
    ) -> None:
        """Record the turn in history, then emit DoneEvent."""
        raise_if_cancelled(self.cancellation_token)
        if history is not None:
            await history.add_message(query, answer, self.cancellation_token)

        log.info(f"Run completed: answer_len={len(answer)}, iterations={iteration}")
        await emit(DoneEvent(answer=answer, tool_calls=tool_calls, iterations=iteration))

    async def _summarize_tool_result(
        self,
        query: str,
        tool_name: str,
        tool_args: dict[str, Any],
        result: str,
    ) -> str:
        """Generate LLM summary of a tool result for context compaction."""
        log.debug(f"Summarizing {tool_name} result (len={len(result)})")
        prompt = build_tool_summary_prompt(query, tool_name, tool_args, result)
        response = await self.gateway.invoke(
            build_messages(prompt, TOOL_SUMMARY_SYSTEM_PROMPT),
            cancellation_token=self.cancellation_token,
            fast=True,
        )
        return response.text.strip() or f"{tool_name} returned {len(result)} characters"

    async def _execute_single_tool(
        self,
        tool_name: str,
        tool_args: dict[str, Any],
        query: str,
        scratchpad: Scratchpad,
        emit: Emit,
    ) -> None:
        """Execute a single tool call and add result to scratchpad."""
        # Extract query for similarity detection
        tool_query = self._extract_query_from_args(tool_args)

        # Soft limits only guide the model through the iteration prompt
        limit_check = scratchpad.can_call_tool(tool_name, tool_query)
        if limit_check.warning:
            log.warning(f"Tool limit warning for {tool_name}: {limit_check.warning[:100]}")

        log.info(f"Executing tool: {tool_name}")
        await emit(ToolStartEvent(tool=tool_name, args=tool_args))
        start_time = time.time()

        try:
            tool = self.tool_map.get(tool_name)
            if tool is None:
                raise ToolExecutionError(f"Tool '{tool_name}' not found", tool_name)
            result = await invoke_tool(tool, tool_args, self.cancellation_token)

        except ToolExecutionError as e:
            error_message = e.message
            log.error(f"Tool {tool_name} failed: {error_message}")
            await emit(ToolErrorEvent(tool=tool_name, error=error_message))

            scratchpad.record_tool_call(tool_name, tool_query)
            scratchpad.add_tool_result(
                tool_name, tool_args, f"Error: {error_message}", f"[FAILED] {error_message}"
            )
            return

        duration = int((time.time() - start_time) * 1000)
        log.info(f"Tool {tool_name} completed in {duration}ms (result_len={len(result)})")
        await emit(
            ToolEndEvent(tool=tool_name, args=tool_args, result=result, duration=duration)
        )

        # Record and summarize
        scratchpad.record_tool_call(tool_name, tool_query)
        summary = await self._summarize_tool_result(query, tool_name, tool_args, result)
        scratchpad.add_tool_result(tool_name, tool_args, result, summary)

    def _extract_query_from_args(self, args: dict[str, Any]) -> Optional[str]:
        """Extract query string from tool arguments."""
        if not isinstance(args, dict):
            return None
        query_keys = ["query", "search", "question", "q", "text", "input"]
        for key in query_keys:
            if isinstance(args.get(key), str):
                return args[key]
        return None

    def _build_full_context(self, contexts: list[ToolContext]) -> str:
        """Build full context data for final answer generation."""
        if not contexts:
            return "No data was gathered."

        # Filter errors
        valid = [c for c in contexts if not c.result.startswith("Error:")]
        if not valid:
            return "No data was successfully gathered."

        return "\n\n".join(self._format_single_context(c) for c in valid)

    def _format_single_context(self, ctx: ToolContext) -> str:
        """Format a single context entry."""
        description = get_tool_description(ctx.tool_name, ctx.args)
        try:
            formatted = json.dumps(json.loads(ctx.result), indent=2, ensure_ascii=False)
            return f"### {description}\n```json\n{formatted}\n```"
        except (json.JSONDecodeError, TypeError):
            return f"### {description}\n{ctx.result}"
