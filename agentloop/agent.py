"""Main agent loop for agentloop."""

import asyncio
import json
import logging
import os
import sys
from collections.abc import AsyncIterator, Iterable
from enum import Enum
from pathlib import Path

from prompt_toolkit import PromptSession
from prompt_toolkit.history import FileHistory as PromptHistory
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.status import Status
from rich.text import Text

from agentloop.config import DEFAULT_MAX_ITERATIONS
from agentloop.errors import ModelInvocationError, ToolExecutionError, ToolNotFound
from agentloop.history import FileHistory, InMemoryHistory, MessageHistory
from agentloop.messages import Message, Reply, ToolCall, Usage
from agentloop.prompts import PromptTemplate
from agentloop.providers import Provider, StreamEvent, assemble_reply, create_provider
from agentloop.tools import Tool, ToolRegistry, get_default_tools

logger = logging.getLogger(__name__)


class AgentState(Enum):
    AWAITING_MODEL = "awaiting_model"
    EXECUTING_TOOLS = "executing_tools"
    DONE = "done"


SYSTEM_PROMPT = PromptTemplate("""You are a helpful assistant that completes tasks with tools.

Current working directory: {cwd}

You have access to these tools:
{tools_section}

Call tools when you need them and answer directly once you have what you need.
Be concise and direct in your responses.""").partial(cwd=os.getcwd)


def build_system_prompt(tools: Iterable[Tool]) -> str:
    """Build system prompt with available tools."""
    tools_section = "\n".join(f"- {t.name}: {t.description}" for t in tools)
    return SYSTEM_PROMPT.format(tools_section=tools_section)


def _format_result(result) -> str:
    if isinstance(result, str):
        return result
    return json.dumps(result, ensure_ascii=False, default=str)


class Agent:
    """Drives a tool-calling model until it gives a final answer.

    The conversation lives in ``self.messages``: the system prompt, any
    history loaded from ``history``, then every message of every run. It has
    a single writer (the agent) and is only ever appended to.
    """

    def __init__(
        self,
        provider: Provider,
        tools: ToolRegistry | Iterable[Tool] | None = None,
        system_prompt: str | None = None,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        history: MessageHistory | None = None,
        console: Console | None = None,
    ):
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        if tools is None:
            tools = get_default_tools()
        self.provider = provider
        self.tools = tools if isinstance(tools, ToolRegistry) else ToolRegistry(tools)
        self.max_iterations = max_iterations
        self.history = history
        self.console = console
        self.system_prompt = system_prompt or build_system_prompt(self.tools)

        self.messages: list[Message] = [Message.system(self.system_prompt)]
        if history is not None:
            self.messages.extend(history.get_all())

        self.state = AgentState.AWAITING_MODEL
        self.iterations = 0
        self.stop_reason: str | None = None
        self.usage = Usage()
        self._status: Status | None = None

    def _append(self, message: Message) -> None:
        self.messages.append(message)
        if self.history is not None:
            self.history.append(message)

    def _last_content(self) -> str:
        return self.messages[-1].content

    async def run(
        self,
        query: str,
        cancel: asyncio.Event | None = None,
        stream: bool = False,
    ) -> str:
        """Run one query to completion and return the final answer.

        Args:
            query: The user's message
            cancel: When set, the loop stops after the step in flight and
                returns the content of the last message
            stream: Print model text to the console as it arrives

        Raises:
            ModelInvocationError: If the model call fails. Tool failures never
                raise; they are returned to the model as tool results.
        """
        self._append(Message.user(query))
        self.iterations = 0
        self.stop_reason = None
        self.state = AgentState.AWAITING_MODEL

        while self.iterations < self.max_iterations:
            if cancel is not None and cancel.is_set():
                return self._finish("cancelled")

            self.iterations += 1
            logger.debug("Iteration %d/%d", self.iterations, self.max_iterations)
            try:
                reply = await self._invoke_model(stream)
            except ModelInvocationError:
                self.state = AgentState.DONE
                self.stop_reason = "error"
                raise
            if reply.usage:
                self.usage = self.usage + reply.usage

            self._append(Message.assistant(reply.content, list(reply.tool_calls)))

            if not reply.has_tool_calls:
                return self._finish("final", reply.content)

            if cancel is not None and cancel.is_set():
                for call in reply.tool_calls:
                    self._append(Message.tool_result(
                        call.id, "[error: cancelled before execution]", is_error=True
                    ))
                return self._finish("cancelled")

            self.state = AgentState.EXECUTING_TOOLS
            try:
                results = await self._execute_tools(reply.tool_calls)
            except asyncio.CancelledError:
                for call in reply.tool_calls:
                    self._append(Message.tool_result(
                        call.id, "[error: cancelled]", is_error=True
                    ))
                self._finish("cancelled")
                raise
            for result in results:
                self._append(result)
            self.state = AgentState.AWAITING_MODEL

        logger.info("Stopped after %d iterations without a final answer", self.iterations)
        return self._finish("max_iterations")

    async def chat(self, user_input: str) -> str:
        """Process a user message, streaming the response to the console."""
        return await self.run(user_input, stream=True)

    def _finish(self, reason: str, content: str | None = None) -> str:
        if reason == "cancelled":
            logger.warning("Run cancelled after %d iterations", self.iterations)
        self.state = AgentState.DONE
        self.stop_reason = reason
        self._hide_status()
        return self._last_content() if content is None else content

    async def _invoke_model(self, stream: bool) -> Reply:
        self._show_status("Answering...")
        try:
            if stream and self.console is not None:
                events = self.provider.stream(self.messages, self.tools)
                return await assemble_reply(self._display_stream(events))
            return await self.provider.complete(self.messages, self.tools)
        except Exception as e:
            raise ModelInvocationError(f"{type(e).__name__}: {e}") from e
        finally:
            self._hide_status()

    async def _display_stream(
        self, events: AsyncIterator[StreamEvent]
    ) -> AsyncIterator[StreamEvent]:
        """Print text as it streams in, passing every event through."""
        printed = False
        async for event in events:
            if event.text:
                self._hide_status()
                self.console.print(event.text, end="", markup=False)
                printed = True
            if event.tool_use_started:
                self._show_status("Working...")
            yield event
        if printed:
            self.console.print()

    async def _execute_tools(self, calls: Iterable[ToolCall]) -> list[Message]:
        """Run the calls of one turn concurrently; results keep call order."""
        calls = list(calls)
        for call in calls:
            self._show_tool_execution(call)
        self._show_status("Executing...")
        try:
            results = await asyncio.gather(*(self._execute_call(c) for c in calls))
        finally:
            self._hide_status()
        for result in results:
            self._show_tool_result(result)
        return list(results)

    async def _execute_call(self, call: ToolCall) -> Message:
        try:
            tool = self.tools.get(call.name)
        except ToolNotFound as e:
            logger.warning("Model requested unknown tool '%s'", call.name)
            return Message.tool_result(call.id, f"[error: {e}]", is_error=True)

        try:
            result = await asyncio.to_thread(tool.invoke, call.args)
        except ToolExecutionError as e:
            logger.warning("Tool '%s' failed: %s", call.name, e)
            return Message.tool_result(call.id, f"[error: {e}]", is_error=True)
        except Exception as e:
            logger.exception("Tool '%s' raised", call.name)
            return Message.tool_result(call.id, f"[error: {e}]", is_error=True)

        return Message.tool_result(call.id, _format_result(result))

    def _show_status(self, message: str) -> None:
        """Show a spinner with the given message."""
        if self.console is None:
            return
        if self._status:
            self._status.stop()
        self._status = Status(message, console=self.console, spinner="dots")
        self._status.start()

    def _hide_status(self) -> None:
        """Hide the current spinner if any."""
        if self._status:
            self._status.stop()
            self._status = None

    def _show_tool_execution(self, call: ToolCall) -> None:
        """Display that a tool is being executed."""
        if self.console is None:
            return
        args_short = ", ".join(f"{k}={v!r:.50}" for k, v in call.args.items())
        self.console.print(f"\n[dim]▶ {escape(call.name)}({escape(args_short)})[/dim]")

    def _show_tool_result(self, result: Message) -> None:
        """Display a tool result (truncated if long)."""
        if self.console is None:
            return
        lines = result.content.split("\n")
        if len(lines) > 10:
            display = "\n".join(lines[:10]) + f"\n... ({len(lines) - 10} more lines)"
        else:
            display = result.content
        style = "red" if result.is_error else "dim"
        self.console.print(Panel(Text(display), border_style=style, padding=(0, 1)))


def load_tools(hooks: list | None = None) -> ToolRegistry:
    """Default tools plus TOOLS from hooks, minus their REMOVE_TOOLS."""
    registry = ToolRegistry(get_default_tools())
    for hook in hooks or []:
        if hasattr(hook, "TOOLS"):
            registry = registry.with_tools(hook.TOOLS)
        if hasattr(hook, "REMOVE_TOOLS"):
            registry = registry.without(hook.REMOVE_TOOLS)
    return registry


def write_stats(agent: Agent, path: str | Path, iterations: int) -> None:
    """Write run statistics as JSON."""
    stats = {
        "iterations": iterations,
        "input_tokens": agent.usage.input_tokens,
        "output_tokens": agent.usage.output_tokens,
    }
    Path(path).write_text(json.dumps(stats, indent=2))


async def run_agent(
    provider: str,
    model: str,
    host: str | None = None,
    hooks: list | None = None,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    history_file: str | None = None,
    stats_file: str | None = None,
    query: str | None = None,
):
    """Run the interactive agent loop."""
    console = Console()

    provider_kwargs = {"model_id": model}
    if provider == "openai" and host:
        provider_kwargs["base_url"] = host
    elif provider == "ollama" and host:
        provider_kwargs["host"] = host

    llm = create_provider(provider, **provider_kwargs)
    tools = load_tools(hooks)
    try:
        history = FileHistory(history_file) if history_file else InMemoryHistory()
    except ValueError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        return
    agent = Agent(
        provider=llm,
        tools=tools,
        max_iterations=max_iterations,
        history=history,
        console=console,
    )
    total_iterations = 0

    async def ask(text: str) -> None:
        nonlocal total_iterations
        try:
            await agent.chat(text)
        except ModelInvocationError as e:
            console.print(f"[red]Model error: {e}[/red]")
        total_iterations += agent.iterations
        if agent.stop_reason == "max_iterations":
            console.print(
                f"[yellow]Stopped after {agent.iterations} iterations "
                "without a final answer.[/yellow]"
            )

    try:
        if query is not None:
            await ask(query)
            return

        console.print(Panel(
            f"[bold]agentloop[/bold] - tool-calling assistant\n"
            f"Provider: {provider} | Model: {model}\n"
            "Type your message and press Enter. Use Ctrl+C to exit.",
            border_style="blue",
        ))
        console.print("\n[bold]Tools:[/bold]")
        for tool in tools:
            console.print(f"- {tool.name}: {tool.description}", markup=False)

        # Use prompt_toolkit only for interactive terminals
        interactive = sys.stdin.isatty()
        session = (
            PromptSession(history=PromptHistory(".agentloop_history")) if interactive else None
        )

        while True:
            try:
                console.print()
                if interactive:
                    user_input = await session.prompt_async("> ")
                else:
                    user_input = sys.stdin.readline()
                    if not user_input:  # EOF
                        break
                if not user_input.strip():
                    continue
                await ask(user_input.strip())
            except KeyboardInterrupt:
                console.print("\n[dim]Goodbye![/dim]")
                break
            except EOFError:
                break
    finally:
        if stats_file:
            write_stats(agent, stats_file, total_iterations)
