"""Base provider protocol for LLM backends."""

import uuid
from abc import ABC, abstractmethod
from collections.abc import AsyncIterable, AsyncIterator, Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from agentloop.tools.base import Tool

from agentloop.messages import Message, Reply, ToolCall, Usage


def new_tool_call_id() -> str:
    """Id for a tool call the server sent without one."""
    return f"call_{uuid.uuid4().hex[:12]}"


@dataclass
class StreamEvent:
    """An event from a streaming response."""
    text: str = ""
    tool_calls: list[ToolCall] | None = None
    stop_reason: str | None = None
    tool_use_started: bool = False  # Signal that tool use is beginning
    usage: Usage | None = None  # Token usage (typically at end of response)


async def assemble_reply(events: AsyncIterable[StreamEvent]) -> Reply:
    """Fold a stream of events into one immutable Reply.

    Text chunks are concatenated, the last non-empty tool call list wins and
    usages are summed.
    """
    text = []
    tool_calls: list[ToolCall] = []
    usage: Usage | None = None

    async for event in events:
        if event.text:
            text.append(event.text)
        if event.tool_calls:
            tool_calls = list(event.tool_calls)
        if event.usage:
            usage = event.usage if usage is None else usage + event.usage

    return Reply(content="".join(text), tool_calls=tuple(tool_calls), usage=usage)


class Provider(ABC):
    """Abstract base class for LLM providers."""

    name: str  # Provider identifier, e.g., "openai", "ollama"

    @abstractmethod
    def stream(
        self,
        messages: list[Message],
        tools: Iterable["Tool"] = (),
    ) -> AsyncIterator[StreamEvent]:
        """Stream a response from the LLM.

        Args:
            messages: Conversation history, system messages included
            tools: Available tools the LLM can call

        Yields:
            StreamEvent objects with text chunks, tool calls, and stop reason
        """
        pass

    async def complete(
        self,
        messages: list[Message],
        tools: Iterable["Tool"] = (),
    ) -> Reply:
        """Return the fully assembled reply for one model call."""
        return await assemble_reply(self.stream(messages, tools))
