"""OpenAI-compatible provider (OpenAI, DashScope, vLLM, LocalAI, llama.cpp...)."""

import json
import logging
from collections.abc import AsyncIterator, Iterable
from typing import TYPE_CHECKING

from openai import AsyncOpenAI

if TYPE_CHECKING:
    from agentloop.tools.base import Tool

from agentloop.config import (
    DEFAULT_OPENAI_API_KEY,
    DEFAULT_OPENAI_BASE_URL,
    DEFAULT_OPENAI_MODEL,
)
from agentloop.messages import Message, ToolCall, Usage
from agentloop.providers.base import Provider, StreamEvent, new_tool_call_id

logger = logging.getLogger(__name__)


def tools_to_openai(tools: Iterable["Tool"]) -> list[dict]:
    """Convert tools to OpenAI's format."""
    return [{"type": "function", "function": tool.to_schema()} for tool in tools]


def messages_to_openai(messages: list[Message]) -> list[dict]:
    """Convert messages to OpenAI's format."""
    openai_messages = []

    for msg in messages:
        if msg.role == "tool_result":
            openai_messages.append({
                "role": "tool",
                "tool_call_id": msg.tool_call_id,
                "content": msg.content,
            })
        elif msg.role == "assistant" and msg.tool_calls:
            openai_messages.append({
                "role": "assistant",
                "content": msg.content or None,
                "tool_calls": [
                    {
                        "id": tc.id,
                        "type": "function",
                        "function": {
                            "name": tc.name,
                            "arguments": json.dumps(tc.args),
                        },
                    }
                    for tc in msg.tool_calls
                ],
            })
        else:
            openai_messages.append({"role": msg.role, "content": msg.content})

    return openai_messages


class ToolCallAccumulator:
    """Merge streamed tool call deltas, keyed by their index."""

    def __init__(self):
        self._builders: dict[int, dict] = {}

    def __bool__(self) -> bool:
        return bool(self._builders)

    def add(self, index: int, id: str | None, name: str | None, arguments: str | None) -> bool:
        """Add one delta. Returns True if it opened a new tool call."""
        is_new = index not in self._builders
        if is_new:
            self._builders[index] = {"id": "", "name": "", "arguments": ""}
        builder = self._builders[index]
        if id:
            builder["id"] = id
        if name:
            builder["name"] = name
        if arguments:
            builder["arguments"] += arguments
        return is_new

    def build(self) -> list[ToolCall]:
        tool_calls = []
        for idx in sorted(self._builders):
            builder = self._builders[idx]
            try:
                args = json.loads(builder["arguments"]) if builder["arguments"] else {}
            except json.JSONDecodeError:
                logger.warning(
                    "Could not parse arguments for tool call %s (%s): %r",
                    builder["id"], builder["name"], builder["arguments"][:200],
                )
                args = {}
            tool_calls.append(ToolCall(
                id=builder["id"] or new_tool_call_id(),
                name=builder["name"],
                args=args,
            ))
        return tool_calls


class OpenAICompatibleProvider(Provider):
    """Provider for OpenAI and servers speaking its chat completions API."""

    name = "openai"

    def __init__(
        self,
        model_id: str = DEFAULT_OPENAI_MODEL,
        base_url: str | None = DEFAULT_OPENAI_BASE_URL,
        api_key: str = DEFAULT_OPENAI_API_KEY,
        temperature: float = 0,
        client: AsyncOpenAI | None = None,
    ):
        """Initialize the OpenAI-compatible provider.

        Args:
            model_id: Model name on the server
            base_url: Full API base URL (e.g. "http://localhost:8000/v1");
                None uses the official OpenAI endpoint
            api_key: API key, defaults to "EMPTY" for servers without auth
            temperature: Sampling temperature
            client: Preconfigured client, mainly for tests
        """
        self.model_id = model_id
        self.temperature = temperature
        self.client = client or AsyncOpenAI(base_url=base_url, api_key=api_key)

    async def stream(
        self,
        messages: list[Message],
        tools: Iterable["Tool"] = (),
    ) -> AsyncIterator[StreamEvent]:
        """Stream a response from the OpenAI-compatible server."""
        kwargs = {
            "model": self.model_id,
            "messages": messages_to_openai(messages),
            "temperature": self.temperature,
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        openai_tools = tools_to_openai(tools)
        if openai_tools:
            kwargs["tools"] = openai_tools

        response = await self.client.chat.completions.create(**kwargs)

        tool_calls = ToolCallAccumulator()
        usage = None
        final_finish_reason = None

        async for chunk in response:
            # Usage comes in the final chunk with empty choices
            if chunk.usage:
                usage = Usage(
                    input_tokens=chunk.usage.prompt_tokens,
                    output_tokens=chunk.usage.completion_tokens,
                )

            if not chunk.choices:
                continue

            delta = chunk.choices[0].delta
            finish_reason = chunk.choices[0].finish_reason

            if delta.content:
                yield StreamEvent(text=delta.content)

            for tc_delta in delta.tool_calls or []:
                fn = tc_delta.function
                started = not tool_calls
                is_new = tool_calls.add(
                    tc_delta.index,
                    tc_delta.id,
                    fn.name if fn else None,
                    fn.arguments if fn else None,
                )
                if is_new and started:
                    yield StreamEvent(tool_use_started=True)

            if finish_reason:
                final_finish_reason = finish_reason

        calls = tool_calls.build()
        stop_reason = "tool_use" if calls else (
            "end_turn" if final_finish_reason in (None, "stop") else final_finish_reason
        )
        yield StreamEvent(
            tool_calls=calls or None,
            stop_reason=stop_reason,
            usage=usage,
        )
