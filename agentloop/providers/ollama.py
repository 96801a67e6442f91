"""Ollama provider for local models."""

from collections.abc import AsyncIterator, Iterable
from typing import TYPE_CHECKING

import ollama

if TYPE_CHECKING:
    from agentloop.tools.base import Tool

from agentloop.config import DEFAULT_OLLAMA_HOST, DEFAULT_OLLAMA_MODEL
from agentloop.messages import Message, ToolCall, Usage
from agentloop.providers.base import Provider, StreamEvent, new_tool_call_id


def tools_to_ollama(tools: Iterable["Tool"]) -> list[dict]:
    """Convert tools to Ollama's format."""
    return [{"type": "function", "function": tool.to_schema()} for tool in tools]


def messages_to_ollama(messages: list[Message]) -> list[dict]:
    """Convert messages to Ollama's format."""
    ollama_messages = []
    call_names: dict[str, str] = {}

    for msg in messages:
        if msg.role == "tool_result":
            ollama_messages.append({
                "role": "tool",
                "content": msg.content,
                "tool_name": call_names.get(msg.tool_call_id, ""),
            })
        elif msg.role == "assistant" and msg.tool_calls:
            for tc in msg.tool_calls:
                call_names[tc.id] = tc.name
            ollama_messages.append({
                "role": "assistant",
                "content": msg.content,
                "tool_calls": [
                    {"function": {"name": tc.name, "arguments": tc.args}}
                    for tc in msg.tool_calls
                ],
            })
        else:
            ollama_messages.append({"role": msg.role, "content": msg.content})

    return ollama_messages


class OllamaProvider(Provider):
    """Ollama provider for local LLM inference."""

    name = "ollama"

    def __init__(
        self,
        model_id: str = DEFAULT_OLLAMA_MODEL,
        host: str = DEFAULT_OLLAMA_HOST,
        client: ollama.AsyncClient | None = None,
    ):
        self.model_id = model_id
        self.client = client or ollama.AsyncClient(host=host)

    async def stream(
        self,
        messages: list[Message],
        tools: Iterable["Tool"] = (),
    ) -> AsyncIterator[StreamEvent]:
        """Stream a response from Ollama."""
        ollama_tools = tools_to_ollama(tools)
        tool_calls = []

        async for chunk in await self.client.chat(
            model=self.model_id,
            messages=messages_to_ollama(messages),
            tools=ollama_tools or None,
            stream=True,
        ):
            message = chunk.get("message") or {}

            if content := message.get("content"):
                yield StreamEvent(text=content)

            # Ollama sends tool calls whole, usually without ids
            if tc_list := message.get("tool_calls"):
                if not tool_calls:
                    yield StreamEvent(tool_use_started=True)
                for tc in tc_list:
                    fn = tc.get("function") or {}
                    name = fn.get("name") or "unknown"
                    tool_calls.append(ToolCall(
                        id=tc.get("id") or new_tool_call_id(),
                        name=name,
                        args=dict(fn.get("arguments") or {}),
                    ))

            if chunk.get("done"):
                usage = Usage(
                    input_tokens=chunk.get("prompt_eval_count") or 0,
                    output_tokens=chunk.get("eval_count") or 0,
                )
                yield StreamEvent(
                    tool_calls=tool_calls or None,
                    stop_reason="tool_use" if tool_calls else "end_turn",
                    usage=usage,
                )
