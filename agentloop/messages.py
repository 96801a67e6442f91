"""Core message types for agentloop."""

from dataclasses import dataclass, field
from typing import Literal

Role = Literal["system", "user", "assistant", "tool_result"]


@dataclass
class ToolCall:
    """A request from the LLM to execute a tool."""
    id: str
    name: str
    args: dict

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "args": self.args}


@dataclass
class Usage:
    """Token usage from a response."""
    input_tokens: int = 0
    output_tokens: int = 0

    def __add__(self, other: "Usage") -> "Usage":
        return Usage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
        )


@dataclass(frozen=True)
class Reply:
    """A fully assembled model reply."""
    content: str = ""
    tool_calls: tuple[ToolCall, ...] = ()
    usage: Usage | None = None

    @property
    def has_tool_calls(self) -> bool:
        return len(self.tool_calls) > 0


@dataclass
class Message:
    """A message in the conversation."""
    role: Role
    content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_call_id: str | None = None
    is_error: bool = False

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role="system", content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role="user", content=content)

    @classmethod
    def assistant(cls, content: str = "", tool_calls: list[ToolCall] | None = None) -> "Message":
        return cls(role="assistant", content=content, tool_calls=list(tool_calls or []))

    @classmethod
    def tool_result(cls, tool_call_id: str, content: str, is_error: bool = False) -> "Message":
        return cls(
            role="tool_result",
            content=content,
            tool_call_id=tool_call_id,
            is_error=is_error,
        )

    def to_dict(self) -> dict:
        data = {"role": self.role, "content": self.content}
        if self.tool_calls:
            data["tool_calls"] = [tc.to_dict() for tc in self.tool_calls]
        if self.tool_call_id is not None:
            data["tool_call_id"] = self.tool_call_id
        if self.is_error:
            data["is_error"] = True
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Message":
        return cls(
            role=data["role"],
            content=data.get("content") or "",
            tool_calls=[ToolCall(**tc) for tc in data.get("tool_calls", [])],
            tool_call_id=data.get("tool_call_id"),
            is_error=data.get("is_error", False),
        )


def check_tool_results(messages: list[Message]) -> bool:
    """Check that every tool result answers exactly one earlier tool call."""
    requested: set[str] = set()
    answered: set[str] = set()
    for msg in messages:
        if msg.role == "assistant":
            requested.update(tc.id for tc in msg.tool_calls)
        elif msg.role == "tool_result":
            if msg.tool_call_id not in requested or msg.tool_call_id in answered:
                return False
            answered.add(msg.tool_call_id)
    return True
