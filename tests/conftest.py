import threading
import time

import pytest

from agentloop.errors import ToolExecutionError
from agentloop.messages import Reply, ToolCall, Usage
from agentloop.providers.base import Provider, StreamEvent
from agentloop.tools.base import Tool


def reply(content: str = "", *calls: ToolCall, usage: Usage | None = None) -> Reply:
    return Reply(content=content, tool_calls=tuple(calls), usage=usage)


class ScriptedProvider(Provider):
    """Replays a fixed list of replies and records what it was sent."""

    name = "scripted"

    def __init__(self, replies, repeat_last: bool = False):
        self.replies = list(replies)
        self.repeat_last = repeat_last
        self.calls: list[list] = []
        self.tools_seen: list[list[str]] = []

    async def stream(self, messages, tools=()):
        self.calls.append(list(messages))
        self.tools_seen.append([t.name for t in tools])
        if not self.replies:
            raise RuntimeError("no scripted replies left")
        if self.repeat_last and len(self.replies) == 1:
            item = self.replies[0]
        else:
            item = self.replies.pop(0)
        if isinstance(item, Exception):
            raise item
        if item.tool_calls:
            yield StreamEvent(tool_use_started=True)
        if item.content:
            yield StreamEvent(text=item.content)
        yield StreamEvent(
            tool_calls=list(item.tool_calls) or None,
            stop_reason="tool_use" if item.tool_calls else "end_turn",
            usage=item.usage,
        )


class CalcTool(Tool):
    name = "calc"
    description = "Evaluate an arithmetic expression."
    parameters = {
        "type": "object",
        "properties": {"expr": {"type": "string"}},
        "required": ["expr"],
    }

    def execute(self, expr: str) -> str:
        a, b = expr.split("+")
        return str(int(a) + int(b))


class EchoTool(Tool):
    name = "echo"
    description = "Echo text back, optionally after a delay."
    parameters = {
        "type": "object",
        "properties": {
            "text": {"type": "string"},
            "delay": {"type": "number"},
        },
        "required": ["text"],
    }

    def execute(self, text: str, delay: float = 0) -> str:
        if delay:
            time.sleep(delay)
        return text


class FailingTool(Tool):
    name = "fail"
    description = "Always fails."
    parameters = {"type": "object", "properties": {}}

    def execute(self) -> str:
        raise ToolExecutionError("disk on fire")


class CrashingTool(Tool):
    name = "crash"
    description = "Raises an unexpected exception."
    parameters = {"type": "object", "properties": {}}

    def execute(self) -> str:
        raise RuntimeError("boom")


class BarrierTool(Tool):
    """Succeeds only if the expected number of calls run at the same time."""

    name = "barrier"
    description = "Wait for sibling calls."
    parameters = {"type": "object", "properties": {"n": {"type": "integer"}}}

    def __init__(self, parties: int):
        self.barrier = threading.Barrier(parties, timeout=5)

    def execute(self, n: int = 0) -> str:
        self.barrier.wait()
        return f"passed {n}"


@pytest.fixture
def calc():
    return CalcTool()


@pytest.fixture
def echo():
    return EchoTool()
