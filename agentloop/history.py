"""Message history stores and strategies for keeping them short.

A history store is an ordered, append-only log of messages that outlives a
single agent run. The agent seeds its conversation from ``get_all()`` and
appends every new message to the store.

Long histories are shortened outside the agent loop with one of:

- :func:`trim_by_count`: keep the most recent N messages
- :func:`trim_by_tokens`: keep the most recent messages that fit a token budget
- :func:`summarize`: replace older messages with a model-written summary

All three keep leading system messages and never leave a tool result whose
originating tool call was dropped.
"""

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from pathlib import Path

from agentloop.messages import Message
from agentloop.prompts import PromptTemplate
from agentloop.providers.base import Provider

logger = logging.getLogger(__name__)

SUMMARY_PROMPT = PromptTemplate("""Summarize the core content of the following conversation, keeping important facts:

{transcript}

Summary:""")


class MessageHistory(ABC):
    """Ordered append-only message log."""

    @abstractmethod
    def append(self, message: Message) -> None:
        pass

    @abstractmethod
    def get_all(self) -> list[Message]:
        pass

    @abstractmethod
    def clear(self) -> None:
        pass

    def extend(self, messages: Iterable[Message]) -> None:
        for message in messages:
            self.append(message)

    def __len__(self) -> int:
        return len(self.get_all())


class InMemoryHistory(MessageHistory):
    """History kept in a Python list."""

    def __init__(self, messages: Iterable[Message] = ()):
        self._messages: list[Message] = list(messages)

    def append(self, message: Message) -> None:
        self._messages.append(message)

    def get_all(self) -> list[Message]:
        return list(self._messages)

    def clear(self) -> None:
        self._messages.clear()


class FileHistory(MessageHistory):
    """History persisted as a JSON list of messages.

    The file is created on the first append and rewritten atomically after
    every change, so a crash never leaves a half-written file behind.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path).expanduser()
        self._messages = self._load()

    def _load(self) -> list[Message]:
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ValueError(f"Corrupt history file {self.path}: {e}") from e
        return [Message.from_dict(item) for item in data]

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = [m.to_dict() for m in self._messages]
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            os.replace(tmp, self.path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def append(self, message: Message) -> None:
        self._messages.append(message)
        self._save()

    def extend(self, messages: Iterable[Message]) -> None:
        self._messages.extend(messages)
        self._save()

    def get_all(self) -> list[Message]:
        return list(self._messages)

    def clear(self) -> None:
        self._messages = []
        self._save()


def _split_system(messages: list[Message]) -> tuple[list[Message], list[Message]]:
    """Split leading system messages from the rest."""
    i = 0
    while i < len(messages) and messages[i].role == "system":
        i += 1
    return messages[:i], messages[i:]


def _drop_orphans(messages: list[Message]) -> list[Message]:
    """Drop leading tool results whose tool call is no longer present."""
    i = 0
    while i < len(messages) and messages[i].role == "tool_result":
        i += 1
    return messages[i:]


def estimate_tokens(messages: list[Message]) -> int:
    """Rough token count: about four characters per token."""
    total = 0
    for msg in messages:
        chars = len(msg.content)
        for tc in msg.tool_calls:
            chars += len(tc.name) + len(json.dumps(tc.args, ensure_ascii=False))
        total += (chars + 3) // 4
    return total


def trim_by_count(messages: list[Message], max_messages: int) -> list[Message]:
    """Keep leading system messages plus the last ``max_messages`` others."""
    if max_messages < 0:
        raise ValueError("max_messages must be >= 0")
    system, rest = _split_system(messages)
    kept = rest[-max_messages:] if max_messages else []
    return system + _drop_orphans(kept)


def trim_by_tokens(
    messages: list[Message],
    max_tokens: int,
    token_counter: Callable[[list[Message]], int] = estimate_tokens,
) -> list[Message]:
    """Keep the longest recent suffix that fits in ``max_tokens``.

    Leading system messages are always kept and count toward the budget.
    """
    system, rest = _split_system(messages)
    budget = max_tokens - token_counter(system)

    start = len(rest)
    while start > 0 and token_counter(rest[start - 1:]) <= budget:
        start -= 1
    return system + _drop_orphans(rest[start:])


def format_transcript(
    messages: list[Message],
    user_prefix: str = "User",
    assistant_prefix: str = "Assistant",
) -> str:
    """Render messages as ``Prefix: content`` lines."""
    prefixes = {
        "system": "System",
        "user": user_prefix,
        "assistant": assistant_prefix,
        "tool_result": "Tool",
    }
    lines = []
    for msg in messages:
        content = msg.content
        if msg.tool_calls:
            calls = ", ".join(
                f"{tc.name}({json.dumps(tc.args, ensure_ascii=False)})" for tc in msg.tool_calls
            )
            content = f"{content} [calls: {calls}]".strip()
        lines.append(f"{prefixes[msg.role]}: {content}")
    return "\n".join(lines)


async def summarize(
    provider: Provider,
    messages: list[Message],
    keep_recent: int = 2,
) -> list[Message]:
    """Replace all but the most recent messages with a summary.

    Returns leading system messages, one system message holding the summary,
    and the recent messages. The recent window grows backwards when needed so
    that it never starts with a tool result. When there is nothing older to
    summarize the messages are returned unchanged and the model is not called.
    """
    system, rest = _split_system(messages)
    cut = max(len(rest) - keep_recent, 0)
    while 0 < cut < len(rest) and rest[cut].role == "tool_result":
        cut -= 1

    older, recent = rest[:cut], rest[cut:]
    if not older:
        return list(messages)

    logger.debug("Summarizing %d messages, keeping %d", len(older), len(recent))
    prompt = SUMMARY_PROMPT.format(transcript=format_transcript(older))
    reply = await provider.complete([Message.system(prompt)])
    summary = Message.system(f"Summary of the earlier conversation:\n{reply.content}")
    return system + [summary] + recent
