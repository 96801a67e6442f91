"""Read-only registry mapping tool names to tools."""

from collections.abc import Iterable, Iterator

from agentloop.errors import ToolNotFound
from agentloop.tools.base import Tool


class ToolRegistry:
    """A fixed set of tools exposed to the model for one run."""

    def __init__(self, tools: Iterable[Tool] = ()):
        self._tools: dict[str, Tool] = {}
        for tool in tools:
            if tool.name in self._tools:
                raise ValueError(f"Duplicate tool name '{tool.name}'")
            self._tools[tool.name] = tool

    def get(self, name: str) -> Tool:
        try:
            return self._tools[name]
        except KeyError:
            raise ToolNotFound(name) from None

    def names(self) -> list[str]:
        return list(self._tools)

    def with_tools(self, tools: Iterable[Tool]) -> "ToolRegistry":
        """Return a new registry with extra tools added."""
        return ToolRegistry([*self._tools.values(), *tools])

    def without(self, names: Iterable[str]) -> "ToolRegistry":
        """Return a new registry with the named tools removed."""
        remove = set(names)
        return ToolRegistry(t for t in self._tools.values() if t.name not in remove)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[Tool]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)
