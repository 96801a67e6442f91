"""Tools for agentloop."""

from .base import (
    ExecuteCommandTool,
    ListDirectoryTool,
    ReadFileTool,
    Tool,
    WriteFileTool,
    get_default_tools,
)
from .registry import ToolRegistry

__all__ = [
    "Tool",
    "ToolRegistry",
    "ReadFileTool",
    "WriteFileTool",
    "ListDirectoryTool",
    "ExecuteCommandTool",
    "get_default_tools",
]
