"""Base tool class and built-in tools."""

import subprocess
from abc import ABC, abstractmethod
from pathlib import Path

from agentloop.config import COMMAND_TIMEOUT, MAX_FILE_CHARS
from agentloop.errors import ToolExecutionError

# JSON schema type name -> accepted Python types
_JSON_TYPES: dict[str, tuple[type, ...]] = {
    "string": (str,),
    "integer": (int,),
    "number": (int, float),
    "boolean": (bool,),
    "array": (list, tuple),
    "object": (dict,),
    "null": (type(None),),
}


def _matches_type(value, json_type: str | list[str]) -> bool:
    types = [json_type] if isinstance(json_type, str) else json_type
    for t in types:
        accepted = _JSON_TYPES.get(t)
        if accepted is None:
            return True  # unknown type names are not checked
        # bool is an int subclass but not a JSON integer/number
        if isinstance(value, bool) and t in ("integer", "number"):
            continue
        if isinstance(value, accepted):
            return True
    return False


class Tool(ABC):
    """Base class for all tools."""

    name: str
    description: str
    parameters: dict  # JSON Schema

    @abstractmethod
    def execute(self, **kwargs) -> str:
        """Execute the tool and return the result.

        Raises:
            ToolExecutionError: If the operation cannot complete.
        """
        pass

    def validate_args(self, args: dict) -> None:
        """Check args against the declared input schema."""
        if not isinstance(args, dict):
            raise ToolExecutionError(f"arguments for {self.name} must be an object")

        properties = self.parameters.get("properties", {})
        missing = [p for p in self.parameters.get("required", []) if p not in args]
        if missing:
            raise ToolExecutionError(
                f"missing required argument(s) for {self.name}: {', '.join(missing)}"
            )

        for key, value in args.items():
            if key not in properties:
                raise ToolExecutionError(f"unexpected argument for {self.name}: {key}")
            json_type = properties[key].get("type")
            if json_type and not _matches_type(value, json_type):
                raise ToolExecutionError(
                    f"argument '{key}' for {self.name} must be of type {json_type}"
                )

    def invoke(self, args: dict) -> str:
        """Validate args and execute, wrapping unexpected failures."""
        self.validate_args(args)
        try:
            return self.execute(**args)
        except ToolExecutionError:
            raise
        except Exception as e:
            raise ToolExecutionError(str(e) or type(e).__name__) from e

    def to_schema(self) -> dict:
        """Provider-neutral function description."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }


class ReadFileTool(Tool):
    """Read file contents."""

    name = "read_file"
    description = (
        "Read the contents of a file. Use this whenever the user asks to read, "
        "view, or explain a file. Accepts a relative or absolute path."
    )
    parameters = {
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "Path to the file to read",
            },
        },
        "required": ["path"],
    }

    def execute(self, path: str) -> str:
        p = Path(path).expanduser()
        if not p.exists():
            raise ToolExecutionError(f"file not found: {path}")
        if not p.is_file():
            raise ToolExecutionError(f"not a file: {path}")
        content = p.read_text(encoding="utf-8", errors="replace")
        if len(content) > MAX_FILE_CHARS:
            content = content[:MAX_FILE_CHARS] + "\n[truncated...]"
        return f"File content:\n{content}"


class WriteFileTool(Tool):
    """Write content to a file."""

    name = "write_file"
    description = "Write content to a file. Creates the file and parent directories if needed."
    parameters = {
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "Path to the file to write",
            },
            "content": {
                "type": "string",
                "description": "Content to write to the file",
            },
        },
        "required": ["path", "content"],
    }

    def execute(self, path: str, content: str) -> str:
        p = Path(path).expanduser()
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(content, encoding="utf-8")
        return f"[wrote {len(content)} bytes to {path}]"


class ListDirectoryTool(Tool):
    """List the entries of a directory."""

    name = "list_directory"
    description = "List files and subdirectories of a directory. Directories end with '/'."
    parameters = {
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "Directory to list (default: current directory)",
                "default": ".",
            },
        },
        "required": [],
    }

    def execute(self, path: str = ".") -> str:
        p = Path(path).expanduser()
        if not p.exists():
            raise ToolExecutionError(f"directory not found: {path}")
        if not p.is_dir():
            raise ToolExecutionError(f"not a directory: {path}")
        entries = sorted(
            f"{child.name}/" if child.is_dir() else child.name
            for child in p.iterdir()
        )
        return "\n".join(entries) or "(empty directory)"


class ExecuteCommandTool(Tool):
    """Execute shell commands."""

    name = "execute_command"
    description = (
        "Execute a shell command and return its output. Use working_directory to "
        "run inside a directory instead of prefixing the command with 'cd'."
    )
    parameters = {
        "type": "object",
        "properties": {
            "command": {
                "type": "string",
                "description": "The shell command to execute",
            },
            "working_directory": {
                "type": "string",
                "description": "Directory to run the command in (default: current directory)",
            },
        },
        "required": ["command"],
    }

    def execute(self, command: str, working_directory: str | None = None) -> str:
        cwd = Path(working_directory).expanduser() if working_directory else None
        if cwd is not None and not cwd.is_dir():
            raise ToolExecutionError(f"working directory not found: {working_directory}")
        try:
            result = subprocess.run(
                command,
                shell=True,
                cwd=cwd,
                capture_output=True,
                text=True,
                timeout=COMMAND_TIMEOUT,
            )
        except subprocess.TimeoutExpired as e:
            raise ToolExecutionError(
                f"command timed out after {COMMAND_TIMEOUT} seconds"
            ) from e

        output = result.stdout
        if result.stderr:
            output += f"\n[stderr]\n{result.stderr}"
        if result.returncode != 0:
            raise ToolExecutionError(f"exit code {result.returncode}\n{output}".rstrip())
        return output or "(no output)"


def get_default_tools() -> list[Tool]:
    """Return the default set of tools."""
    return [
        ReadFileTool(),
        WriteFileTool(),
        ListDirectoryTool(),
        ExecuteCommandTool(),
    ]
