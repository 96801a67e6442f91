"""Exception types for agentloop."""


class AgentError(Exception):
    """Base class for all agentloop errors."""


class ToolNotFound(AgentError):
    """A tool call named a tool that is not in the registry."""

    def __init__(self, name: str):
        super().__init__(f"tool not found: {name}")
        self.name = name


class ToolExecutionError(AgentError):
    """A tool could not complete (bad arguments, missing file, non-zero exit...)."""


class ModelInvocationError(AgentError):
    """The chat model call itself failed."""


class OutputParserError(AgentError):
    """Model output could not be parsed into the expected structure."""
