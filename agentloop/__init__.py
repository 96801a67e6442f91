"""agentloop - drive a tool-calling language model until it answers."""

__version__ = "0.1.0"
