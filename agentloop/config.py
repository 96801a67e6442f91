"""Configuration defaults for agentloop."""

import os

# Default provider
DEFAULT_PROVIDER = os.environ.get("AGENTLOOP_PROVIDER", "openai")

# Agent loop
DEFAULT_MAX_ITERATIONS = 30

# OpenAI-compatible defaults (OpenAI itself, DashScope, vLLM, LocalAI...)
DEFAULT_OPENAI_MODEL = os.environ.get("MODEL_NAME", "gpt-4o-mini")
DEFAULT_OPENAI_BASE_URL = os.environ.get("OPENAI_BASE_URL")
DEFAULT_OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY", "EMPTY")

# Ollama defaults
DEFAULT_OLLAMA_MODEL = "qwen3-coder:30b"
DEFAULT_OLLAMA_HOST = os.environ.get("OLLAMA_HOST", "http://localhost:11434")

# Tool limits
COMMAND_TIMEOUT = 120
MAX_FILE_CHARS = 100_000
