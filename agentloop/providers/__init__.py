"""LLM providers for agentloop."""

from agentloop.config import DEFAULT_PROVIDER

from .base import Provider, StreamEvent, assemble_reply
from .ollama import OllamaProvider
from .openai_compatible import OpenAICompatibleProvider

# Registry of available providers
PROVIDERS: dict[str, type[Provider]] = {
    "openai": OpenAICompatibleProvider,
    "ollama": OllamaProvider,
}


def create_provider(name: str = DEFAULT_PROVIDER, **kwargs) -> Provider:
    """Create a provider instance by name.

    Args:
        name: Provider name ("openai", "ollama")
        **kwargs: Provider-specific arguments (model_id, base_url, host, etc.)

    Returns:
        Configured provider instance

    Raises:
        ValueError: If provider name is unknown
    """
    if name not in PROVIDERS:
        available = ", ".join(PROVIDERS.keys())
        raise ValueError(f"Unknown provider '{name}'. Available: {available}")

    return PROVIDERS[name](**kwargs)


__all__ = [
    "Provider",
    "StreamEvent",
    "assemble_reply",
    "OllamaProvider",
    "OpenAICompatibleProvider",
    "PROVIDERS",
    "create_provider",
]
