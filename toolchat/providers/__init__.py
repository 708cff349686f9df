"""LLM providers for toolchat."""

from toolchat.config import DEFAULT_PROVIDER
from toolchat.errors import ConfigError

from .base import Provider, StreamEvent, Usage
from .ollama import OllamaProvider
from .openai_compatible import OpenAICompatibleProvider

# Registry of available providers
PROVIDERS: dict[str, type[Provider]] = {
    "ollama": OllamaProvider,
    "openai_compatible": OpenAICompatibleProvider,
}


def create_provider(name: str = DEFAULT_PROVIDER, **kwargs) -> Provider:
    """Create a provider instance by name.

    Args:
        name: Provider name ("ollama", "openai_compatible")
        **kwargs: Provider-specific arguments (model_id, host, etc.)

    Returns:
        Configured provider instance

    Raises:
        ConfigError: If provider name is unknown
    """
    if name not in PROVIDERS:
        available = ", ".join(PROVIDERS.keys())
        raise ConfigError(f"Unknown provider '{name}'. Available: {available}")

    return PROVIDERS[name](**kwargs)


__all__ = [
    "Provider",
    "StreamEvent",
    "Usage",
    "OllamaProvider",
    "OpenAICompatibleProvider",
    "PROVIDERS",
    "create_provider",
]
