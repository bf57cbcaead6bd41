from __future__ import annotations

import importlib

from clippy.models import ProviderConfig
from clippy.providers.base import Provider, ProviderError

PROVIDER_MAP: dict[str, str] = {
    "openai": "clippy.providers.openai.OpenAIProvider",
    "anthropic": "clippy.providers.anthropic.AnthropicProvider",
}

__all__ = ["PROVIDER_MAP", "Provider", "ProviderError", "get_provider"]


def get_provider(config: ProviderConfig, **kwargs) -> Provider:
    """Factory: resolve config.provider to an adapter class and instantiate."""
    if config.provider not in PROVIDER_MAP:
        raise ValueError(f"Unknown provider '{config.provider}'. Available: {list(PROVIDER_MAP)}")
    module_path, class_name = PROVIDER_MAP[config.provider].rsplit(".", 1)
    module = importlib.import_module(module_path)
    cls = getattr(module, class_name)
    return cls(config, **kwargs)
