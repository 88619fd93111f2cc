"""Image generation providers."""

from .base import BaseImageProvider, ProviderError
from .openrouter import OpenRouterImageProvider
from .registry import AVAILABLE_MODELS, ProviderRegistry, get_provider_registry

__all__ = [
    "AVAILABLE_MODELS",
    "BaseImageProvider",
    "OpenRouterImageProvider",
    "ProviderError",
    "ProviderRegistry",
    "get_provider_registry",
]
