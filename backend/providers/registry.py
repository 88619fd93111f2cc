"""Provider registry and model catalogue."""

from typing import Optional

from app.models import ModelInfo

from .base import BaseImageProvider
from .openrouter import OpenRouterImageProvider


# Image-capable models routed through OpenRouter
AVAILABLE_MODELS: list[ModelInfo] = [
    ModelInfo(id="openai/gpt-5-image", name="GPT-5 Image", provider="OpenAI"),
    ModelInfo(id="openai/gpt-5-image-mini", name="GPT-5 Image Mini", provider="OpenAI"),
    ModelInfo(id="google/gemini-3-pro-image-preview", name="Gemini 3 Pro Image", provider="Google"),
    ModelInfo(id="google/gemini-2.5-flash-image", name="Nano Banana", provider="Google"),
    ModelInfo(id="bytedance-seed/seedream-4.5", name="Seedream 4.5", provider="ByteDance Seed"),
    ModelInfo(id="black-forest-labs/flux.2-max", name="FLUX.2 Max", provider="Black Forest Labs"),
]


class ProviderRegistry:
    """Registry for image providers and the models they serve."""

    def __init__(self):
        self._image_providers: dict[str, BaseImageProvider] = {}
        self._models: dict[str, ModelInfo] = {m.id: m for m in AVAILABLE_MODELS}

        self._register_defaults()

    def _register_defaults(self):
        """Register the default providers."""
        self._image_providers["openrouter"] = OpenRouterImageProvider()

    def get_image_provider(self, name: str) -> BaseImageProvider:
        """Get an image provider by name."""
        if name not in self._image_providers:
            available = list(self._image_providers.keys())
            raise ValueError(f"Unknown image provider: {name}. Available: {available}")
        return self._image_providers[name]

    def register_image_provider(self, name: str, provider: BaseImageProvider):
        """Register a custom image provider."""
        self._image_providers[name] = provider

    def list_image_providers(self) -> list[str]:
        """List available image providers."""
        return list(self._image_providers.keys())

    def register_model(self, model: ModelInfo):
        """Add a model to the catalogue."""
        self._models[model.id] = model

    def list_models(self) -> list[ModelInfo]:
        """List catalogue models in registration order."""
        return list(self._models.values())

    def get_model(self, model_id: str) -> Optional[ModelInfo]:
        return self._models.get(model_id)

    def model_name(self, model_id: str) -> str:
        """Display name for a model, falling back to its id."""
        model = self._models.get(model_id)
        return model.name if model else model_id


# Singleton instance
_registry: Optional[ProviderRegistry] = None


def get_provider_registry() -> ProviderRegistry:
    """Get the global provider registry."""
    global _registry
    if _registry is None:
        _registry = ProviderRegistry()
    return _registry
