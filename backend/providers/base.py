"""Base classes for image providers."""

from abc import ABC, abstractmethod
from typing import Optional


class ProviderError(RuntimeError):
    """Raised when a provider cannot produce images."""


class BaseImageProvider(ABC):
    """Base class for image generation providers."""

    name: str = "base"

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        model_id: str,
        aspect_ratio: Optional[str] = None,
        reference_image_urls: Optional[list[str]] = None,
    ) -> list[str]:
        """Generate images from a prompt with a single model.

        Args:
            prompt: The text prompt for generation
            model_id: Provider model identifier
            aspect_ratio: Requested aspect ratio such as "16:9"
            reference_image_urls: Optional reference images for style/content

        Returns:
            List of images as base64 strings or data URLs

        Raises:
            ProviderError: if the provider rejects the request
        """
        pass
