"""OpenRouter provider for multi-vendor image generation."""

import logging
from typing import Any, Optional

import httpx

from app.config import get_config

from .base import BaseImageProvider, ProviderError

logger = logging.getLogger(__name__)


def _extract_image(raw: Any) -> str:
    """Normalize one entry of ``message.images``.

    OpenRouter returns either a bare string or
    ``{"type": "image_url", "image_url": {"url": "..."}}``.
    """
    if isinstance(raw, str):
        return raw
    if isinstance(raw, dict) and isinstance(raw.get("image_url"), dict):
        return raw["image_url"].get("url", "")
    logger.warning(f"Unknown image format in OpenRouter response: {raw!r}")
    return ""


class OpenRouterImageProvider(BaseImageProvider):
    """Image generation through OpenRouter chat completions."""

    name = "openrouter"

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        """Initialize the provider.

        Args:
            transport: Optional httpx transport, used to stub the API in tests
        """
        self._transport = transport

    def build_payload(
        self,
        prompt: str,
        model_id: str,
        aspect_ratio: Optional[str] = None,
        reference_image_urls: Optional[list[str]] = None,
    ) -> dict[str, Any]:
        """Build the chat-completions request body."""
        content: Any = prompt
        if reference_image_urls:
            # Vision-capable models take images and text as content parts
            content = [{"type": "text", "text": prompt}]
            content.extend(
                {"type": "image_url", "image_url": {"url": url}}
                for url in reference_image_urls
            )

        payload: dict[str, Any] = {
            "model": model_id,
            "messages": [{"role": "user", "content": content}],
            "modalities": ["image", "text"],
        }
        if aspect_ratio:
            payload["image_config"] = {"aspect_ratio": aspect_ratio}
        return payload

    async def generate(
        self,
        prompt: str,
        model_id: str,
        aspect_ratio: Optional[str] = None,
        reference_image_urls: Optional[list[str]] = None,
    ) -> list[str]:
        """Generate images with one OpenRouter model."""
        config = get_config().providers
        if not config.openrouter_api_key:
            raise ProviderError("OPENROUTER_API_KEY is not configured")

        payload = self.build_payload(prompt, model_id, aspect_ratio, reference_image_urls)
        headers = {
            "Authorization": f"Bearer {config.openrouter_api_key}",
            "HTTP-Referer": config.app_url,
            "X-Title": config.app_title,
        }

        logger.info(f"Requesting images from {model_id} (aspect ratio {aspect_ratio or 'default'})")
        async with httpx.AsyncClient(
            base_url=config.openrouter_base_url,
            timeout=config.request_timeout,
            transport=self._transport,
        ) as client:
            response = await client.post("/chat/completions", json=payload, headers=headers)

        if response.is_error:
            try:
                detail = response.json().get("error", {}).get("message")
            except ValueError:
                detail = None
            raise ProviderError(
                f"OpenRouter API error: {response.status_code} - {detail or response.reason_phrase}"
            )

        data = response.json()
        if data.get("error"):
            raise ProviderError(f"OpenRouter API error: {data['error'].get('message')}")

        choices = data.get("choices") or [{}]
        raw_images = choices[0].get("message", {}).get("images") or []
        return [image for image in map(_extract_image, raw_images) if image]
