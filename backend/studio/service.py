"""HTTP client for the studio backend's generation endpoints."""

import base64
import mimetypes
from pathlib import Path
from typing import Any

import httpx

from app.models import (
    GenerateRequest,
    GenerateResponse,
    Generation,
    ModelInfo,
    ReferenceImage,
)
from studio.exceptions import SubmissionError


def _error_detail(response: httpx.Response) -> str:
    try:
        detail: Any = response.json().get("detail")
    except ValueError:
        detail = None
    if isinstance(detail, list):
        # FastAPI validation errors
        detail = "; ".join(str(d.get("msg", d)) for d in detail)
    return detail or f"HTTP {response.status_code}"


class GenerationService:
    """Submits, lists and deletes generations on the backend."""

    def __init__(self, client: httpx.AsyncClient):
        self._client = client

    async def submit(self, request: GenerateRequest) -> GenerateResponse:
        """Start one generation.

        Raises:
            SubmissionError: if the backend refuses or cannot be reached
        """
        try:
            response = await self._client.post(
                "/generations", json=request.model_dump(mode="json", exclude_none=True)
            )
        except httpx.HTTPError as e:
            raise SubmissionError(f"Failed to generate images: {e}") from e
        if response.is_error:
            raise SubmissionError(_error_detail(response), status_code=response.status_code)
        return GenerateResponse.model_validate(response.json())

    async def list_generations(self, limit: int = 50, offset: int = 0) -> list[Generation]:
        response = await self._client.get("/generations", params={"limit": limit, "offset": offset})
        response.raise_for_status()
        return [Generation.model_validate(g) for g in response.json()["generations"]]

    async def get_generation(self, generation_id: str) -> Generation:
        response = await self._client.get(f"/generations/{generation_id}")
        response.raise_for_status()
        return Generation.model_validate(response.json())

    async def delete_generation(self, generation_id: str):
        """Delete a generation; raises ``httpx.HTTPStatusError`` on failure."""
        response = await self._client.delete(f"/generations/{generation_id}")
        response.raise_for_status()

    async def list_models(self) -> list[ModelInfo]:
        response = await self._client.get("/models")
        response.raise_for_status()
        return [ModelInfo.model_validate(m) for m in response.json()["models"]]

    async def upload_reference_image(self, path: Path) -> ReferenceImage:
        """Upload a local file to be used as a reference image."""
        content_type = mimetypes.guess_type(path.name)[0] or "image/png"
        response = await self._client.post("/reference-images", json={
            "base64": base64.b64encode(path.read_bytes()).decode(),
            "file_name": path.name,
            "content_type": content_type,
        })
        response.raise_for_status()
        return ReferenceImage.model_validate(response.json())
