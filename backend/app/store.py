"""Generation store.

The relational store is an external collaborator; the server only talks to it
through ``BaseGenerationStore``. ``InMemoryGenerationStore`` keeps everything
in process, which is enough for local use and for tests.
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from app.models import (
    GenerateRequest,
    Generation,
    GenerationModel,
    GenerationStatus,
    ImageRecord,
)


class GenerationNotFound(LookupError):
    """Raised when a generation does not exist or is not owned by the user."""


class BaseGenerationStore(ABC):
    """Persistence contract for generations and their images."""

    @abstractmethod
    async def create_generation(
        self,
        user_id: str,
        request: GenerateRequest,
        models: list[GenerationModel],
    ) -> Generation:
        """Record a new generation in ``processing`` state."""

    @abstractmethod
    async def get_generation(self, generation_id: str, user_id: Optional[str] = None) -> Optional[Generation]:
        """Get a generation, optionally restricted to its owner."""

    @abstractmethod
    async def list_generations(self, user_id: str, limit: int = 50, offset: int = 0) -> list[Generation]:
        """List a user's generations, newest first."""

    @abstractmethod
    async def delete_generation(self, generation_id: str, user_id: str) -> None:
        """Delete a generation with its images, models and references.

        Raises:
            GenerationNotFound: if missing or owned by someone else
        """

    @abstractmethod
    async def add_image(self, generation_id: str, image: ImageRecord) -> ImageRecord:
        """Attach a finished image to a generation."""

    @abstractmethod
    async def set_model_status(
        self,
        generation_id: str,
        model_id: str,
        status: GenerationStatus,
        error: Optional[str] = None,
    ) -> None:
        """Update the per-model progress record."""

    @abstractmethod
    async def set_status(self, generation_id: str, status: GenerationStatus) -> None:
        """Update the overall generation status."""


class InMemoryGenerationStore(BaseGenerationStore):
    """Process-local store guarded by an asyncio lock."""

    def __init__(self):
        self._generations: dict[str, Generation] = {}
        self._owners: dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def create_generation(
        self,
        user_id: str,
        request: GenerateRequest,
        models: list[GenerationModel],
    ) -> Generation:
        generation = Generation(
            id=uuid4().hex,
            prompt=request.prompt,
            negative_prompt=request.negative_prompt,
            aspect_ratio=request.aspect_ratio,
            status=GenerationStatus.PROCESSING,
            models=models,
            reference_images=list(request.reference_image_urls or []),
        )
        async with self._lock:
            self._generations[generation.id] = generation
            self._owners[generation.id] = user_id
        return generation.model_copy(deep=True)

    async def get_generation(self, generation_id: str, user_id: Optional[str] = None) -> Optional[Generation]:
        async with self._lock:
            generation = self._generations.get(generation_id)
            if generation is None:
                return None
            if user_id is not None and self._owners.get(generation_id) != user_id:
                return None
            return generation.model_copy(deep=True)

    async def list_generations(self, user_id: str, limit: int = 50, offset: int = 0) -> list[Generation]:
        async with self._lock:
            owned = [
                g for gid, g in self._generations.items()
                if self._owners.get(gid) == user_id
            ]
        owned.sort(key=lambda g: g.created_at, reverse=True)
        return [g.model_copy(deep=True) for g in owned[offset:offset + limit]]

    async def delete_generation(self, generation_id: str, user_id: str) -> None:
        async with self._lock:
            if self._owners.get(generation_id) != user_id:
                raise GenerationNotFound(generation_id)
            del self._generations[generation_id]
            del self._owners[generation_id]

    async def add_image(self, generation_id: str, image: ImageRecord) -> ImageRecord:
        async with self._lock:
            generation = self._require(generation_id)
            if image.created_at is None:
                image = image.model_copy(update={"created_at": datetime.now(timezone.utc)})
            generation.images.append(image)
            return image

    async def set_model_status(
        self,
        generation_id: str,
        model_id: str,
        status: GenerationStatus,
        error: Optional[str] = None,
    ) -> None:
        async with self._lock:
            generation = self._require(generation_id)
            for model in generation.models:
                if model.model_id == model_id:
                    model.status = status
                    model.error = error

    async def set_status(self, generation_id: str, status: GenerationStatus) -> None:
        async with self._lock:
            self._require(generation_id).status = status

    def _require(self, generation_id: str) -> Generation:
        generation = self._generations.get(generation_id)
        if generation is None:
            raise GenerationNotFound(generation_id)
        return generation
