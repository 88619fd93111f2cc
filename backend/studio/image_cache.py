"""Stable gallery image objects.

The gallery is recomputed whenever the generations list changes. Handing out
the same object for an image whose visible fields did not change lets the
rendering layer skip work for untouched tiles.
"""

from typing import Optional, Sequence

from pydantic import BaseModel, ConfigDict

from app.models import Generation, ImageRecord

Signature = tuple[str, str, bool]


class GalleryImage(BaseModel):
    """An image flattened together with its generation context."""
    model_config = ConfigDict(frozen=True)

    id: str
    url: str
    model_name: str
    width: Optional[int] = None
    height: Optional[int] = None
    is_placeholder: bool = False
    generation_id: str
    prompt: str
    aspect_ratio: str


def image_signature(image: ImageRecord) -> Signature:
    """The fields whose change requires a new gallery object."""
    return (image.url or "", image.model_name, image.is_placeholder)


class ImageCache:
    """Per-session cache of gallery images keyed by image id.

    Entries live exactly as long as their image is visible: ``collect`` evicts
    ids missing from the latest pass, and a generations list sharing no id
    with the previous one (another user, a full reload) clears everything.
    """

    def __init__(self):
        self._entries: dict[str, tuple[GalleryImage, Signature]] = {}
        self._seen: set[str] = set()
        self._previous_generation_ids: set[str] = set()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, image_id: object) -> bool:
        return image_id in self._entries

    def get_or_create(self, image: ImageRecord, generation: Generation) -> GalleryImage:
        """Return the cached object for ``image`` or build a new one."""
        self._seen.add(image.id)
        signature = image_signature(image)

        cached = self._entries.get(image.id)
        if cached is not None and cached[1] == signature:
            return cached[0]

        obj = GalleryImage(
            id=image.id,
            url=image.url or "",
            model_name=image.model_name,
            width=image.width,
            height=image.height,
            is_placeholder=image.is_placeholder,
            generation_id=generation.id,
            prompt=generation.prompt,
            aspect_ratio=generation.aspect_ratio or "1:1",
        )
        self._entries[image.id] = (obj, signature)
        return obj

    def track_generations(self, generations: Sequence[Generation]) -> bool:
        """Record the visible generation ids, clearing on a context switch.

        Returns:
            True if the cache was cleared
        """
        current = {gen.id for gen in generations}
        previous = self._previous_generation_ids
        switched = bool(previous) and bool(current) and previous.isdisjoint(current)
        if switched:
            self.clear()
        self._previous_generation_ids = current
        return switched

    def collect(self, generations: Sequence[Generation]) -> list[GalleryImage]:
        """Flatten every image of every generation into stable objects.

        Sorted by generation creation time (newest first), then image id.
        """
        self.track_generations(generations)
        self._seen = set()

        created = {gen.id: gen.created_at for gen in generations}
        images = [
            self.get_or_create(image, gen)
            for gen in generations
            for image in gen.images
        ]
        images.sort(key=lambda img: img.id)
        images.sort(key=lambda img: created[img.generation_id], reverse=True)

        for image_id in list(self._entries):
            if image_id not in self._seen:
                del self._entries[image_id]

        return images

    def clear(self):
        """Drop every cached entry."""
        self._entries.clear()
        self._seen.clear()
