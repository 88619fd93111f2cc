"""Reconciliation of stream events into the generations view state.

``apply_event`` is a pure function: it never mutates its input and returns
the same Generation objects for every generation the event does not touch.
"""

from typing import Sequence

from app.models import (
    Generation,
    GenerationCompleteEvent,
    ImageCompleteData,
    ImageCompleteEvent,
    ImageRecord,
    StreamEvent,
)


def _record_from(data: ImageCompleteData) -> ImageRecord:
    return ImageRecord(
        id=data.id,
        url=data.url,
        model_name=data.model_name,
        width=data.width,
        height=data.height,
        is_placeholder=False,
        created_at=data.created_at,
    )


def merge_image(images: Sequence[ImageRecord], data: ImageCompleteData) -> list[ImageRecord]:
    """Fold one finished image into a generation's image list.

    Order of preference:
    1. An image with the same id is updated in place.
    2. The first placeholder for the same model is replaced at its position.
       With duplicate model names this is the earliest one.
    3. Otherwise the image is appended.
    """
    merged = list(images)

    for index, image in enumerate(merged):
        if image.id == data.id:
            merged[index] = image.model_copy(update={
                "url": data.url,
                "model_name": data.model_name,
                "width": data.width,
                "height": data.height,
                "is_placeholder": False,
                "created_at": data.created_at or image.created_at,
            })
            return merged

    for index, image in enumerate(merged):
        if image.is_placeholder and image.model_name == data.model_name:
            merged[index] = _record_from(data)
            return merged

    merged.append(_record_from(data))
    return merged


def strip_placeholders(images: Sequence[ImageRecord]) -> list[ImageRecord]:
    """Drop images that never arrived."""
    return [image for image in images if not image.is_placeholder]


def apply_event(generations: Sequence[Generation], event: StreamEvent) -> list[Generation]:
    """Return the generations list with one stream event applied.

    ``error`` events, and events for generations not in view, leave the list
    unchanged.
    """
    updated = []
    for gen in generations:
        if isinstance(event, ImageCompleteEvent) and gen.id == event.data.generation_id:
            gen = gen.model_copy(update={"images": merge_image(gen.images, event.data)})
        elif isinstance(event, GenerationCompleteEvent) and gen.id == event.data.generation_id:
            gen = gen.model_copy(update={
                "images": strip_placeholders(gen.images),
                "status": event.data.status,
            })
        updated.append(gen)
    return updated
