"""Server-Sent Events for generation progress.

Each generation gets its own stream. The stream polls the store at a fixed
interval and pushes:
- one ``image_complete`` per newly stored image
- ``generation_complete`` once the generation is completed or failed, after
  which the stream ends
- ``error`` when a poll fails (polling continues)
"""

import asyncio
import logging
from typing import AsyncIterator, Union

from app.models import (
    GenerationCompleteData,
    GenerationCompleteEvent,
    GenerationStatus,
    ImageCompleteData,
    ImageCompleteEvent,
    StreamErrorData,
    StreamErrorEvent,
)
from app.store import BaseGenerationStore

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = (GenerationStatus.COMPLETED, GenerationStatus.FAILED)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}

AnyEvent = Union[ImageCompleteEvent, GenerationCompleteEvent, StreamErrorEvent]


def format_sse(event: AnyEvent) -> str:
    """Encode one event as an SSE ``data:`` frame."""
    return f"data: {event.model_dump_json()}\n\n"


async def generation_event_stream(
    store: BaseGenerationStore,
    generation_id: str,
    poll_interval: float = 0.5,
) -> AsyncIterator[str]:
    """Yield SSE frames for a generation until it reaches a terminal state."""
    sent_image_ids: set[str] = set()

    while True:
        try:
            generation = await store.get_generation(generation_id)
            if generation is None:
                yield format_sse(StreamErrorEvent(data=StreamErrorData(message="Generation not found")))
                return

            for image in generation.images:
                if image.id in sent_image_ids:
                    continue
                sent_image_ids.add(image.id)
                yield format_sse(ImageCompleteEvent(data=ImageCompleteData(
                    id=image.id,
                    generation_id=generation_id,
                    url=image.url,
                    model_name=image.model_name,
                    width=image.width,
                    height=image.height,
                    created_at=image.created_at,
                )))

            if generation.status in TERMINAL_STATUSES:
                yield format_sse(GenerationCompleteEvent(data=GenerationCompleteData(
                    generation_id=generation_id,
                    status=generation.status,
                    total_images=len(generation.images),
                )))
                return
        except Exception as e:
            logger.error(f"SSE poll error for generation {generation_id}: {e}")
            yield format_sse(StreamErrorEvent(data=StreamErrorData(message="Polling error")))

        await asyncio.sleep(poll_interval)
