"""Studio session: the client-side coordinator.

Owns, for one user session:
- the generations view state (server list plus optimistic placeholders)
- the job queue that submits work one item at a time
- one event stream subscription per in-flight generation
- the image cache feeding the gallery
- transient notifications

Everything is created with the session and released by ``aclose()``.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional, Sequence

import httpx

from app.config import get_config
from app.models import (
    GenerateRequest,
    GenerateResponse,
    Generation,
    GenerationCompleteEvent,
    ImageRecord,
    ModelInfo,
    QueueItem,
    QueueStatus,
    ReferenceImage,
    StreamErrorEvent,
    placeholder_id,
)
from app.styles import build_styled_prompt
from studio.exceptions import InvalidSubmission, StreamConnectionLost
from studio.image_cache import GalleryImage, ImageCache
from studio.notifications import Notifier
from studio.queue import JobQueue
from studio.reconcile import apply_event
from studio.service import GenerationService
from studio.stream import StreamClient, StreamSubscription

logger = logging.getLogger(__name__)


class StudioSession:
    """Coordinates submissions, event streams and view state."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        user_id: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        service: Optional[GenerationService] = None,
        stream_client: Optional[StreamClient] = None,
        notifier: Optional[Notifier] = None,
        models: Optional[Sequence[ModelInfo]] = None,
        initial_generations: Optional[Sequence[Generation]] = None,
        on_change: Optional[Callable[[], None]] = None,
    ):
        self._owns_client = False
        if client is None and (service is None or stream_client is None):
            headers = {"X-User-Id": user_id} if user_id else None
            client = httpx.AsyncClient(base_url=base_url or get_config().server_url, headers=headers)
            self._owns_client = True
        self._client = client

        self.service = service or GenerationService(client)
        self.stream_client = stream_client or StreamClient(client)
        self.notifier = notifier or Notifier()
        self.image_cache = ImageCache()
        self._models: dict[str, ModelInfo] = {m.id: m for m in models or []}
        self._models_lock = asyncio.Lock()
        self._generations: list[Generation] = list(initial_generations or [])
        self._subscriptions: dict[str, tuple[StreamSubscription, asyncio.Task]] = {}
        self._on_change = on_change
        self._closed = False

        self.queue = JobQueue(self._submit)
        self.queue.set_callbacks(
            on_accepted=self._on_accepted,
            on_failed=self._on_failed,
            on_change=lambda status: self._notify_change(),
        )

    async def __aenter__(self) -> "StudioSession":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    # --- View state ---

    @property
    def generations(self) -> list[Generation]:
        return list(self._generations)

    def get_generation(self, generation_id: str) -> Optional[Generation]:
        for gen in self._generations:
            if gen.id == generation_id:
                return gen
        return None

    def replace_generations(self, generations: Sequence[Generation]):
        """Swap in a full list from the server (reload, user switch)."""
        self._generations = list(generations)
        self._notify_change()

    def gallery_images(self) -> list[GalleryImage]:
        """Stable gallery objects for the current view state."""
        return self.image_cache.collect(self._generations)

    def get_status(self) -> QueueStatus:
        return self.queue.get_status()

    @property
    def active_streams(self) -> list[str]:
        return list(self._subscriptions)

    async def load_models(self) -> list[ModelInfo]:
        """Fetch the model catalogue if it was not given up front."""
        async with self._models_lock:
            if not self._models:
                self._models = {m.id: m for m in await self.service.list_models()}
        return list(self._models.values())

    def model_names(self, model_ids: Iterable[str]) -> list[str]:
        """Display names from the catalogue, falling back to the id."""
        return [self._models[m].name if m in self._models else m for m in model_ids]

    async def refresh(self, limit: int = 50):
        """Reload the generations list from the server."""
        self.replace_generations(await self.service.list_generations(limit=limit))

    async def delete_generation(self, generation_id: str):
        """Delete on the server, then reload the whole list."""
        try:
            await self.service.delete_generation(generation_id)
        except httpx.HTTPError as e:
            self.notifier.error(f"Failed to delete generation: {e}")
            raise
        self.notifier.success("Generation deleted")
        await self.refresh()

    # --- Submission ---

    def add_to_queue(
        self,
        prompt: str,
        model_ids: Sequence[str],
        aspect_ratios: Sequence[str] = ("1:1",),
        styles: Sequence[str] = (),
        reference_images: Optional[Sequence[ReferenceImage]] = None,
    ) -> QueueItem:
        """Queue a prompt for every selected model and aspect ratio.

        Raises:
            InvalidSubmission: if the prompt, models or aspect ratios are empty
        """
        if not prompt.strip():
            self._reject("Please enter a prompt")
        if not model_ids:
            self._reject("Please select at least one model")
        if not aspect_ratios:
            self._reject("Please select at least one aspect ratio")

        item = QueueItem(
            prompt=build_styled_prompt(prompt, styles),
            aspect_ratios=list(aspect_ratios),
            model_ids=list(model_ids),
            model_names=self.model_names(model_ids),
            selected_styles=list(styles),
            reference_image_urls=list(reference_images) if reference_images else None,
        )
        self.queue.enqueue(item)

        count = len(item.aspect_ratios)
        self.notifier.success(f"Queued for generation ({count} aspect ratio{'s' if count > 1 else ''})")
        return item

    async def _submit(self, request: GenerateRequest) -> GenerateResponse:
        # Placeholder names must match the names the server gives real images
        await self.load_models()
        return await self.service.submit(request)

    def _reject(self, message: str):
        self.notifier.error(message)
        raise InvalidSubmission(message)

    def _on_accepted(self, item: QueueItem, accepted: list[tuple[GenerateRequest, GenerateResponse]]):
        item.model_names = self.model_names(item.model_ids)
        now = datetime.now(timezone.utc)
        optimistic = [
            Generation(
                id=response.generation_id,
                prompt=item.prompt,
                aspect_ratio=request.aspect_ratio,
                created_at=now,
                images=[
                    ImageRecord(
                        id=placeholder_id(response.generation_id, name),
                        url="",
                        model_name=name,
                        is_placeholder=True,
                    )
                    for name in item.model_names
                ],
            )
            for request, response in accepted
        ]
        self._generations = optimistic + self._generations

        for _, response in accepted:
            self.open_stream(response.generation_id)
        self._notify_change()

    def _on_failed(self, item: QueueItem, error: Exception):
        self.notifier.error(item.error or "Failed to generate images")

    # --- Streams ---

    def open_stream(self, generation_id: str):
        """Start following a generation's event stream."""
        if self._closed or generation_id in self._subscriptions:
            return
        subscription = self.stream_client.open(generation_id)
        task = asyncio.get_running_loop().create_task(self._consume(subscription))
        self._subscriptions[generation_id] = (subscription, task)

    async def _consume(self, subscription: StreamSubscription):
        try:
            async for event in subscription:
                self._generations = apply_event(self._generations, event)
                if isinstance(event, GenerationCompleteEvent):
                    self.notifier.success("Generation complete!")
                elif isinstance(event, StreamErrorEvent):
                    self.notifier.error(event.data.message)
                self._notify_change()
        except StreamConnectionLost as e:
            logger.warning(f"Lost stream for generation {e.generation_id}")
            self.notifier.error("Connection lost")
        finally:
            await subscription.close()
            self._subscriptions.pop(subscription.generation_id, None)

    async def wait_for_streams(self, generation_ids: Optional[Iterable[str]] = None):
        """Wait until the given (default: all active) streams have finished."""
        ids = list(generation_ids) if generation_ids is not None else list(self._subscriptions)
        tasks = [self._subscriptions[gid][1] for gid in ids if gid in self._subscriptions]
        if tasks:
            await asyncio.wait(tasks)

    async def wait_idle(self):
        """Wait for the queue to drain and every stream to finish."""
        await self.queue.wait_idle()
        await self.wait_for_streams()

    # --- Lifecycle ---

    async def aclose(self):
        """Close every subscription and release the HTTP client."""
        self._closed = True
        for subscription, task in list(self._subscriptions.values()):
            await subscription.close()
            if not task.done():
                task.cancel()
        tasks = [task for _, task in self._subscriptions.values()]
        if tasks:
            await asyncio.wait(tasks)
        self._subscriptions.clear()
        self.image_cache.clear()

        if self._owns_client and self._client is not None:
            await self._client.aclose()

    def _notify_change(self):
        if self._on_change:
            self._on_change()
