"""Local job queue for generation submissions.

Submissions wait here until the backend has accepted them. The drainer sends
one item at a time; once accepted, an item is tracked through its event
streams and leaves the queue.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from app.models import (
    GenerateRequest,
    GenerateResponse,
    QueueItem,
    QueueItemStatus,
    QueueStatus,
)

logger = logging.getLogger(__name__)

SubmitFn = Callable[[GenerateRequest], Awaitable[GenerateResponse]]
AcceptedFn = Callable[[QueueItem, list[tuple[GenerateRequest, GenerateResponse]]], None]
FailedFn = Callable[[QueueItem, Exception], None]


class JobQueue:
    """FIFO queue with a single-concurrency drainer.

    At most one item is ``processing`` at any time. The ``_draining`` flag is
    checked and set without an ``await`` in between, so a second drain
    started from the same event loop backs off immediately.
    """

    def __init__(self, submit: SubmitFn):
        self._submit = submit
        self._items: list[QueueItem] = []
        self._draining = False
        self._drain_task: Optional[asyncio.Task] = None

        self._on_accepted: Optional[AcceptedFn] = None
        self._on_failed: Optional[FailedFn] = None
        self._on_change: Optional[Callable[[QueueStatus], None]] = None

    def set_callbacks(
        self,
        on_accepted: Optional[AcceptedFn] = None,
        on_failed: Optional[FailedFn] = None,
        on_change: Optional[Callable[[QueueStatus], None]] = None,
    ):
        """Set callback functions for queue outcomes and status changes."""
        self._on_accepted = on_accepted
        self._on_failed = on_failed
        self._on_change = on_change

    @property
    def items(self) -> list[QueueItem]:
        return list(self._items)

    @property
    def is_draining(self) -> bool:
        return self._draining

    def __len__(self) -> int:
        return len(self._items)

    def get_status(self) -> QueueStatus:
        """Get current queue counts."""
        return QueueStatus(
            pending=sum(1 for i in self._items if i.status == QueueItemStatus.PENDING),
            processing=sum(1 for i in self._items if i.status == QueueItemStatus.PROCESSING),
            total=len(self._items),
        )

    def enqueue(self, item: QueueItem) -> QueueItem:
        """Append an item and make sure a drain is running."""
        self._items.append(item)
        self._notify()
        self._schedule_drain()
        return item

    def _schedule_drain(self):
        if self._draining:
            return
        if self._drain_task is None or self._drain_task.done():
            self._drain_task = asyncio.get_running_loop().create_task(self.drain())

    async def wait_idle(self):
        """Wait until the current drain has nothing left to do."""
        while self._drain_task is not None and not self._drain_task.done():
            await self._drain_task

    def _next_pending(self) -> Optional[QueueItem]:
        for item in self._items:
            if item.status == QueueItemStatus.PENDING:
                return item
        return None

    async def drain(self):
        """Process pending items one at a time until none are left."""
        while True:
            if self._draining:
                return
            item = self._next_pending()
            if item is None:
                return

            self._draining = True
            try:
                await self._process(item)
            finally:
                self._draining = False

    async def _process(self, item: QueueItem):
        item.status = QueueItemStatus.PROCESSING
        self._notify()

        # One generation per aspect ratio, submitted concurrently
        requests = [
            GenerateRequest(
                prompt=item.prompt,
                aspect_ratio=aspect_ratio,
                model_ids=item.model_ids,
                reference_image_urls=item.reference_image_urls,
            )
            for aspect_ratio in item.aspect_ratios
        ]

        try:
            responses = await asyncio.gather(*(self._submit(r) for r in requests))
        except Exception as e:
            logger.error(f"Submission of queue item {item.id} failed: {e}")
            item.status = QueueItemStatus.FAILED
            item.error = str(e) or "Failed to generate images"
            self._remove(item)
            if self._on_failed:
                self._on_failed(item, e)
            return

        item.status = QueueItemStatus.COMPLETED
        logger.info(f"Queue item {item.id} accepted as {len(responses)} generation(s)")
        if self._on_accepted:
            self._on_accepted(item, list(zip(requests, responses)))
        self._remove(item)

    def _remove(self, item: QueueItem):
        self._items = [i for i in self._items if i.id != item.id]
        self._notify()

    def _notify(self):
        """Notify listeners of status change."""
        if self._on_change:
            self._on_change(self.get_status())

    def clear(self):
        """Drop every item that is not currently being submitted."""
        self._items = [i for i in self._items if i.status == QueueItemStatus.PROCESSING]
        self._notify()
