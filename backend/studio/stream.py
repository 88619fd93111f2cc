"""Per-generation event stream client.

A ``StreamSubscription`` is an async iterator of typed stream events backed
by one SSE connection. Iteration ends after a ``generation_complete`` or
``error`` event. A dropped connection raises ``StreamConnectionLost``; there
is no reconnect, so images produced after a drop are never observed.
"""

import asyncio
import logging
from typing import AsyncIterator, Optional

import httpx
from pydantic import ValidationError

from app.models import StreamEvent, is_terminal_event, parse_stream_event
from studio.exceptions import StreamConnectionLost

logger = logging.getLogger(__name__)


async def iter_sse_data(lines: AsyncIterator[str]) -> AsyncIterator[str]:
    """Yield the data of each complete SSE frame.

    Multi-line data is joined with newlines, comment lines and fields other
    than ``data`` are ignored, and a frame cut off by end of stream is
    discarded.
    """
    buffer: list[str] = []
    async for line in lines:
        line = line.rstrip("\r\n")
        if not line:
            if buffer:
                yield "\n".join(buffer)
                buffer = []
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        if field == "data":
            buffer.append(value[1:] if value.startswith(" ") else value)


def stream_path(generation_id: str) -> str:
    return f"/api/generation/{generation_id}/stream"


class StreamSubscription:
    """One live event stream for one generation."""

    def __init__(self, client: httpx.AsyncClient, generation_id: str):
        self._client = client
        self.generation_id = generation_id
        self._closed = False
        self._reader: Optional[asyncio.Task] = None

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> AsyncIterator[StreamEvent]:
        return self._events()

    async def _events(self) -> AsyncIterator[StreamEvent]:
        if self._closed:
            return
        self._reader = asyncio.current_task()

        try:
            async with self._client.stream(
                "GET",
                stream_path(self.generation_id),
                headers={"Accept": "text/event-stream"},
                timeout=None,
            ) as response:
                if response.status_code != 200:
                    raise StreamConnectionLost(
                        self.generation_id, f"Connection lost (HTTP {response.status_code})"
                    )

                async for data in iter_sse_data(response.aiter_lines()):
                    event = self._parse(data)
                    if event is None:
                        continue
                    yield event
                    if is_terminal_event(event) or self._closed:
                        return
        except httpx.HTTPError as e:
            logger.error(f"Stream for generation {self.generation_id} failed: {e}")
            raise StreamConnectionLost(self.generation_id) from e
        finally:
            self._closed = True
            self._reader = None

        # The server hung up without a terminal event
        raise StreamConnectionLost(self.generation_id)

    def _parse(self, data: str) -> Optional[StreamEvent]:
        try:
            return parse_stream_event(data)
        except ValidationError as e:
            logger.warning(f"Ignoring malformed event on generation {self.generation_id}: {e}")
            return None

    async def close(self):
        """Stop observing the stream. Safe to call more than once.

        Closing from another task cancels the reader and waits for it to
        release the connection. The producer is not told to stop.
        """
        self._closed = True
        reader = self._reader
        if reader is not None and reader is not asyncio.current_task() and not reader.done():
            reader.cancel()
            await asyncio.wait([reader])


class StreamClient:
    """Opens event streams against the studio backend."""

    def __init__(self, client: httpx.AsyncClient):
        self._client = client

    def open(self, generation_id: str) -> StreamSubscription:
        """Create a subscription; the connection opens on first iteration."""
        return StreamSubscription(self._client, generation_id)
