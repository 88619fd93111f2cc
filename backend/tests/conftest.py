"""Test fixtures and configuration."""

import asyncio
import base64
import sys
from io import BytesIO
from itertools import count
from pathlib import Path
from typing import Optional

import pytest
from httpx import ASGITransport, AsyncClient
from PIL import Image

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.models import (  # noqa: E402
    GenerateRequest,
    GenerateResponse,
    Generation,
    GenerationCompleteData,
    GenerationCompleteEvent,
    GenerationStatus,
    ImageCompleteData,
    ImageCompleteEvent,
    ImageRecord,
    ModelInfo,
    StreamErrorData,
    StreamErrorEvent,
    is_terminal_event,
)
from providers import BaseImageProvider, ProviderError  # noqa: E402
from studio.exceptions import SubmissionError  # noqa: E402


def make_png_base64(width: int = 8, height: int = 4, color: str = "red") -> str:
    """A tiny PNG encoded as base64."""
    buffer = BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="PNG")
    return base64.b64encode(buffer.getvalue()).decode()


class FakeImageProvider(BaseImageProvider):
    """Returns tiny PNGs (or the given ``images``); models listed in ``failing`` raise."""

    name = "fake"

    def __init__(
        self,
        images_per_model: int = 1,
        failing: Optional[set[str]] = None,
        images: Optional[list[str]] = None,
    ):
        self.images_per_model = images_per_model
        self.failing = failing or set()
        self.images = images
        self.calls: list[dict] = []

    async def generate(self, prompt, model_id, aspect_ratio=None, reference_image_urls=None):
        self.calls.append({
            "prompt": prompt,
            "model_id": model_id,
            "aspect_ratio": aspect_ratio,
            "reference_image_urls": reference_image_urls,
        })
        if model_id in self.failing:
            raise ProviderError(f"{model_id} is unavailable")
        if self.images is not None:
            return list(self.images)
        return [make_png_base64() for _ in range(self.images_per_model)]


# --- Client-side doubles ---

class FakeService:
    """Stands in for GenerationService; hands out g1, g2, ... in call order."""

    def __init__(self, fail_prompts: Optional[set[str]] = None, models: Optional[list[ModelInfo]] = None):
        self.fail_prompts = fail_prompts or set()
        self.models = models or [ModelInfo(id="m1", name="m1", provider="test")]
        self.model_list_calls = 0
        self.requests: list[GenerateRequest] = []
        self.deleted: list[str] = []
        self.server_generations: list[Generation] = []
        self._ids = count(1)

    async def submit(self, request: GenerateRequest) -> GenerateResponse:
        self.requests.append(request)
        await asyncio.sleep(0)
        if request.prompt in self.fail_prompts:
            raise SubmissionError(f"Rejected: {request.prompt}", status_code=500)
        return GenerateResponse(generation_id=f"g{next(self._ids)}")

    async def list_generations(self, limit: int = 50, offset: int = 0) -> list[Generation]:
        return list(self.server_generations)

    async def delete_generation(self, generation_id: str):
        self.deleted.append(generation_id)
        self.server_generations = [g for g in self.server_generations if g.id != generation_id]

    async def list_models(self) -> list[ModelInfo]:
        self.model_list_calls += 1
        return list(self.models)


class FakeSubscription:
    """Subscription fed by the test through ``events``."""

    def __init__(self, generation_id: str):
        self.generation_id = generation_id
        self.events: asyncio.Queue = asyncio.Queue()
        self.closed = False

    def __aiter__(self):
        return self._iter()

    async def _iter(self):
        while not self.closed:
            item = await self.events.get()
            if isinstance(item, Exception):
                raise item
            yield item
            if is_terminal_event(item):
                return

    def push(self, *events):
        for event in events:
            self.events.put_nowait(event)

    async def close(self):
        self.closed = True


class FakeStreamClient:
    def __init__(self):
        self.subscriptions: dict[str, FakeSubscription] = {}

    def open(self, generation_id: str) -> FakeSubscription:
        subscription = FakeSubscription(generation_id)
        self.subscriptions[generation_id] = subscription
        return subscription


# --- Event builders ---

def image_event(generation_id: str, image_id: str, model_name: str, url: Optional[str] = None) -> ImageCompleteEvent:
    return ImageCompleteEvent(data=ImageCompleteData(
        id=image_id,
        generation_id=generation_id,
        url=url or f"/files/generated-images/{image_id}.png",
        model_name=model_name,
        width=1024,
        height=1024,
    ))


def complete_event(generation_id: str, total_images: int = 0, status=GenerationStatus.COMPLETED) -> GenerationCompleteEvent:
    return GenerationCompleteEvent(data=GenerationCompleteData(
        generation_id=generation_id,
        status=status,
        total_images=total_images,
    ))


def error_event(message: str) -> StreamErrorEvent:
    return StreamErrorEvent(data=StreamErrorData(message=message))


def placeholder(generation_id: str, model_name: str, image_id: Optional[str] = None) -> ImageRecord:
    return ImageRecord(
        id=image_id or f"{generation_id}-{model_name}-placeholder",
        url="",
        model_name=model_name,
        is_placeholder=True,
    )


async def settle(rounds: int = 10):
    """Let pending tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


# --- Fixtures ---

@pytest.fixture(scope="session")
def anyio_backend():
    """Use asyncio for async tests."""
    return "asyncio"


@pytest.fixture
def fake_provider():
    return FakeImageProvider()


@pytest.fixture
def api(tmp_path, monkeypatch, fake_provider):
    """The FastAPI app with a fresh store, temp storage and a fake provider."""
    import app.main as main_module
    from app.storage import LocalImageStorage
    from app.store import InMemoryGenerationStore
    from providers import get_provider_registry

    monkeypatch.setenv("STREAM_POLL_INTERVAL", "0.01")

    registry = get_provider_registry()
    original_provider = registry.get_image_provider("openrouter")
    original_store, original_storage = main_module._store, main_module._storage

    registry.register_image_provider("openrouter", fake_provider)
    main_module._store = InMemoryGenerationStore()
    main_module._storage = LocalImageStorage(tmp_path / "storage")

    try:
        yield main_module.app
    finally:
        registry.register_image_provider("openrouter", original_provider)
        main_module._store, main_module._storage = original_store, original_storage


@pytest.fixture
async def client(api, anyio_backend):
    """HTTP client bound to the app in-process."""
    transport = ASGITransport(app=api)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "live: tests that hit real AI APIs (cost money)")
