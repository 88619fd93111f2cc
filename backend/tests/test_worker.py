"""Tests for the background generation worker and its collaborators."""

import base64
from datetime import timedelta

import httpx
import pytest

from app.events import format_sse, generation_event_stream
from app.models import (
    GenerateRequest,
    GenerationModel,
    GenerationStatus,
    ImageRecord,
    ReferenceImage,
    parse_stream_event,
)
from app.storage import LocalImageStorage, decode_base64_image, image_dimensions
from app.store import GenerationNotFound, InMemoryGenerationStore
from app.worker import GenerationWorker
from providers import ProviderRegistry
from studio.stream import iter_sse_data

from conftest import FakeImageProvider, error_event, make_png_base64


async def new_generation(store, request: GenerateRequest, user_id: str = "local"):
    registry = ProviderRegistry()
    models = [GenerationModel(model_id=m, model_name=registry.model_name(m)) for m in request.model_ids]
    return await store.create_generation(user_id, request, models)


async def frames(stream) -> list:
    async def lines():
        async for chunk in stream:
            for line in chunk.split("\n"):
                yield line

    return [parse_stream_event(data) async for data in iter_sse_data(lines())]


@pytest.fixture
def store():
    return InMemoryGenerationStore()


@pytest.fixture
def storage(tmp_path):
    return LocalImageStorage(tmp_path)


class TestGenerationWorker:
    @pytest.mark.asyncio
    async def test_images_recorded_per_model(self, store, storage, tmp_path):
        provider = FakeImageProvider(images_per_model=2)
        request = GenerateRequest(prompt="a fox", model_ids=["google/gemini-2.5-flash-image"], aspect_ratio="4:3")
        gen = await new_generation(store, request)

        await GenerationWorker(store, storage, provider, ProviderRegistry()).run(gen.id, request)

        result = await store.get_generation(gen.id)
        assert result.status == GenerationStatus.COMPLETED
        assert len(result.images) == 2
        assert {img.model_name for img in result.images} == {"Nano Banana"}
        assert len({img.id for img in result.images}) == 2
        assert all(img.created_at is not None for img in result.images)
        assert all((tmp_path / img.url.removeprefix("/files/")).is_file() for img in result.images)
        assert result.models[0].status == GenerationStatus.COMPLETED
        assert provider.calls[0]["aspect_ratio"] == "4:3"

    @pytest.mark.asyncio
    async def test_model_failure_is_recorded(self, store, storage):
        provider = FakeImageProvider(failing={"bad/model"})
        request = GenerateRequest(prompt="a fox", model_ids=["bad/model", "good/model"])
        gen = await new_generation(store, request)

        await GenerationWorker(store, storage, provider, ProviderRegistry()).run(gen.id, request)

        result = await store.get_generation(gen.id)
        assert result.status == GenerationStatus.COMPLETED
        assert [m.status for m in result.models] == [GenerationStatus.FAILED, GenerationStatus.COMPLETED]
        assert result.models[0].error == "bad/model is unavailable"
        assert [img.model_name for img in result.images] == ["good/model"]

    @pytest.mark.asyncio
    async def test_reference_urls_passed_through(self, store, storage):
        provider = FakeImageProvider()
        reference = ReferenceImage(url="https://cdn/x.png", key="reference-images/x.png", original_name="x.png")
        request = GenerateRequest(prompt="a fox", model_ids=["m1"], reference_image_urls=[reference])
        gen = await new_generation(store, request)

        await GenerationWorker(store, storage, provider, ProviderRegistry()).run(gen.id, request)

        assert provider.calls[0]["reference_image_urls"] == ["https://cdn/x.png"]

    @pytest.mark.asyncio
    async def test_hosted_image_url_is_downloaded(self, store, tmp_path):
        png = base64.b64decode(make_png_base64(width=6, height=2))
        requested = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(str(request.url))
            return httpx.Response(200, content=png, headers={"content-type": "image/png"})

        storage = LocalImageStorage(tmp_path, transport=httpx.MockTransport(handler))
        provider = FakeImageProvider(images=["https://cdn.example.com/out/image.png"])
        request = GenerateRequest(prompt="a fox", model_ids=["m1"])
        gen = await new_generation(store, request)

        await GenerationWorker(store, storage, provider, ProviderRegistry()).run(gen.id, request)

        result = await store.get_generation(gen.id)
        assert requested == ["https://cdn.example.com/out/image.png"]
        assert result.models[0].status == GenerationStatus.COMPLETED
        assert len(result.images) == 1
        assert result.images[0].url.startswith("/files/generated-images/")
        assert (result.images[0].width, result.images[0].height) == (6, 2)
        assert (tmp_path / result.images[0].url.removeprefix("/files/")).read_bytes() == png

    @pytest.mark.asyncio
    async def test_failed_download_fails_only_that_model(self, store, tmp_path):
        storage = LocalImageStorage(tmp_path, transport=httpx.MockTransport(lambda r: httpx.Response(404)))
        provider = FakeImageProvider(images=["https://cdn.example.com/gone.png"])
        request = GenerateRequest(prompt="a fox", model_ids=["m1"])
        gen = await new_generation(store, request)

        await GenerationWorker(store, storage, provider, ProviderRegistry()).run(gen.id, request)

        result = await store.get_generation(gen.id)
        assert result.status == GenerationStatus.COMPLETED
        assert result.models[0].status == GenerationStatus.FAILED
        assert result.images == []

    @pytest.mark.asyncio
    async def test_local_reference_sent_as_data_url(self, store, storage):
        png = make_png_base64()
        upload = await storage.upload_base64_image(png, "reference-images")
        provider = FakeImageProvider()
        reference = ReferenceImage(url=upload.url, key=upload.key, original_name="sketch.png")
        request = GenerateRequest(prompt="a fox", model_ids=["m1"], reference_image_urls=[reference])
        gen = await new_generation(store, request)

        await GenerationWorker(store, storage, provider, ProviderRegistry()).run(gen.id, request)

        assert provider.calls[0]["reference_image_urls"] == [f"data:image/png;base64,{png}"]

    @pytest.mark.asyncio
    async def test_deleted_generation_marks_nothing(self, store, storage):
        provider = FakeImageProvider()
        request = GenerateRequest(prompt="a fox", model_ids=["m1"])
        gen = await new_generation(store, request)
        await store.delete_generation(gen.id, "local")

        await GenerationWorker(store, storage, provider, ProviderRegistry()).run(gen.id, request)

        assert await store.get_generation(gen.id) is None


class TestEventStream:
    @pytest.mark.asyncio
    async def test_sends_each_image_once_then_completes(self, store, storage):
        request = GenerateRequest(prompt="a fox", model_ids=["m1"])
        gen = await new_generation(store, request)
        await store.add_image(gen.id, ImageRecord(id="a", url="/files/a.png", model_name="m1"))

        stream = generation_event_stream(store, gen.id, poll_interval=0)
        first = await stream.__anext__()
        assert '"id":"a"' in first

        await store.add_image(gen.id, ImageRecord(id="b", url="/files/b.png", model_name="m1"))
        await store.set_status(gen.id, GenerationStatus.COMPLETED)
        events = await frames(stream)

        assert [e.type for e in events] == ["image_complete", "generation_complete"]
        assert events[0].data.id == "b"
        assert events[1].data.total_images == 2

    @pytest.mark.asyncio
    async def test_failed_generation_completes_stream(self, store):
        request = GenerateRequest(prompt="a fox", model_ids=["m1"])
        gen = await new_generation(store, request)
        await store.set_status(gen.id, GenerationStatus.FAILED)

        events = await frames(generation_event_stream(store, gen.id, poll_interval=0))

        assert len(events) == 1
        assert events[0].data.status == GenerationStatus.FAILED

    @pytest.mark.asyncio
    async def test_missing_generation_sends_error(self, store):
        events = await frames(generation_event_stream(store, "missing", poll_interval=0))

        assert len(events) == 1
        assert events[0].data.message == "Generation not found"

    @pytest.mark.asyncio
    async def test_poll_failure_sends_error_and_keeps_polling(self, store):
        request = GenerateRequest(prompt="a fox", model_ids=["m1"])
        gen = await new_generation(store, request)
        original = store.get_generation
        calls = []

        async def flaky(generation_id, user_id=None):
            calls.append(generation_id)
            if len(calls) == 1:
                raise RuntimeError("database is down")
            await store.set_status(generation_id, GenerationStatus.COMPLETED)
            return await original(generation_id, user_id)

        store.get_generation = flaky
        events = await frames(generation_event_stream(store, gen.id, poll_interval=0))

        assert [e.type for e in events] == ["error", "generation_complete"]
        assert events[0].data.message == "Polling error"

    def test_format_sse(self):
        assert format_sse(error_event("x")) == 'data: {"type":"error","data":{"message":"x"}}\n\n'


class TestStore:
    @pytest.mark.asyncio
    async def test_get_restricted_to_owner(self, store):
        gen = await new_generation(store, GenerateRequest(prompt="a", model_ids=["m1"]), user_id="alice")

        assert await store.get_generation(gen.id, "alice") is not None
        assert await store.get_generation(gen.id, "bob") is None
        assert await store.get_generation(gen.id) is not None

    @pytest.mark.asyncio
    async def test_delete_by_non_owner(self, store):
        gen = await new_generation(store, GenerateRequest(prompt="a", model_ids=["m1"]), user_id="alice")

        with pytest.raises(GenerationNotFound):
            await store.delete_generation(gen.id, "bob")

    @pytest.mark.asyncio
    async def test_list_paginates(self, store):
        ids = []
        for n in range(3):
            gen = await new_generation(store, GenerateRequest(prompt=str(n), model_ids=["m1"]))
            ids.append(gen.id)

        page = await store.list_generations("local", limit=2, offset=1)

        assert len(page) == 2
        assert set(g.id for g in page) <= set(ids)

    @pytest.mark.asyncio
    async def test_timestamps_are_utc_aware(self, store):
        gen = await new_generation(store, GenerateRequest(prompt="a", model_ids=["m1"]))
        image = await store.add_image(gen.id, ImageRecord(id="i", url="/i.png", model_name="m1"))

        assert gen.created_at.utcoffset() == timedelta(0)
        assert image.created_at.utcoffset() == timedelta(0)

    @pytest.mark.asyncio
    async def test_returned_objects_are_copies(self, store):
        gen = await new_generation(store, GenerateRequest(prompt="a", model_ids=["m1"]))
        gen.images.append(ImageRecord(id="sneaky", url="/x.png", model_name="m1"))

        stored = await store.get_generation(gen.id)

        assert stored.images == []


class TestStorage:
    @pytest.mark.asyncio
    async def test_upload_data_url(self, storage, tmp_path):
        result = await storage.upload_base64_image(
            f"data:image/jpeg;base64,{make_png_base64(width=3, height=5)}", "generated-images"
        )

        assert result.key.startswith("generated-images/")
        assert result.key.endswith(".jpg")
        assert result.url == f"/files/{result.key}"
        assert (result.width, result.height) == (3, 5)
        assert storage.resolve(result.key) == (tmp_path / result.key).resolve()

    @pytest.mark.asyncio
    async def test_upload_keeps_file_name_suffix(self, storage):
        result = await storage.upload_file(b"not an image", "reference-images", file_name="notes.webp")

        assert result.key.endswith(".webp")
        assert (result.width, result.height) == (None, None)

    def test_resolve_refuses_escape(self, storage, tmp_path):
        (tmp_path.parent / "secret.txt").write_text("x")

        assert storage.resolve("../secret.txt") is None
        assert storage.resolve("missing.png") is None

    def test_decode_plain_base64(self):
        content, content_type = decode_base64_image(make_png_base64())

        assert content_type == "image/png"
        assert image_dimensions(content) == (8, 4)
