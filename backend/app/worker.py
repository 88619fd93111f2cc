"""Background processing of submitted generations.

Runs after ``POST /generations`` has answered, so the client only learns
about progress through the event stream.
"""

import logging
from uuid import uuid4

from app.models import GenerateRequest, GenerationStatus, ImageRecord
from app.storage import BaseImageStorage
from app.store import BaseGenerationStore, GenerationNotFound
from providers import BaseImageProvider, ProviderRegistry

logger = logging.getLogger(__name__)


class GenerationWorker:
    """Generates one generation's images, one model at a time.

    For each requested model it:
    1. Marks the model as processing
    2. Calls the provider
    3. Uploads and records every returned image as soon as it is ready
    4. Marks the model completed, or failed with the provider's message

    A failing model does not stop the others. The generation is marked
    completed once every model has been attempted.
    """

    def __init__(
        self,
        store: BaseGenerationStore,
        storage: BaseImageStorage,
        provider: BaseImageProvider,
        registry: ProviderRegistry,
    ):
        self.store = store
        self.storage = storage
        self.provider = provider
        self.registry = registry

    async def run(self, generation_id: str, request: GenerateRequest):
        """Process every model of a generation."""
        try:
            reference_urls = [
                await self.storage.provider_url(ref.url) for ref in request.reference_image_urls or []
            ] or None

            for model_id in request.model_ids:
                try:
                    await self._run_model(generation_id, model_id, request, reference_urls)
                except GenerationNotFound:
                    raise
                except Exception as e:
                    logger.error(f"Error generating images with model {model_id}: {e}")
                    await self.store.set_model_status(
                        generation_id, model_id, GenerationStatus.FAILED, error=str(e) or "Unknown error"
                    )

            await self.store.set_status(generation_id, GenerationStatus.COMPLETED)
            logger.info(f"Generation {generation_id} completed")
        except GenerationNotFound:
            logger.info(f"Generation {generation_id} was deleted while running, stopping")
        except Exception as e:
            logger.error(f"Generation {generation_id} failed: {e}", exc_info=True)
            await self.store.set_status(generation_id, GenerationStatus.FAILED)

    async def _run_model(
        self,
        generation_id: str,
        model_id: str,
        request: GenerateRequest,
        reference_urls: list[str] | None,
    ):
        await self.store.set_model_status(generation_id, model_id, GenerationStatus.PROCESSING)

        images = await self.provider.generate(
            prompt=request.prompt,
            model_id=model_id,
            aspect_ratio=request.aspect_ratio,
            reference_image_urls=reference_urls,
        )

        model_name = self.registry.model_name(model_id)
        for data in images:
            upload = await self.storage.upload_base64_image(data, "generated-images")
            await self.store.add_image(generation_id, ImageRecord(
                id=uuid4().hex,
                url=upload.url,
                model_name=model_name,
                width=upload.width,
                height=upload.height,
            ))

        await self.store.set_model_status(generation_id, model_id, GenerationStatus.COMPLETED)
        logger.info(f"Model {model_id} returned {len(images)} image(s) for generation {generation_id}")
