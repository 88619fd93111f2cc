"""FastAPI application for Image Studio.

Accepts generation requests, runs them in the background against the image
provider, and streams progress per generation over Server-Sent Events.
"""

import logging
from pathlib import Path
from typing import Optional

import httpx
from fastapi import BackgroundTasks, Depends, FastAPI, Header, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, StreamingResponse

from app.config import get_config
from app.events import SSE_HEADERS, generation_event_stream
from app.models import (
    GenerateRequest,
    GenerateResponse,
    GenerationModel,
    GenerationStatus,
    ReferenceImage,
    UploadReferenceRequest,
)
from app.storage import LocalImageStorage
from app.store import BaseGenerationStore, GenerationNotFound, InMemoryGenerationStore
from app.styles import ARTISTIC_STYLES, ASPECT_RATIOS
from app.worker import GenerationWorker
from providers import get_provider_registry

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Image Studio",
    description="Multi-model image generation with live progress streams",
    version="0.1.0",
)

# CORS for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000", "*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Global collaborators (created lazily, replaced in tests)
_store: Optional[BaseGenerationStore] = None
_storage: Optional[LocalImageStorage] = None


def get_store() -> BaseGenerationStore:
    """Get the generation store."""
    global _store
    if _store is None:
        _store = InMemoryGenerationStore()
    return _store


def get_storage() -> LocalImageStorage:
    """Get the image storage."""
    global _storage
    if _storage is None:
        _storage = LocalImageStorage(Path(get_config().storage_dir))
    return _storage


async def get_user_id(x_user_id: str = Header(default="local")) -> str:
    """Identify the caller. Authentication itself happens upstream."""
    return x_user_id


# --- Health & Info ---

@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Image Studio",
        "version": "0.1.0",
        "status": "running",
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/models")
async def list_models():
    """List the image models users can pick from."""
    registry = get_provider_registry()
    return {"models": [m.model_dump() for m in registry.list_models()]}


@app.get("/styles")
async def list_styles():
    """List prompt style presets."""
    return {"styles": [s.model_dump() for s in ARTISTIC_STYLES]}


@app.get("/aspect-ratios")
async def list_aspect_ratios():
    """List supported aspect ratios."""
    return {"aspect_ratios": ASPECT_RATIOS}


# --- Generations ---

@app.post("/generations")
async def create_generation(
    request: GenerateRequest,
    background_tasks: BackgroundTasks,
    user_id: str = Depends(get_user_id),
) -> GenerateResponse:
    """Record a generation and start it in the background.

    Returns immediately; images arrive through the event stream.
    """
    store = get_store()
    registry = get_provider_registry()

    models = [
        GenerationModel(model_id=model_id, model_name=registry.model_name(model_id))
        for model_id in request.model_ids
    ]
    generation = await store.create_generation(user_id, request, models)

    provider = registry.get_image_provider(get_config().default_image_provider)
    worker = GenerationWorker(store, get_storage(), provider, registry)
    background_tasks.add_task(worker.run, generation.id, request)

    logger.info(f"Queued generation {generation.id} with {len(models)} model(s)")
    return GenerateResponse(generation_id=generation.id)


@app.get("/generations")
async def list_generations(
    limit: int = 50,
    offset: int = 0,
    user_id: str = Depends(get_user_id),
):
    """List the caller's generations, newest first."""
    store = get_store()
    generations = await store.list_generations(user_id, limit=limit, offset=offset)
    return {"generations": [g.model_dump(mode="json") for g in generations]}


@app.get("/generations/{generation_id}")
async def get_generation(generation_id: str, user_id: str = Depends(get_user_id)):
    """Get a single generation."""
    generation = await get_store().get_generation(generation_id, user_id)
    if not generation:
        raise HTTPException(status_code=404, detail="Generation not found")
    return generation.model_dump(mode="json")


@app.delete("/generations/{generation_id}")
async def delete_generation(generation_id: str, user_id: str = Depends(get_user_id)):
    """Delete a generation with its images."""
    try:
        await get_store().delete_generation(generation_id, user_id)
    except GenerationNotFound:
        raise HTTPException(status_code=404, detail="Generation not found or unauthorized")
    return {"success": True}


@app.get("/api/generation/{generation_id}/stream")
async def stream_generation(generation_id: str, user_id: str = Depends(get_user_id)):
    """Server-Sent Events with the progress of one generation."""
    store = get_store()
    generation = await store.get_generation(generation_id, user_id)
    if not generation:
        raise HTTPException(status_code=404, detail="Generation not found")

    return StreamingResponse(
        generation_event_stream(store, generation_id, get_config().stream_poll_interval),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


# --- Reference images ---

@app.post("/reference-images")
async def upload_reference_image(request: UploadReferenceRequest) -> ReferenceImage:
    """Upload a reference image sent as base64."""
    storage = get_storage()
    try:
        result = await storage.upload_base64_image(request.base64, "reference-images")
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid base64 image data")
    except httpx.HTTPError as e:
        raise HTTPException(status_code=400, detail=f"Could not fetch reference image: {e}")
    return ReferenceImage(url=result.url, key=result.key, original_name=request.file_name)


# --- Static Files (serving stored images) ---

@app.get("/files/{file_path:path}")
async def serve_file(file_path: str):
    """Serve a stored image."""
    path = get_storage().resolve(file_path)
    if path is None:
        raise HTTPException(status_code=404, detail=f"File not found: {file_path}")
    return FileResponse(path)


@app.on_event("startup")
async def startup():
    """Log where things live."""
    config = get_config()
    logger.info(f"Image Studio started (storage: {Path(config.storage_dir).resolve()})")
    if config.env_file:
        logger.info(f"Env file: {config.env_file}")
    if not config.providers.openrouter_api_key:
        logger.warning("OPENROUTER_API_KEY is not set; generations will fail per model")


@app.get("/config/env")
async def get_env_info():
    """Get info about loaded environment."""
    config = get_config()
    return {
        "env_file": config.env_file,
        "has_openrouter_api_key": bool(config.providers.openrouter_api_key),
        "stream_poll_interval": config.stream_poll_interval,
    }


if __name__ == "__main__":
    import argparse
    import uvicorn
    from app.config import reload_config

    parser = argparse.ArgumentParser(description="Image Studio Server")
    parser.add_argument(
        "--env", "-e",
        help="Path to .env file (can also set IMAGESTUDIO_ENV_FILE)",
        default=None,
    )
    parser.add_argument(
        "--port", "-p",
        type=int,
        default=8000,
        help="Port to run on (default: 8000)",
    )
    parser.add_argument(
        "--host",
        default="0.0.0.0",
        help="Host to bind to (default: 0.0.0.0)",
    )

    args = parser.parse_args()

    if args.env:
        reload_config(args.env)

    uvicorn.run(app, host=args.host, port=args.port)
