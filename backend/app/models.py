"""Data models for Image Studio."""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, Field, TypeAdapter


class GenerationStatus(str, Enum):
    """Status of a generation (or of one model inside it)."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class QueueItemStatus(str, Enum):
    """Status of a locally queued submission."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


# --- Catalogue ---

class ModelInfo(BaseModel):
    """An image model offered to the user."""
    id: str
    name: str
    provider: str


class ArtisticStyle(BaseModel):
    """A style preset whose keywords are appended to the prompt."""
    id: str
    name: str
    keywords: str


# --- Generations ---

class ReferenceImage(BaseModel):
    """An uploaded image sent along with the prompt."""
    url: str
    key: str
    original_name: str


class ImageRecord(BaseModel):
    """A generated image, or a placeholder for one still in flight."""
    id: str
    url: str = ""
    model_name: str
    width: Optional[int] = None
    height: Optional[int] = None
    is_placeholder: bool = False
    created_at: Optional[datetime] = None


class GenerationModel(BaseModel):
    """Per-model progress of a generation."""
    model_id: str
    model_name: str
    status: GenerationStatus = GenerationStatus.PENDING
    error: Optional[str] = None


class Generation(BaseModel):
    """One prompt at one aspect ratio, across one or more models."""
    id: str
    prompt: str
    negative_prompt: Optional[str] = None
    aspect_ratio: str = "1:1"
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    status: GenerationStatus = GenerationStatus.PROCESSING
    images: list[ImageRecord] = Field(default_factory=list)
    models: list[GenerationModel] = Field(default_factory=list)
    reference_images: list[ReferenceImage] = Field(default_factory=list)


def placeholder_id(generation_id: str, model_name: str) -> str:
    """Id used for the optimistic image of a model that has not returned yet."""
    return f"{generation_id}-{model_name}-placeholder"


# --- Client queue ---

class QueueItem(BaseModel):
    """A user submission waiting to be sent to the backend."""
    id: str = Field(default_factory=lambda: str(uuid4())[:8])
    prompt: str
    aspect_ratios: list[str]
    model_ids: list[str]
    model_names: list[str]
    selected_styles: list[str] = Field(default_factory=list)
    reference_image_urls: Optional[list[ReferenceImage]] = None
    status: QueueItemStatus = QueueItemStatus.PENDING
    error: Optional[str] = None


class QueueStatus(BaseModel):
    """Counts shown next to the studio header."""
    pending: int = 0
    processing: int = 0
    total: int = 0


# --- API Request/Response Models ---

class GenerateRequest(BaseModel):
    """Request to start a generation at a single aspect ratio."""
    prompt: str = Field(min_length=1)
    negative_prompt: Optional[str] = None
    aspect_ratio: str = "1:1"
    model_ids: list[str] = Field(min_length=1)
    reference_image_urls: Optional[list[ReferenceImage]] = None


class GenerateResponse(BaseModel):
    """Returned as soon as the generation is recorded."""
    generation_id: str
    status: Literal["processing"] = "processing"


class UploadReferenceRequest(BaseModel):
    """Reference image sent inline as base64 (optionally a data URL)."""
    base64: str
    file_name: str
    content_type: str = "image/png"


# --- Stream events ---

class ImageCompleteData(BaseModel):
    """Payload of an image_complete event."""
    id: str
    generation_id: str
    url: str
    model_name: str
    width: Optional[int] = None
    height: Optional[int] = None
    created_at: Optional[datetime] = None


class GenerationCompleteData(BaseModel):
    """Payload of a generation_complete event."""
    generation_id: str
    status: GenerationStatus
    total_images: int = 0


class StreamErrorData(BaseModel):
    """Payload of an error event."""
    message: str


class ImageCompleteEvent(BaseModel):
    type: Literal["image_complete"] = "image_complete"
    data: ImageCompleteData


class GenerationCompleteEvent(BaseModel):
    type: Literal["generation_complete"] = "generation_complete"
    data: GenerationCompleteData


class StreamErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    data: StreamErrorData


StreamEvent = Annotated[
    Union[ImageCompleteEvent, GenerationCompleteEvent, StreamErrorEvent],
    Field(discriminator="type"),
]

_stream_event_adapter: TypeAdapter[Any] = TypeAdapter(StreamEvent)


def parse_stream_event(payload: str) -> StreamEvent:
    """Parse the JSON data of one SSE frame.

    Raises:
        pydantic.ValidationError: if the payload is not valid JSON or not a
            known event shape.
    """
    return _stream_event_adapter.validate_json(payload)


def is_terminal_event(event: StreamEvent) -> bool:
    """True for events after which the stream is closed."""
    return isinstance(event, (GenerationCompleteEvent, StreamErrorEvent))
