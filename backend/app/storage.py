"""Object storage for generated and reference images.

Production deployments sit on an S3-compatible bucket; ``LocalImageStorage``
writes into a directory that the API serves under ``/files``.
"""

import base64
import mimetypes
from abc import ABC, abstractmethod
from io import BytesIO
from pathlib import Path
from typing import Optional
from uuid import uuid4

import aiofiles
import httpx
from PIL import Image, UnidentifiedImageError
from pydantic import BaseModel


class UploadResult(BaseModel):
    """Where an uploaded image ended up."""
    url: str
    key: str
    width: Optional[int] = None
    height: Optional[int] = None


def is_remote_url(data: str) -> bool:
    return data.startswith(("http://", "https://"))


def decode_base64_image(data: str) -> tuple[bytes, str]:
    """Decode a base64 string or data URL into (bytes, content type)."""
    content_type = "image/png"
    if data.startswith("data:"):
        header, _, data = data.partition(",")
        content_type = header[len("data:"):].split(";")[0] or content_type
    return base64.b64decode(data), content_type


def image_dimensions(content: bytes) -> tuple[Optional[int], Optional[int]]:
    """Read width/height from image bytes, (None, None) if unreadable."""
    try:
        with Image.open(BytesIO(content)) as img:
            return img.width, img.height
    except (UnidentifiedImageError, OSError):
        return None, None


class BaseImageStorage(ABC):
    """Upload contract for image bytes."""

    transport: Optional[httpx.AsyncBaseTransport] = None

    @abstractmethod
    async def upload_file(
        self,
        content: bytes,
        folder: str,
        file_name: Optional[str] = None,
        content_type: str = "image/png",
    ) -> UploadResult:
        """Store raw bytes and return their public location."""

    async def upload_base64_image(self, data: str, folder: str) -> UploadResult:
        """Store a base64 image, a data URL, or an image hosted at an http(s) URL."""
        if is_remote_url(data):
            content, content_type = await self.download_image(data)
        else:
            content, content_type = decode_base64_image(data)
        return await self.upload_file(content, folder, content_type=content_type)

    async def download_image(self, url: str) -> tuple[bytes, str]:
        """Fetch a hosted image.

        Raises:
            httpx.HTTPError: if the download fails or answers with an error status
        """
        async with httpx.AsyncClient(timeout=60.0, transport=self.transport, follow_redirects=True) as client:
            response = await client.get(url)
            response.raise_for_status()
        content_type = response.headers.get("content-type", "image/png").split(";")[0].strip()
        return response.content, content_type or "image/png"

    async def provider_url(self, url: str) -> str:
        """A form of a stored image URL that a remote model can fetch."""
        return url


class LocalImageStorage(BaseImageStorage):
    """Stores images on the local filesystem."""

    def __init__(
        self,
        root: Path,
        public_prefix: str = "/files",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.root = Path(root)
        self.public_prefix = public_prefix.rstrip("/")
        self.transport = transport

    async def upload_file(
        self,
        content: bytes,
        folder: str,
        file_name: Optional[str] = None,
        content_type: str = "image/png",
    ) -> UploadResult:
        extension = mimetypes.guess_extension(content_type) or ".png"
        suffix = Path(file_name).suffix if file_name else extension
        key = f"{folder}/{uuid4().hex}{suffix}"

        path = self.root / key
        path.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(path, "wb") as f:
            await f.write(content)

        width, height = image_dimensions(content)
        return UploadResult(
            url=f"{self.public_prefix}/{key}",
            key=key,
            width=width,
            height=height,
        )

    def resolve(self, key: str) -> Optional[Path]:
        """Map a stored key back to a file, refusing paths outside the root."""
        root = self.root.resolve()
        path = (root / key).resolve()
        if root not in path.parents or not path.is_file():
            return None
        return path

    async def provider_url(self, url: str) -> str:
        """Inline a locally stored image as a data URL.

        Files under ``/files`` are not reachable from a remote model, so their
        bytes travel with the request instead. Other URLs pass through.
        """
        prefix = f"{self.public_prefix}/"
        if not url.startswith(prefix):
            return url
        path = self.resolve(url[len(prefix):])
        if path is None:
            return url

        async with aiofiles.open(path, "rb") as f:
            content = await f.read()
        content_type = mimetypes.guess_type(path.name)[0] or "image/png"
        return f"data:{content_type};base64,{base64.b64encode(content).decode()}"
