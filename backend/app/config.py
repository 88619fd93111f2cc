"""Configuration management for Image Studio."""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


def load_env_file(env_path: Optional[str] = None) -> Path | None:
    """Load environment file from specified path or search common locations.

    Priority:
    1. Explicitly provided path (CLI flag or IMAGESTUDIO_ENV_FILE)
    2. .env.local in current directory
    3. .env in current directory
    4. .env.local in the repository root
    5. .env in the repository root
    """
    explicit_path = env_path or os.getenv("IMAGESTUDIO_ENV_FILE")
    if explicit_path:
        path = Path(explicit_path).expanduser().resolve()
        if path.exists():
            load_dotenv(path)
            return path
        else:
            logger.warning(f"Specified env file not found: {path}")

    cwd = Path.cwd()
    repo_dir = Path(__file__).parent.parent.parent

    search_paths = [
        cwd / ".env.local",
        cwd / ".env",
        repo_dir / ".env.local",
        repo_dir / ".env",
    ]

    for path in search_paths:
        if path.exists():
            load_dotenv(path)
            return path

    load_dotenv()
    return None


# Load env on module import (can be re-called with explicit path)
_loaded_env_path = load_env_file()


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"Ignoring non-numeric {name}={value!r}")
        return default


class ProviderConfig(BaseModel):
    """Configuration for the image generation provider."""

    openrouter_api_key: Optional[str] = Field(default_factory=lambda: os.getenv("OPENROUTER_API_KEY"))
    openrouter_base_url: str = Field(
        default_factory=lambda: os.getenv("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1")
    )

    # Sent as HTTP-Referer / X-Title for attribution
    app_url: str = Field(default_factory=lambda: os.getenv("IMAGESTUDIO_APP_URL", "http://localhost:3000"))
    app_title: str = "AI Image Studio"

    request_timeout: float = 300.0


class AppConfig(BaseModel):
    """Main application configuration."""

    # Server settings
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = Field(default_factory=lambda: os.getenv("DEBUG", "false").lower() == "true")

    # Where the CLI client finds the server
    server_url: str = Field(default_factory=lambda: os.getenv("IMAGESTUDIO_URL", "http://localhost:8000"))

    # Env file that was loaded
    env_file: Optional[str] = Field(default_factory=lambda: str(_loaded_env_path) if _loaded_env_path else None)

    providers: ProviderConfig = Field(default_factory=ProviderConfig)

    # Local object storage for generated and reference images
    storage_dir: str = Field(default_factory=lambda: os.getenv("IMAGESTUDIO_STORAGE_DIR", "generated"))

    # Seconds between store polls on an event stream
    stream_poll_interval: float = Field(default_factory=lambda: _env_float("STREAM_POLL_INTERVAL", 0.5))

    default_image_provider: str = "openrouter"
    default_aspect_ratio: str = "1:1"
    generations_page_size: int = 50


def get_config() -> AppConfig:
    """Get the application configuration."""
    return AppConfig()


def reload_config(env_path: Optional[str] = None) -> AppConfig:
    """Reload configuration with a new env file path."""
    global _loaded_env_path
    _loaded_env_path = load_env_file(env_path)
    return get_config()
