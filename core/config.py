"""
Configuration management for Nano Banana Studio.

Centralizes all configuration including:
- Provider API key
- Model selections
- Video job polling bounds
- Local storage locations (history file, blob directory)
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


def _env_api_key() -> str:
    for name in ("GEMINI_API_KEY", "GOOGLE_API_KEY", "API_KEY"):
        value = os.getenv(name, "").strip()
        if value:
            return value
    return ""


@dataclass
class APIConfig:
    """API configuration for the generative-media provider."""

    gemini_api_key: str = field(default_factory=_env_api_key)


@dataclass
class ModelConfig:
    """Model selection configuration."""

    text_model: str = field(default_factory=lambda: os.getenv("STUDIO_TEXT_MODEL", "gemini-2.5-flash"))
    image_model: str = field(default_factory=lambda: os.getenv("STUDIO_IMAGE_MODEL", "gemini-2.5-flash-image"))
    video_model: str = field(
        default_factory=lambda: os.getenv("STUDIO_VIDEO_MODEL", "veo-3.1-fast-generate-preview")
    )


@dataclass
class VideoConfig:
    """Settings for the long-running video job."""

    poll_interval_seconds: float = 5.0
    # 360 polls at 5s = 30 minutes, well past any observed Veo job
    max_polls: int = field(default_factory=lambda: int(os.getenv("STUDIO_VIDEO_MAX_POLLS", "360")))
    max_wait_seconds: Optional[float] = None

    number_of_videos: int = 1
    resolution: str = "720p"
    aspect_ratio: str = "16:9"

    download_timeout_seconds: float = 300.0


@dataclass
class StorageConfig:
    """Local storage for history and generated media."""

    data_dir: Path = field(
        default_factory=lambda: Path(os.getenv("STUDIO_DATA_DIR", "~/.nano-banana")).expanduser()
    )
    history_file: str = "nano-banana-history.json"
    history_limit: int = 20
    blob_dir: str = "blobs"

    @property
    def history_path(self) -> Path:
        return self.data_dir / self.history_file

    @property
    def blob_path(self) -> Path:
        return self.data_dir / self.blob_dir


@dataclass
class Config:
    """Main configuration class."""

    api: APIConfig = field(default_factory=APIConfig)
    models: ModelConfig = field(default_factory=ModelConfig)
    video: VideoConfig = field(default_factory=VideoConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        return cls()

    def validate(self) -> list[str]:
        """Validate configuration and return list of issues."""
        issues = []

        if not self.api.gemini_api_key:
            issues.append("GEMINI_API_KEY not configured (needed for all generation)")

        if self.video.poll_interval_seconds <= 0:
            issues.append("Video poll interval must be positive")

        if self.storage.history_limit < 1:
            issues.append("History limit must be at least 1")

        return issues


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config


def reload_config():
    """Reload configuration from environment."""
    global _config
    _config = Config.from_env()
