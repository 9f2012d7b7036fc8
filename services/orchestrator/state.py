"""
Studio State

Defines the data model shared by the orchestrator, the history store and the
presentation layer. The orchestrator is the only writer; everyone else gets a
StudioSnapshot.
"""

import random
import string
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class MediaKind(str, Enum):
    """What a tab produces, and what an item holds."""
    IMAGE = "image"
    VIDEO = "video"


class LoadingStatus(str, Enum):
    """Lifecycle of one generation attempt."""
    IDLE = "idle"
    ENHANCING = "enhancing"
    GENERATING = "generating"
    SUCCESS = "success"
    ERROR = "error"

    @property
    def is_busy(self) -> bool:
        return self in (LoadingStatus.ENHANCING, LoadingStatus.GENERATING)


ID_ALPHABET = string.digits + string.ascii_lowercase


def now_ms() -> int:
    return int(time.time() * 1000)


def new_item_id(timestamp_ms: Optional[int] = None) -> str:
    """Millisecond timestamp plus a random base-36 suffix."""
    if timestamp_ms is None:
        timestamp_ms = now_ms()
    return f"{timestamp_ms}{''.join(random.choices(ID_ALPHABET, k=9))}"


class GeneratedItem(BaseModel):
    """A completed image or video. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Opaque id, unique within a session")
    url: str = Field(description="data: URL for images, file:// blob reference for videos")
    prompt: str = Field(description="Exact prompt used, after enhancement")
    timestamp: int = Field(description="Creation time in epoch milliseconds")
    type: MediaKind


@dataclass(frozen=True)
class LoadingState:
    status: LoadingStatus = LoadingStatus.IDLE
    message: Optional[str] = None


@dataclass(frozen=True)
class ReferenceImage:
    """Working input image for edits or as a video start frame."""
    data: str  # data URL or bare base64
    mime_type: str = "image/png"


@dataclass
class StudioState:
    """Mutable working state owned by the orchestrator."""
    active_tab: MediaKind = MediaKind.IMAGE
    prompt: str = ""
    reference_image: Optional[ReferenceImage] = None
    active_item: Optional[GeneratedItem] = None
    enhance_enabled: bool = False
    loading: LoadingState = field(default_factory=LoadingState)


@dataclass(frozen=True)
class StudioSnapshot:
    """Read-only view handed to the presentation layer."""
    active_tab: MediaKind
    prompt: str
    reference_image: Optional[ReferenceImage]
    active_item: Optional[GeneratedItem]
    enhance_enabled: bool
    loading: LoadingState
    history: tuple[GeneratedItem, ...]

    @property
    def status(self) -> LoadingStatus:
        return self.loading.status

    @property
    def can_generate(self) -> bool:
        return bool(self.prompt.strip()) and not self.loading.status.is_busy

    @property
    def can_use_as_reference(self) -> bool:
        return self.active_item is not None and self.active_item.type == MediaKind.IMAGE
