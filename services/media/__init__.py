"""
Media Request Service

Prompt enhancement and image generation/edit against the Gemini API,
plus helpers for inline-encoded media.
"""

from .client import MediaRequestClient, extract_inline_image
from .errors import (
    CredentialRequiredError,
    GenerationCancelled,
    MediaGenerationError,
    VideoGenerationError,
)

__all__ = [
    "MediaRequestClient",
    "extract_inline_image",
    "CredentialRequiredError",
    "GenerationCancelled",
    "MediaGenerationError",
    "VideoGenerationError",
]
