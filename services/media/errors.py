"""Exceptions raised by the media generation services."""

from typing import Optional


class MediaGenerationError(Exception):
    """Raised when a generation request fails."""

    def __init__(self, message: str, error_code: Optional[str] = None, provider: Optional[str] = None):
        self.error_code = error_code
        self.provider = provider
        super().__init__(message)


class VideoGenerationError(MediaGenerationError):
    """Raised when the video job fails after submission."""


class CredentialRequiredError(MediaGenerationError):
    """Raised when no API key is selected and the user declines to pick one."""

    def __init__(self, message: str = "API key selection is required for video generation."):
        super().__init__(message, error_code="CREDENTIAL_REQUIRED")


class GenerationCancelled(MediaGenerationError):
    """Raised when an in-flight video job is cancelled locally."""

    def __init__(self, message: str = "Video generation was cancelled."):
        super().__init__(message, error_code="CANCELLED")
