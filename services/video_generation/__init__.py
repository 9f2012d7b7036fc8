"""
Video Generation Service

Runs long-running Veo jobs: key selection, submission, polling, download.
Finished videos are kept in a BlobStore and referenced by local URI.
"""

from .blob_store import BlobStore
from .credentials import KeySelector, PromptKeySelector, StaticKeySelector
from .poller import CancelToken, VideoJobPoller, extract_video_uri

__all__ = [
    "BlobStore",
    "CancelToken",
    "KeySelector",
    "PromptKeySelector",
    "StaticKeySelector",
    "VideoJobPoller",
    "extract_video_uri",
]
