"""
Saving generated media to disk.

Mirrors the studio's download action: the active item's payload is written
under `nano-banana-<type>-<epoch ms>.<ext>`.
"""

import logging
import time
from pathlib import Path
from typing import Optional, Union

import aiofiles

from services.orchestrator.state import GeneratedItem, MediaKind
from services.video_generation.blob_store import BlobStore

from .data_urls import decode_inline

logger = logging.getLogger(__name__)

EXTENSIONS = {
    MediaKind.IMAGE: "png",
    MediaKind.VIDEO: "mp4",
}


def download_filename(item: GeneratedItem, now_ms: Optional[int] = None) -> str:
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"nano-banana-{item.type.value}-{now_ms}.{EXTENSIONS[item.type]}"


def media_bytes(url: str, blob_store: Optional[BlobStore] = None) -> bytes:
    """
    Resolve an item URL to its payload.

    Raises:
        FileNotFoundError: if a video reference was revoked or is not local
    """
    if url.startswith("data:"):
        return decode_inline(url)

    if blob_store is None or not blob_store.owns(url):
        raise FileNotFoundError(f"Media is not available locally: {url}")

    return blob_store.read(url)


async def save_media(
    item: GeneratedItem,
    output_dir: Union[str, Path],
    blob_store: Optional[BlobStore] = None,
    now_ms: Optional[int] = None,
) -> Path:
    """Write an item's media into `output_dir` and return the file path."""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    data = media_bytes(item.url, blob_store)
    output_path = output_dir / download_filename(item, now_ms)

    async with aiofiles.open(output_path, "wb") as f:
        await f.write(data)

    logger.info(f"Saved {item.type.value}: {output_path} ({len(data) / 1024:.1f} KB)")
    return output_path
