"""
Blob Store - revocable local references for downloaded video payloads.

Each payload is written to its own file under the blob directory and handed
out as a `file://` URI. Revoking a reference deletes the file, releasing the
storage once no item displays or remembers it.
"""

import logging
from pathlib import Path
from typing import Union
from urllib.parse import unquote, urlparse
from urllib.request import url2pathname
from uuid import uuid4

logger = logging.getLogger(__name__)


class BlobStore:
    """
    Directory-backed registry of object references.

    Usage:
        store = BlobStore(Path("~/.nano-banana/blobs").expanduser())

        url = store.create(video_bytes, suffix=".mp4")
        data = store.read(url)
        store.revoke(url)
    """

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root).expanduser().resolve()

    def create(self, data: bytes, suffix: str = ".mp4") -> str:
        """Store a payload and return its object reference."""
        self.root.mkdir(parents=True, exist_ok=True)
        path = self.root / f"{uuid4().hex}{suffix}"
        path.write_bytes(data)

        logger.info(f"Blob created: {path.name} ({len(data) / 1024 / 1024:.1f} MB)")
        return path.as_uri()

    def _path_for(self, url: str) -> Path:
        parsed = urlparse(url)
        if parsed.scheme != "file":
            raise ValueError(f"Not a blob reference: {url}")
        return Path(url2pathname(unquote(parsed.path)))

    def owns(self, url: str) -> bool:
        """Whether `url` points into this store (revoked or not)."""
        try:
            return self._path_for(url).parent == self.root
        except ValueError:
            return False

    def exists(self, url: str) -> bool:
        return self.owns(url) and self._path_for(url).exists()

    def read(self, url: str) -> bytes:
        if not self.owns(url):
            raise FileNotFoundError(f"Unknown blob reference: {url}")
        return self._path_for(url).read_bytes()

    def revoke(self, url: str) -> bool:
        """
        Release a reference.

        Returns:
            True if a payload was deleted. Unknown or already revoked
            references are ignored.
        """
        if not self.owns(url):
            return False

        path = self._path_for(url)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning(f"Failed to revoke blob {path.name}: {e}")
            return False

        logger.info(f"Blob revoked: {path.name}")
        return True
