"""
Helpers for inline-encoded media.

Images travel through the studio as `data:<mime>;base64,<payload>` strings,
the same form the history file stores them in. The provider wants raw bytes,
so the prefix is stripped before decoding.
"""

import base64
import mimetypes
from pathlib import Path
from typing import Union


def strip_data_url_prefix(value: str) -> str:
    """Return the base64 payload of a data URL, or the value unchanged."""
    if value.startswith("data:") and "," in value:
        return value.split(",", 1)[1]
    return value


def decode_inline(value: str) -> bytes:
    """Decode a data URL or bare base64 string into bytes."""
    return base64.b64decode(strip_data_url_prefix(value))


def to_data_url(data: Union[bytes, str], mime_type: str = "image/png") -> str:
    if isinstance(data, bytes):
        data = base64.b64encode(data).decode("ascii")
    return f"data:{mime_type};base64,{data}"


def data_url_mime_type(value: str, default: str = "image/png") -> str:
    if value.startswith("data:") and ";" in value:
        return value[5:value.index(";")] or default
    return default


def file_to_data_url(path: Union[str, Path]) -> tuple[str, str]:
    """
    Read an image file as a data URL.

    Returns:
        (data_url, mime_type)

    Raises:
        ValueError: if the file does not look like an image
    """
    path = Path(path)
    mime_type, _ = mimetypes.guess_type(path.name)
    if not mime_type or not mime_type.startswith("image/"):
        raise ValueError(f"Not an image file: {path}")

    return to_data_url(path.read_bytes(), mime_type), mime_type
