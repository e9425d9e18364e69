import base64
import io
import re
from typing import Optional

from PIL import Image, UnidentifiedImageError


DEFAULT_MIME = "image/png"

_DATA_URL_RE = re.compile(r"data:([a-zA-Z0-9]+/[a-zA-Z0-9-.+]+).*,.*", re.DOTALL)


def file_to_data_url(data: bytes, mime_type: str) -> str:
    return f"data:{mime_type or DEFAULT_MIME};base64,{base64.b64encode(data).decode('ascii')}"


def clean_base64(base64_str: str) -> str:
    """Strip a ``data:...,`` prefix, leaving the raw base64 payload."""
    parts = base64_str.split(",")
    if len(parts) > 1 and parts[1]:
        return parts[1]
    return base64_str


def get_mime_type(base64_str: str) -> str:
    m = _DATA_URL_RE.search(base64_str)
    if m:
        return m.group(1)
    return DEFAULT_MIME


def decode_data_url(data_url: str) -> bytes:
    return base64.b64decode(clean_base64(data_url))


def sniff_mime_type(data: bytes) -> Optional[str]:
    # Pillow knows the format from the header alone
    try:
        with Image.open(io.BytesIO(data)) as im:
            fmt = im.format
    except (UnidentifiedImageError, OSError):
        return None
    if not fmt:
        return None
    return Image.MIME.get(fmt.upper())
