"""
Data-URL codec for raster images crossing the relay.

Captured and composited images travel between contexts as
``data:image/png;base64,...`` strings, the same form a browser
returns from a visible-tab capture.
"""

import base64
import binascii
import re

from .exceptions import DecodeError

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?P<b64>;base64)?,(?P<data>.*)$", re.S)


def encode_data_url(data: bytes, mime: str = "image/png") -> str:
    """Wrap raw image bytes into a base64 data URL."""
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"


def decode_data_url(url: str) -> bytes:
    """
    Extract raw bytes from a base64 data URL.

    Raises:
        DecodeError: if the value is not a base64 data URL
    """
    if not isinstance(url, str):
        raise DecodeError(f"Expected data URL string, got {type(url).__name__}")
    match = _DATA_URL_RE.match(url)
    if not match or not match.group("b64"):
        raise DecodeError("Not a base64 data URL")
    try:
        return base64.b64decode(match.group("data"), validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"Invalid base64 payload: {e}") from e
