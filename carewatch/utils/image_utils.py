from __future__ import annotations

import base64
import binascii
from typing import Optional, Union

_SIGNATURES = (
    (b"\xff\xd8\xff", "jpg", "image/jpeg"),
    (b"\x89PNG\r\n\x1a\n", "png", "image/png"),
    (b"GIF87a", "gif", "image/gif"),
    (b"GIF89a", "gif", "image/gif"),
)


def sniff_image_type(raw: bytes) -> tuple[str, str]:
    """Return (extension, mime) for the encoded image, defaulting to JPEG."""
    head = bytes(raw[:16])
    for magic, ext, mime in _SIGNATURES:
        if head.startswith(magic):
            return ext, mime
    if head[:4] == b"RIFF" and head[8:12] == b"WEBP":
        return "webp", "image/webp"
    return "jpg", "image/jpeg"


def is_data_uri(value: object) -> bool:
    return isinstance(value, str) and value.startswith("data:")


def decode_data_uri(value: str) -> bytes:
    if not is_data_uri(value):
        raise ValueError("Not a data URI.")
    header, sep, payload = value.partition(",")
    if not sep:
        raise ValueError("Malformed data URI.")
    if not header.endswith(";base64"):
        raise ValueError("Only base64 data URIs are supported.")
    try:
        return base64.b64decode(payload, validate=False)
    except binascii.Error as exc:
        raise ValueError(f"Invalid base64 payload: {exc}") from exc


def to_data_uri(raw: bytes, mime: Optional[str] = None) -> str:
    mime = mime or sniff_image_type(raw)[1]
    data = base64.b64encode(raw).decode("utf-8")
    return f"data:{mime};base64,{data}"


def as_image_bytes(value: Union[bytes, bytearray, memoryview, str]) -> bytes:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    if is_data_uri(value):
        return decode_data_uri(value)
    raise ValueError(f"Unsupported image payload type: {type(value).__name__}")
