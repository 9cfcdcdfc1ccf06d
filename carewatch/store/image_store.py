from __future__ import annotations

import os
import uuid
from typing import Union

import requests

from carewatch.utils.image_utils import as_image_bytes, decode_data_uri, is_data_uri, sniff_image_type

URL_PREFIX = "/uploads/"


class ImageStore:
    """Writes update photos to the uploads directory served under ``/uploads``."""

    def __init__(self, uploads_dir: str, url_prefix: str = URL_PREFIX, timeout: float = 10.0) -> None:
        self.uploads_dir = uploads_dir
        self.url_prefix = url_prefix if url_prefix.endswith("/") else url_prefix + "/"
        self.timeout = timeout
        os.makedirs(self.uploads_dir, exist_ok=True)

    def save(self, value: Union[bytes, bytearray, str]) -> str:
        raw = as_image_bytes(value)
        if not raw:
            raise ValueError("Image payload is empty.")
        ext, _ = sniff_image_type(raw)
        name = f"{uuid.uuid4().hex}.{ext}"
        with open(os.path.join(self.uploads_dir, name), "wb") as f:
            f.write(raw)
        return self.url_prefix + name

    def path_for(self, url: str) -> str:
        name = os.path.basename(url[len(self.url_prefix):])
        if not name or name != url[len(self.url_prefix):]:
            raise ValueError(f"Invalid upload reference: {url!r}")
        return os.path.join(self.uploads_dir, name)

    def load(self, ref: str) -> bytes:
        """Read back an image reference: an upload path, a data URI or a remote URL."""
        if is_data_uri(ref):
            return decode_data_uri(ref)
        if ref.startswith(self.url_prefix):
            with open(self.path_for(ref), "rb") as f:
                return f.read()
        if ref.startswith(("http://", "https://")):
            resp = requests.get(ref, timeout=self.timeout)
            resp.raise_for_status()
            return resp.content
        raise ValueError(f"Unsupported image reference: {ref[:60]!r}")
