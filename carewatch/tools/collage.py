"""Side-by-side collage of the photos captured for one update.

Every photo is scaled to a common height and laid out left to right in
capture order, with a thin gutter in the background colour over each seam.
Aspect ratio is kept per image; slots are filled by stretching, never by
cropping. A single photo is passed through untouched.
"""
from __future__ import annotations

import io
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple, Union

from PIL import Image, ImageDraw, ImageOps

from carewatch.utils.image_utils import as_image_bytes, to_data_uri

DEFAULT_TARGET_HEIGHT = 1000
DEFAULT_QUALITY = 0.85
DEFAULT_DIVIDER_WIDTH = 8
DEFAULT_BACKGROUND = "white"
_MAX_DECODE_WORKERS = 4

ImageInput = Union[bytes, bytearray, str]
Box = Tuple[int, int, int, int]


class CollageError(Exception):
    pass


class InvalidInputError(CollageError):
    pass


class DecodeError(CollageError):
    def __init__(self, index: int, reason: str) -> None:
        self.index = index
        self.reason = reason
        super().__init__(f"Image #{index + 1} could not be decoded: {reason}")


class EncodeError(CollageError):
    pass


@dataclass(frozen=True)
class Slot:
    x: int
    width: int
    scaled_width: float


@dataclass(frozen=True)
class CollageLayout:
    width: int
    height: int
    slots: Tuple[Slot, ...]
    dividers: Tuple[Tuple[int, int], ...]


class ImageSurface:
    """The raster operations the compositor needs: allocate, blit, fill, encode."""

    def allocate(self, width: int, height: int, background: str) -> None:
        raise NotImplementedError

    def blit(self, image: Image.Image, box: Box) -> None:
        raise NotImplementedError

    def fill_rect(self, box: Box, color: str) -> None:
        raise NotImplementedError

    def encode(self, quality: float) -> bytes:
        raise NotImplementedError


class PillowSurface(ImageSurface):
    def __init__(self) -> None:
        self.canvas: Optional[Image.Image] = None

    def allocate(self, width: int, height: int, background: str) -> None:
        self.canvas = Image.new("RGB", (width, height), background)

    def blit(self, image: Image.Image, box: Box) -> None:
        if self.canvas is None:
            raise EncodeError("Canvas was not allocated.")
        x0, y0, x1, y1 = box
        src = image
        has_alpha = src.mode in ("RGBA", "LA", "PA") or (
            src.mode == "P" and "transparency" in src.info
        )
        if has_alpha:
            src = src.convert("RGBA")
        elif src.mode not in ("RGB", "L"):
            src = src.convert("RGB")
        scaled = src.resize((x1 - x0, y1 - y0), Image.Resampling.LANCZOS)
        if scaled.mode == "RGBA":
            # Transparent pixels keep the canvas background.
            self.canvas.paste(scaled, (x0, y0), scaled)
        else:
            self.canvas.paste(scaled.convert("RGB"), (x0, y0))

    def fill_rect(self, box: Box, color: str) -> None:
        if self.canvas is None:
            raise EncodeError("Canvas was not allocated.")
        x0, y0, x1, y1 = box
        if x1 <= x0 or y1 <= y0:
            return
        ImageDraw.Draw(self.canvas).rectangle([x0, y0, x1 - 1, y1 - 1], fill=color)

    def encode(self, quality: float) -> bytes:
        if self.canvas is None:
            raise EncodeError("Canvas was not allocated.")
        buf = io.BytesIO()
        try:
            self.canvas.save(buf, format="JPEG", quality=int(round(quality * 100)), optimize=True)
        except (OSError, ValueError) as exc:
            raise EncodeError(f"JPEG encoding failed: {exc}") from exc
        return buf.getvalue()


def _decode_one(index: int, item: ImageInput) -> Image.Image:
    try:
        raw = as_image_bytes(item)
        with Image.open(io.BytesIO(raw)) as im:
            im.load()
            # Camera photos carry their rotation in EXIF; apply it like a browser would.
            decoded = ImageOps.exif_transpose(im)
    except (OSError, ValueError, Image.DecompressionBombError) as exc:
        raise DecodeError(index, str(exc)) from exc
    if decoded.width <= 0 or decoded.height <= 0:
        raise DecodeError(index, "image has no pixel dimensions")
    return decoded


def decode_images(images: Sequence[ImageInput], max_workers: Optional[int] = None) -> List[Image.Image]:
    items = list(images)
    if not items:
        raise InvalidInputError("Capture set is empty.")
    workers = max_workers or min(len(items), _MAX_DECODE_WORKERS)
    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = [pool.submit(_decode_one, i, item) for i, item in enumerate(items)]
    # The pool has joined here; collect in capture order, whatever finished first.
    decoded: List[Image.Image] = []
    failure: Optional[BaseException] = None
    for fut in futures:
        exc = fut.exception()
        if exc is not None:
            failure = failure or exc
            continue
        decoded.append(fut.result())
    if failure is not None:
        for im in decoded:
            im.close()
        raise failure
    return decoded


def plan_layout(
    sizes: Sequence[Tuple[int, int]],
    target_height: int = DEFAULT_TARGET_HEIGHT,
    divider_width: int = DEFAULT_DIVIDER_WIDTH,
) -> CollageLayout:
    if target_height <= 0:
        raise InvalidInputError("Target height must be positive.")
    if not sizes:
        raise InvalidInputError("Capture set is empty.")

    slots: List[Slot] = []
    cursor = 0.0
    for index, (w, h) in enumerate(sizes):
        if w <= 0 or h <= 0:
            raise DecodeError(index, "image has no pixel dimensions")
        scaled = target_height * (w / h)
        left = int(round(cursor))
        right = int(round(cursor + scaled))
        slots.append(Slot(x=left, width=max(1, right - left), scaled_width=scaled))
        cursor += scaled

    width = max(1, int(round(cursor)))
    dividers: List[Tuple[int, int]] = []
    if divider_width > 0:
        for slot in slots[1:]:
            x0 = max(0, slot.x - divider_width // 2)
            x1 = min(width, slot.x - divider_width // 2 + divider_width)
            if x1 > x0:
                dividers.append((x0, x1))
    return CollageLayout(width=width, height=target_height, slots=tuple(slots), dividers=tuple(dividers))


def compose_collage(
    images: Sequence[ImageInput],
    *,
    target_height: int = DEFAULT_TARGET_HEIGHT,
    quality: float = DEFAULT_QUALITY,
    divider_width: int = DEFAULT_DIVIDER_WIDTH,
    background: str = DEFAULT_BACKGROUND,
    surface_factory: Callable[[], ImageSurface] = PillowSurface,
    max_workers: Optional[int] = None,
) -> ImageInput:
    """Combine a capture set into one JPEG strip.

    Returns the only element itself when a single image is given. Raises
    InvalidInputError for an empty set or bad parameters, DecodeError when any
    image cannot be read and EncodeError when the canvas cannot be encoded.
    Nothing partial is ever returned.
    """
    items = list(images or [])
    if not items:
        raise InvalidInputError("Capture set is empty.")
    if len(items) == 1:
        return items[0]
    if target_height <= 0:
        raise InvalidInputError("Target height must be positive.")
    if not 0 < quality <= 1:
        raise InvalidInputError("Quality must be in (0, 1].")

    decoded = decode_images(items, max_workers=max_workers)
    try:
        layout = plan_layout([im.size for im in decoded], target_height, divider_width)
        surface = surface_factory()
        try:
            surface.allocate(layout.width, layout.height, background)
            for im, slot in zip(decoded, layout.slots):
                surface.blit(im, (slot.x, 0, slot.x + slot.width, layout.height))
            for x0, x1 in layout.dividers:
                surface.fill_rect((x0, 0, x1, layout.height), background)
            return surface.encode(quality)
        except CollageError:
            raise
        except (OSError, ValueError, MemoryError) as exc:
            raise EncodeError(f"Canvas composition failed: {exc}") from exc
    finally:
        for im in decoded:
            im.close()


def collage_data_uri(images: Sequence[ImageInput], **kwargs) -> str:
    result = compose_collage(images, **kwargs)
    if isinstance(result, str):
        return result
    return to_data_uri(bytes(result))
