from __future__ import annotations

import io
import re
import zipfile
from datetime import date
from typing import Callable, Iterable, Optional

from carewatch.tools.gallery import GalleryImage

EXPORT_FOLDER = "CareWatch_Memories"
_UNSAFE = re.compile(r'[\\/:*?"<>|\x00-\x1f]')


def _safe_part(value: str) -> str:
    text = re.sub(r"\s+", "_", (value or "").strip())
    return _UNSAFE.sub("_", text)


def export_filename(resident_name: str, category: str, timestamp: str, suffix: Optional[str] = None) -> str:
    name = f"{_safe_part(resident_name)}_{_safe_part(category)}_{(timestamp or '')[:10]}"
    if suffix:
        name += f"_{_safe_part(suffix)}"
    return name + ".jpg"


def export_archive_name(today: Optional[date] = None) -> str:
    return f"{EXPORT_FOLDER}_{(today or date.today()).isoformat()}.zip"


def build_export_archive(items: Iterable[GalleryImage], load_bytes: Callable[[str], bytes]) -> bytes:
    """Zip the selected gallery photos under one folder, skipping any that fail to load."""
    buf = io.BytesIO()
    used = set()
    written = 0
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        for item in items:
            try:
                raw = load_bytes(item.url)
            except (OSError, ValueError) as exc:
                print(f"[Export] Skipping {item.id}: {exc}")
                continue
            suffix = f"{item.log_id[:8]}-{item.index}"
            filename = export_filename(item.resident_name, item.category, item.timestamp, suffix)
            counter = 2
            while filename in used:
                filename = export_filename(item.resident_name, item.category, item.timestamp, f"{suffix}-{counter}")
                counter += 1
            used.add(filename)
            zf.writestr(f"{EXPORT_FOLDER}/{filename}", raw)
            written += 1
    print(f"[Export] Archived {written} image(s)")
    return buf.getvalue()
