from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence

from carewatch.store.schemas import ActivityLog, Resident


@dataclass
class GalleryImage:
    id: str
    log_id: str
    index: int
    url: str
    resident_name: str
    category: str
    timestamp: str
    notes: str
    staff_name: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _log_date(timestamp: str) -> str:
    return (timestamp or "")[:10]


def flatten_gallery(logs: Iterable[ActivityLog]) -> List[GalleryImage]:
    ordered = sorted(logs, key=lambda log: log.timestamp or "", reverse=True)
    items: List[GalleryImage] = []
    for log in ordered:
        for idx, url in enumerate(log.image_urls or []):
            items.append(
                GalleryImage(
                    id=f"{log.id}-{idx}",
                    log_id=log.id,
                    index=idx,
                    url=url,
                    resident_name=log.resident_name,
                    category=log.category,
                    timestamp=log.timestamp,
                    notes=log.notes,
                    staff_name=log.staff_name,
                )
            )
    return items


def filter_gallery(
    items: Iterable[GalleryImage], resident: str = "all", category: str = "all"
) -> List[GalleryImage]:
    resident = (resident or "all").strip()
    category = (category or "all").strip()
    out = []
    for item in items:
        if resident != "all" and item.resident_name != resident:
            continue
        if category != "all" and item.category != category:
            continue
        out.append(item)
    return out


def find_gallery_item(items: Iterable[GalleryImage], image_id: str) -> Optional[GalleryImage]:
    for item in items:
        if item.id == image_id:
            return item
    return None


def search_logs(logs: Sequence[ActivityLog], query: str) -> List[ActivityLog]:
    needle = (query or "").strip().lower()
    if not needle:
        return list(logs)
    out = []
    for log in logs:
        haystack = " ".join(
            [
                log.resident_name or "",
                log.staff_name or "",
                log.category or "",
                log.notes or "",
                log.ai_generated_message or "",
            ]
        ).lower()
        if needle in haystack:
            out.append(log)
    return out


def dashboard_stats(
    residents: Sequence[Resident], logs: Sequence[ActivityLog], today: Optional[date] = None
) -> Dict[str, int]:
    day = (today or datetime.now(timezone.utc).date()).isoformat()
    return {
        "total_residents": len(residents),
        "linked_groups": sum(1 for r in residents if (r.whatsapp_group_id or "").strip()),
        "updates_today": sum(1 for log in logs if _log_date(log.timestamp) == day),
    }
