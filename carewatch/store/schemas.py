from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional


def _row_get(row: Optional[Mapping[str, Any]], key: str, default: Any = None) -> Any:
    if row is None:
        return default
    if hasattr(row, "keys"):
        if key in row.keys():
            value = row[key]
            return default if value is None else value
        return default
    if isinstance(row, dict):
        value = row.get(key, default)
        return default if value is None else value
    return default


def _as_url_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return []
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError:
            return [text]
        value = parsed
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value if str(v).strip()]
    return [str(value)]


class UpdateCategory(str, Enum):
    BREAKFAST = "Breakfast"
    LUNCH = "Lunch"
    DINNER = "Dinner"
    VITALS = "Vital Signs"
    GLUCOSE = "Glucose"
    GENERAL = "General Update"

    @property
    def label(self) -> str:
        return CATEGORY_RULES[self]["label"]

    @property
    def max_images(self) -> int:
        return CATEGORY_RULES[self]["max_images"]

    @property
    def collage(self) -> bool:
        return CATEGORY_RULES[self]["collage"]

    @classmethod
    def parse(cls, value: Any) -> "UpdateCategory":
        if isinstance(value, cls):
            return value
        text = str(value or "").strip().lower()
        for member in cls:
            if text in (member.value.lower(), member.name.lower(), member.label.lower()):
                return member
        raise ValueError(f"Unknown update category: {value!r}")


CATEGORY_RULES: Dict[UpdateCategory, Dict[str, Any]] = {
    UpdateCategory.BREAKFAST: {"label": "Breakfast", "max_images": 1, "collage": False},
    UpdateCategory.LUNCH: {"label": "Lunch", "max_images": 1, "collage": False},
    UpdateCategory.DINNER: {"label": "Dinner", "max_images": 1, "collage": False},
    UpdateCategory.VITALS: {"label": "Vitals", "max_images": 3, "collage": True},
    UpdateCategory.GLUCOSE: {"label": "Glucose", "max_images": 1, "collage": False},
    UpdateCategory.GENERAL: {"label": "General", "max_images": 1, "collage": False},
}


class DeliveryStatus(str, Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"

    @classmethod
    def parse(cls, value: Any) -> "DeliveryStatus":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or "").strip().upper())
        except ValueError:
            raise ValueError(f"Invalid delivery status: {value!r}") from None


@dataclass
class Resident:
    id: str
    name: str
    room_number: str
    whatsapp_group_id: str
    notes: str | None = None
    photo_url: str | None = None
    created_at: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Resident":
        return cls(
            id=str(_row_get(row, "id", "")),
            name=_row_get(row, "name", ""),
            room_number=str(_row_get(row, "room_number", "")),
            whatsapp_group_id=_row_get(row, "whatsapp_group_id", ""),
            notes=_row_get(row, "notes"),
            photo_url=_row_get(row, "photo_url"),
            created_at=_row_get(row, "created_at", ""),
        )


@dataclass
class ActivityLog:
    id: str
    resident_id: str
    resident_name: str
    staff_name: str
    category: str
    timestamp: str
    notes: str
    image_urls: List[str] = field(default_factory=list)
    status: str = DeliveryStatus.PENDING.value
    ai_generated_message: str | None = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "ActivityLog":
        images = _row_get(row, "image_urls")
        if images is None:
            images = _row_get(row, "image_urls_json")
        return cls(
            id=str(_row_get(row, "id", "")),
            resident_id=str(_row_get(row, "resident_id", "")),
            resident_name=_row_get(row, "resident_name", ""),
            staff_name=_row_get(row, "staff_name", ""),
            category=_row_get(row, "category", ""),
            timestamp=_row_get(row, "created_at", _row_get(row, "timestamp", "")),
            notes=_row_get(row, "notes", ""),
            image_urls=_as_url_list(images),
            status=_row_get(row, "status", DeliveryStatus.PENDING.value),
            ai_generated_message=_row_get(row, "ai_generated_message"),
        )


@dataclass
class WhatsAppGroup:
    id: str
    name: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "WhatsAppGroup":
        return cls(id=str(_row_get(row, "id", "")), name=str(_row_get(row, "name", "")))


RESIDENT_FIELDS = ("name", "room_number", "whatsapp_group_id", "notes", "photo_url")
REQUIRED_RESIDENT_FIELDS = ("name", "room_number", "whatsapp_group_id")


def clean_resident_fields(data: Mapping[str, Any], *, require: bool = False) -> Dict[str, Any]:
    fields = {}
    for key in RESIDENT_FIELDS:
        if key in data:
            value = data[key]
            fields[key] = value.strip() if isinstance(value, str) else value
    if require:
        missing = [k for k in REQUIRED_RESIDENT_FIELDS if not fields.get(k)]
        if missing:
            raise ValueError("Please fill in all required fields: " + ", ".join(missing))
    return fields


__all__ = [
    "UpdateCategory",
    "CATEGORY_RULES",
    "DeliveryStatus",
    "Resident",
    "ActivityLog",
    "WhatsAppGroup",
    "RESIDENT_FIELDS",
    "REQUIRED_RESIDENT_FIELDS",
    "clean_resident_fields",
]
