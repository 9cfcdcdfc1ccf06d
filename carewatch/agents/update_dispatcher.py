from __future__ import annotations

import time
from typing import Any, Dict, List, Optional, Sequence, Union

from carewatch.store.schemas import ActivityLog, DeliveryStatus, UpdateCategory
from carewatch.tools.collage import CollageError, compose_collage

ImagePayload = Union[bytes, bytearray, str]


class UpdateDispatcher:
    """Runs one staff submission end to end.

    Order: validate, compose the family message, build the collage (or keep the
    originals), persist images, write the log as PENDING, then hand the message
    to the relay and record SENT or FAILED. A resident without a linked group
    keeps the log PENDING.
    """

    def __init__(
        self,
        store,
        composer,
        relay,
        image_store,
        *,
        collage_options: Optional[Dict[str, Any]] = None,
        default_staff_name: str = "Care Staff",
    ) -> None:
        self.store = store
        self.composer = composer
        self.relay = relay
        self.image_store = image_store
        self.collage_options = dict(collage_options or {})
        self.default_staff_name = default_staff_name

    def _prepare_images(self, category: UpdateCategory, images: List[ImagePayload]) -> List[ImagePayload]:
        if not category.collage or len(images) < 2:
            return images
        start = time.perf_counter()
        try:
            combined = compose_collage(images, **self.collage_options)
        except CollageError as exc:
            print(f"[Collage] Failed, sending {len(images)} original images: {exc}")
            return images
        elapsed_ms = (time.perf_counter() - start) * 1000
        print(f"[Collage] Combined {len(images)} images in {elapsed_ms:.1f}ms")
        return [combined]

    def submit(
        self,
        resident_id: str,
        category: Any,
        notes: str,
        images: Sequence[ImagePayload] = (),
        staff_name: str = "",
    ) -> ActivityLog:
        resident = self.store.get_resident(resident_id)
        if resident is None:
            raise LookupError(f"Resident not found: {resident_id}")
        cat = UpdateCategory.parse(category)
        captured = [img for img in (images or []) if img]
        if len(captured) > cat.max_images:
            raise ValueError(f"{cat.value} allows at most {cat.max_images} image(s); got {len(captured)}.")
        notes = (notes or "").strip()
        staff = (staff_name or "").strip() or self.default_staff_name

        message = self.composer.compose(resident.name, cat.value, notes)
        final_images = self._prepare_images(cat, captured)
        image_urls = [self.image_store.save(img) for img in final_images]

        log = self.store.create_log(
            resident_id=resident.id,
            resident_name=resident.name,
            staff_name=staff,
            category=cat.value,
            notes=notes,
            image_urls=image_urls,
            ai_generated_message=message,
        )

        group_id = (resident.whatsapp_group_id or "").strip()
        if not group_id or not message:
            print(f"[Dispatch] Log {log.id} left PENDING (no linked group or message).")
            return log

        sent = self.relay.send_update(group_id, message, image_urls)
        status = DeliveryStatus.SENT if sent else DeliveryStatus.FAILED
        self.store.update_log_status(log.id, status.value)
        log.status = status.value
        print(f"[Dispatch] Log {log.id} for {resident.name}: {status.value}")
        return log
