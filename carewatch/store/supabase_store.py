from __future__ import annotations

from typing import Any, List, Mapping, Optional, Sequence

from carewatch.store.errors import StoreError
from carewatch.store.schemas import (
    ActivityLog,
    DeliveryStatus,
    Resident,
    clean_resident_fields,
)

RESIDENTS_TABLE = "residents"
LOGS_TABLE = "activity_logs"


class SupabaseStore:
    """Resident/log store backed by a hosted Supabase project.

    Tables mirror the SQLite layout, except that ``image_urls`` is a native
    array column and ``created_at`` is filled in by the database.
    """

    def __init__(self, url: str = "", key: str = "", client: Any = None) -> None:
        if client is None:
            if not url or not key:
                raise StoreError("Supabase URL and key are required for live mode.")
            from supabase import create_client

            client = create_client(url, key)
        self.client = client

    def _run(self, action: str, query) -> List[dict]:
        try:
            response = query.execute()
        except Exception as exc:
            print(f"[Store] Supabase error {action}: {exc}")
            message = getattr(exc, "message", None) or str(exc)
            raise StoreError(message or f"Failed to {action}. Check database connection.") from exc
        return list(getattr(response, "data", None) or [])

    def init_db(self) -> None:
        # Schema is managed in the Supabase project; nothing to create client-side.
        return None

    # --- residents ---

    def list_residents(self) -> List[Resident]:
        rows = self._run("fetch residents", self.client.table(RESIDENTS_TABLE).select("*").order("name"))
        return [Resident.from_row(r) for r in rows]

    def get_resident(self, resident_id: str) -> Optional[Resident]:
        rows = self._run(
            "fetch resident",
            self.client.table(RESIDENTS_TABLE).select("*").eq("id", resident_id).limit(1),
        )
        return Resident.from_row(rows[0]) if rows else None

    def add_resident(self, data: Mapping[str, Any]) -> Resident:
        fields = clean_resident_fields(data, require=True)
        rows = self._run("add resident", self.client.table(RESIDENTS_TABLE).insert(fields))
        if not rows:
            raise StoreError("Resident insert returned no row.")
        return Resident.from_row(rows[0])

    def update_resident(self, resident_id: str, updates: Mapping[str, Any]) -> Optional[Resident]:
        fields = clean_resident_fields(updates)
        if fields:
            self._run(
                "update resident",
                self.client.table(RESIDENTS_TABLE).update(fields).eq("id", resident_id),
            )
        return self.get_resident(resident_id)

    def delete_resident(self, resident_id: str) -> None:
        # Logs first: activity_logs.resident_id references residents.id.
        try:
            self._run(
                "delete resident logs",
                self.client.table(LOGS_TABLE).delete().eq("resident_id", resident_id),
            )
        except StoreError as exc:
            raise StoreError("Failed to clean up resident logs.") from exc
        self._run("delete resident", self.client.table(RESIDENTS_TABLE).delete().eq("id", resident_id))

    # --- activity logs ---

    def list_logs(self, limit: Optional[int] = None) -> List[ActivityLog]:
        query = self.client.table(LOGS_TABLE).select("*").order("created_at", desc=True)
        if limit is not None:
            query = query.limit(int(limit))
        return [ActivityLog.from_row(r) for r in self._run("fetch logs", query)]

    def get_log(self, log_id: str) -> Optional[ActivityLog]:
        rows = self._run("fetch log", self.client.table(LOGS_TABLE).select("*").eq("id", log_id).limit(1))
        return ActivityLog.from_row(rows[0]) if rows else None

    def create_log(
        self,
        *,
        resident_id: str,
        resident_name: str,
        staff_name: str,
        category: str,
        notes: str,
        image_urls: Sequence[str],
        ai_generated_message: Optional[str],
    ) -> ActivityLog:
        payload = {
            "resident_id": resident_id,
            "resident_name": resident_name,
            "staff_name": staff_name,
            "category": category,
            "notes": notes or "",
            "image_urls": list(image_urls or []),
            "status": DeliveryStatus.PENDING.value,
            "ai_generated_message": ai_generated_message,
        }
        rows = self._run("create log", self.client.table(LOGS_TABLE).insert(payload))
        if not rows:
            raise StoreError("Log insert returned no row.")
        return ActivityLog.from_row(rows[0])

    def update_log_status(self, log_id: str, status: str) -> None:
        value = DeliveryStatus.parse(status).value
        self._run("update log status", self.client.table(LOGS_TABLE).update({"status": value}).eq("id", log_id))

