from __future__ import annotations

import json
import os
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator, List, Mapping, Optional, Sequence

from carewatch.store.errors import StoreError
from carewatch.store.schemas import (
    ActivityLog,
    DeliveryStatus,
    Resident,
    clean_resident_fields,
)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_id() -> str:
    return uuid.uuid4().hex


class SQLiteStore:
    def __init__(self, db_path: str) -> None:
        self.db_path = db_path
        self._memory_conn: Optional[sqlite3.Connection] = None

    def _connect(self) -> sqlite3.Connection:
        # ":memory:" databases vanish with their connection, so keep a single one alive.
        if self.db_path in (":memory:", ""):
            if self._memory_conn is None:
                self._memory_conn = sqlite3.connect(":memory:", check_same_thread=False)
                self._memory_conn.row_factory = sqlite3.Row
            return self._memory_conn
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _db(self, op: str) -> Iterator[sqlite3.Connection]:
        try:
            with self._connect() as conn:
                yield conn
        except sqlite3.Error as exc:
            raise StoreError(f"SQLite error in {op}: {exc}") from exc

    def init_db(self) -> None:
        if self.db_path not in (":memory:", ""):
            db_dir = os.path.dirname(self.db_path)
            if db_dir:
                os.makedirs(db_dir, exist_ok=True)
        with self._db("init_db") as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS residents (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    room_number TEXT NOT NULL,
                    whatsapp_group_id TEXT NOT NULL,
                    notes TEXT,
                    photo_url TEXT,
                    created_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS activity_logs (
                    id TEXT PRIMARY KEY,
                    resident_id TEXT NOT NULL,
                    resident_name TEXT NOT NULL,
                    staff_name TEXT NOT NULL,
                    category TEXT NOT NULL,
                    notes TEXT,
                    image_urls_json TEXT NOT NULL,
                    status TEXT NOT NULL,
                    ai_generated_message TEXT,
                    created_at TEXT NOT NULL,
                    seq INTEGER
                )
                """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_activity_logs_resident ON activity_logs(resident_id)"
            )

    # --- residents ---

    def list_residents(self) -> List[Resident]:
        with self._db("list_residents") as conn:
            rows = conn.execute("SELECT * FROM residents ORDER BY name COLLATE NOCASE").fetchall()
        return [Resident.from_row(r) for r in rows]

    def get_resident(self, resident_id: str) -> Optional[Resident]:
        with self._db("get_resident") as conn:
            row = conn.execute("SELECT * FROM residents WHERE id = ?", (resident_id,)).fetchone()
        return Resident.from_row(row) if row else None

    def add_resident(self, data: Mapping[str, Any]) -> Resident:
        fields = clean_resident_fields(data, require=True)
        resident = Resident(
            id=_new_id()[:9],
            name=fields["name"],
            room_number=str(fields["room_number"]),
            whatsapp_group_id=fields["whatsapp_group_id"],
            notes=fields.get("notes"),
            photo_url=fields.get("photo_url"),
            created_at=_now_iso(),
        )
        with self._db("add_resident") as conn:
            conn.execute(
                """
                INSERT INTO residents (id, name, room_number, whatsapp_group_id, notes, photo_url, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    resident.id,
                    resident.name,
                    resident.room_number,
                    resident.whatsapp_group_id,
                    resident.notes,
                    resident.photo_url,
                    resident.created_at,
                ),
            )
        return resident

    def update_resident(self, resident_id: str, updates: Mapping[str, Any]) -> Optional[Resident]:
        fields = clean_resident_fields(updates)
        if fields:
            assignments = ", ".join(f"{k} = ?" for k in fields)
            with self._db("update_resident") as conn:
                conn.execute(
                    f"UPDATE residents SET {assignments} WHERE id = ?",
                    (*fields.values(), resident_id),
                )
        return self.get_resident(resident_id)

    def delete_resident(self, resident_id: str) -> None:
        with self._db("delete_resident") as conn:
            conn.execute("DELETE FROM activity_logs WHERE resident_id = ?", (resident_id,))
            conn.execute("DELETE FROM residents WHERE id = ?", (resident_id,))

    # --- activity logs ---

    def list_logs(self, limit: Optional[int] = None) -> List[ActivityLog]:
        sql = "SELECT * FROM activity_logs ORDER BY created_at DESC, seq DESC"
        params: tuple = ()
        if limit is not None:
            sql += " LIMIT ?"
            params = (int(limit),)
        with self._db("list_logs") as conn:
            rows = conn.execute(sql, params).fetchall()
        return [ActivityLog.from_row(r) for r in rows]

    def get_log(self, log_id: str) -> Optional[ActivityLog]:
        with self._db("get_log") as conn:
            row = conn.execute("SELECT * FROM activity_logs WHERE id = ?", (log_id,)).fetchone()
        return ActivityLog.from_row(row) if row else None

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
        log = ActivityLog(
            id=_new_id(),
            resident_id=resident_id,
            resident_name=resident_name,
            staff_name=staff_name,
            category=category,
            timestamp=_now_iso(),
            notes=notes or "",
            image_urls=list(image_urls or []),
            status=DeliveryStatus.PENDING.value,
            ai_generated_message=ai_generated_message,
        )
        with self._db("create_log") as conn:
            seq_row = conn.execute("SELECT COALESCE(MAX(seq), 0) + 1 FROM activity_logs").fetchone()
            conn.execute(
                """
                INSERT INTO activity_logs (
                    id, resident_id, resident_name, staff_name, category, notes,
                    image_urls_json, status, ai_generated_message, created_at, seq
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    log.id,
                    log.resident_id,
                    log.resident_name,
                    log.staff_name,
                    log.category,
                    log.notes,
                    json.dumps(log.image_urls, ensure_ascii=False),
                    log.status,
                    log.ai_generated_message,
                    log.timestamp,
                    seq_row[0],
                ),
            )
        return log

    def update_log_status(self, log_id: str, status: str) -> None:
        value = DeliveryStatus.parse(status).value
        with self._db("update_log_status") as conn:
            conn.execute("UPDATE activity_logs SET status = ? WHERE id = ?", (value, log_id))

