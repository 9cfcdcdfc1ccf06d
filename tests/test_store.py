import sqlite3

import pytest

from carewatch.store.errors import StoreError
from carewatch.store.factory import is_live_mode, open_store
from carewatch.store.schemas import ActivityLog, DeliveryStatus, UpdateCategory
from carewatch.store.seed_demo import DEMO_RESIDENTS, seed_demo
from carewatch.store.sqlite_store import SQLiteStore


def _log(store, resident, **overrides):
    fields = dict(
        resident_id=resident.id,
        resident_name=resident.name,
        staff_name="Nurse Joy",
        category=UpdateCategory.BREAKFAST.value,
        notes="Ate porridge",
        image_urls=[],
        ai_generated_message="Alice enjoyed her porridge.",
    )
    fields.update(overrides)
    return store.create_log(**fields)


def test_category_parse_accepts_values_names_and_labels():
    assert UpdateCategory.parse("Vital Signs") is UpdateCategory.VITALS
    assert UpdateCategory.parse("vitals") is UpdateCategory.VITALS
    assert UpdateCategory.parse("GENERAL") is UpdateCategory.GENERAL
    assert UpdateCategory.VITALS.max_images == 3
    assert UpdateCategory.LUNCH.max_images == 1
    assert UpdateCategory.VITALS.collage and not UpdateCategory.GLUCOSE.collage
    with pytest.raises(ValueError):
        UpdateCategory.parse("Snack")


def test_residents_are_listed_by_name(store):
    store.add_resident({"name": "robert Smith", "room_number": "102", "whatsapp_group_id": "g2"})
    store.add_resident({"name": "Alice Johnson", "room_number": 101, "whatsapp_group_id": "g1"})
    names = [r.name for r in store.list_residents()]
    assert names == ["Alice Johnson", "robert Smith"]
    assert store.list_residents()[0].room_number == "101"


def test_add_resident_requires_core_fields(store):
    with pytest.raises(ValueError, match="required fields"):
        store.add_resident({"name": "No Room", "whatsapp_group_id": "g"})
    assert store.list_residents() == []


def test_update_resident_is_partial(store, resident):
    updated = store.update_resident(resident.id, {"room_number": "301", "unknown": "ignored"})
    assert updated.room_number == "301"
    assert updated.name == "Alice Johnson"
    assert updated.whatsapp_group_id == resident.whatsapp_group_id
    assert store.update_resident("missing", {"name": "X"}) is None


def test_delete_resident_removes_their_logs(store, resident):
    other = store.add_resident({"name": "Robert Smith", "room_number": "102", "whatsapp_group_id": "g2"})
    _log(store, resident)
    kept = _log(store, other)
    store.delete_resident(resident.id)
    assert store.get_resident(resident.id) is None
    assert [log.id for log in store.list_logs()] == [kept.id]


def test_create_log_starts_pending_and_round_trips_images(store, resident):
    log = _log(store, resident, image_urls=["/uploads/a.jpg", "/uploads/b.png"])
    assert log.status == DeliveryStatus.PENDING.value
    loaded = store.get_log(log.id)
    assert isinstance(loaded, ActivityLog)
    assert loaded.image_urls == ["/uploads/a.jpg", "/uploads/b.png"]
    assert loaded.timestamp == log.timestamp
    assert loaded.ai_generated_message == "Alice enjoyed her porridge."


def test_logs_are_newest_first(store, resident):
    first = _log(store, resident, notes="first")
    second = _log(store, resident, notes="second")
    third = _log(store, resident, notes="third")
    assert [log.id for log in store.list_logs()] == [third.id, second.id, first.id]
    assert [log.id for log in store.list_logs(limit=2)] == [third.id, second.id]


def test_update_log_status_validates_value(store, resident):
    log = _log(store, resident)
    store.update_log_status(log.id, "sent")
    assert store.get_log(log.id).status == "SENT"
    with pytest.raises(ValueError):
        store.update_log_status(log.id, "DELIVERED")
    assert store.get_log(log.id).status == "SENT"


def test_memory_store_keeps_data_between_calls():
    s = SQLiteStore(":memory:")
    s.init_db()
    s.add_resident({"name": "Eleanor Rigby", "room_number": "205", "whatsapp_group_id": "g3"})
    assert len(s.list_residents()) == 1


def test_seed_demo_only_fills_an_empty_store(store):
    added = seed_demo(store)
    assert [r.name for r in added] == [r["name"] for r in DEMO_RESIDENTS]
    assert seed_demo(store) == []
    assert len(store.list_residents()) == 3


def test_open_store_picks_sqlite_without_supabase_credentials(tmp_path):
    assert not is_live_mode("", "")
    assert not is_live_mode("https://x.supabase.co", "  ")
    assert is_live_mode("https://x.supabase.co", "anon")
    s = open_store(db_path=str(tmp_path / "db" / "c.db"))
    assert isinstance(s, SQLiteStore)
    assert s.list_residents() == []


def test_sqlite_failures_raise_store_error(store, resident):
    conn = sqlite3.connect(store.db_path)
    conn.execute("DROP TABLE activity_logs")
    conn.commit()
    conn.close()
    with pytest.raises(StoreError, match="SQLite error in list_logs"):
        store.list_logs()
    with pytest.raises(StoreError, match="SQLite error in create_log"):
        _log(store, resident)
    with pytest.raises(StoreError, match="SQLite error in delete_resident"):
        store.delete_resident(resident.id)
    assert store.get_resident(resident.id).name == resident.name
