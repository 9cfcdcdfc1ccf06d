import pytest

from carewatch.store.errors import StoreError
from carewatch.store.supabase_store import SupabaseStore


@pytest.fixture
def sb_store(supabase_client):
    return SupabaseStore(client=supabase_client)


def _add(store, name, group="g1"):
    return store.add_resident({"name": name, "room_number": "1", "whatsapp_group_id": group})


def test_missing_credentials_raise_store_error():
    with pytest.raises(StoreError):
        SupabaseStore(url="", key="")


def test_resident_crud(sb_store):
    bob = _add(sb_store, "Robert Smith")
    alice = _add(sb_store, "Alice Johnson")
    assert [r.name for r in sb_store.list_residents()] == ["Alice Johnson", "Robert Smith"]
    assert sb_store.get_resident(bob.id).name == "Robert Smith"
    updated = sb_store.update_resident(alice.id, {"notes": "Likes tea"})
    assert updated.notes == "Likes tea"
    assert sb_store.get_resident("nope") is None


def test_logs_are_created_pending_and_status_updates(sb_store):
    alice = _add(sb_store, "Alice Johnson")
    log = sb_store.create_log(
        resident_id=alice.id,
        resident_name=alice.name,
        staff_name="Nurse Joy",
        category="Lunch",
        notes="Soup",
        image_urls=["/uploads/x.jpg"],
        ai_generated_message="Alice had soup.",
    )
    assert log.status == "PENDING"
    assert log.image_urls == ["/uploads/x.jpg"]
    sb_store.update_log_status(log.id, "FAILED")
    assert sb_store.get_log(log.id).status == "FAILED"
    with pytest.raises(ValueError):
        sb_store.update_log_status(log.id, "LOST")


def test_list_logs_newest_first(sb_store):
    alice = _add(sb_store, "Alice Johnson")
    ids = []
    for note in ("one", "two"):
        ids.append(
            sb_store.create_log(
                resident_id=alice.id,
                resident_name=alice.name,
                staff_name="S",
                category="Lunch",
                notes=note,
                image_urls=[],
                ai_generated_message=None,
            ).id
        )
    assert [log.id for log in sb_store.list_logs()] == list(reversed(ids))


def test_delete_resident_removes_logs_first(sb_store, supabase_client):
    alice = _add(sb_store, "Alice Johnson")
    supabase_client.calls.clear()
    sb_store.delete_resident(alice.id)
    deletes = [c for c in supabase_client.calls if c[0] == "delete"]
    assert deletes == [("delete", "activity_logs"), ("delete", "residents")]
    assert sb_store.list_residents() == []


def test_failed_log_cleanup_keeps_resident(sb_store, supabase_client):
    alice = _add(sb_store, "Alice Johnson")
    supabase_client.fail_on.add(("delete", "activity_logs"))
    with pytest.raises(StoreError, match="Failed to clean up resident logs."):
        sb_store.delete_resident(alice.id)
    assert sb_store.get_resident(alice.id) is not None


def test_client_errors_become_store_errors(sb_store, supabase_client):
    supabase_client.fail_on.add(("select", "residents"))
    with pytest.raises(StoreError):
        sb_store.list_residents()
