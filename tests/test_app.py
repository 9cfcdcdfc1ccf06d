import io
import sqlite3
import zipfile
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

import app as web_app
from carewatch.relay.client import OFFLINE_MESSAGE, RelayUnavailable
from carewatch.store.errors import StoreError
from carewatch.store.sqlite_store import SQLiteStore
from carewatch.ui import services


@pytest.fixture
def client(tmp_path, relay):
    services.configure(
        base_dir=str(tmp_path),
        db_path=str(tmp_path / "app.db"),
        uploads_dir=str(tmp_path / "uploads"),
        supabase_url="",
        supabase_key="",
        relay_mode="mock",
        message_backend="none",
        default_staff_name="Care Staff",
    )
    services.set_backend("relay", relay)
    return TestClient(web_app.app)


@pytest.fixture
def admin(client):
    client.get("/login/admin")
    return client


@pytest.fixture
def staff(client):
    client.get("/login/staff")
    return client


def _add_resident(c, name="Alice Johnson", group="120363045@g.us"):
    resp = c.post("/api/residents", json={"name": name, "room_number": "101", "whatsapp_group_id": group})
    assert resp.status_code == 200
    return resp.json()


def test_landing_page_offers_both_roles(client):
    resp = client.get("/")
    assert resp.status_code == 200
    assert "/login/staff" in resp.text and "/login/admin" in resp.text
    assert "cw_session" in resp.cookies


def test_role_pages_and_logout(client):
    assert "Log an Update" in client.get("/login/staff").text
    assert "Mock" in client.get("/").text
    client.get("/logout")
    assert "/login/admin" in client.get("/").text
    assert "Delivery Logs" in client.get("/login/admin").text


def test_api_requires_a_role(client):
    assert client.get("/api/residents").status_code == 401
    client.get("/login/staff")
    assert client.get("/api/stats").status_code == 403


def test_resident_crud(admin):
    created = _add_resident(admin)
    assert created["id"]
    bad = admin.post("/api/residents", json={"name": "No Group", "room_number": "9"})
    assert bad.status_code == 400
    assert bad.json()["ok"] is False
    updated = admin.put(f"/api/residents/{created['id']}", json={"room_number": "202"})
    assert updated.json()["room_number"] == "202"
    assert admin.put("/api/residents/missing", json={"room_number": "1"}).status_code == 404
    assert admin.put(f"/api/residents/{created['id']}", json={"name": "  "}).status_code == 400
    assert [r["name"] for r in admin.get("/api/residents").json()] == ["Alice Johnson"]
    assert admin.delete(f"/api/residents/{created['id']}").json() == {"ok": True}
    assert admin.delete(f"/api/residents/{created['id']}").status_code == 404
    assert admin.get("/api/residents").json() == []


def test_submit_update_with_collage_and_delivery(admin, relay, make_image):
    resident = _add_resident(admin)
    files = [
        ("images", ("a.jpg", make_image(100, 50), "image/jpeg")),
        ("images", ("b.jpg", make_image(50, 50), "image/jpeg")),
    ]
    data = {"resident_id": resident["id"], "category": "Vital Signs", "notes": "BP 120/80", "staff_name": ""}
    resp = admin.post("/api/updates", data=data, files=files)
    assert resp.status_code == 200
    log = resp.json()
    assert log["status"] == "SENT"
    assert log["staff_name"] == "Care Staff"
    assert log["ai_generated_message"] == "Update for Alice Johnson: Vital Signs. BP 120/80"
    assert len(log["image_urls"]) == 1
    assert relay.sent[0]["groupId"] == "120363045@g.us"

    stats = admin.get("/api/stats").json()
    assert stats == {"total_residents": 1, "linked_groups": 1, "updates_today": 1}
    assert [l["id"] for l in admin.get("/api/logs", params={"q": "bp 120"}).json()] == [log["id"]]
    assert admin.get("/api/logs", params={"q": "nothing like this"}).json() == []


def test_submit_update_validation(staff, make_image):
    assert staff.post("/api/updates", data={"resident_id": "nope", "category": "Lunch"}).status_code == 404
    alice = services.get_store().add_resident({"name": "Alice", "room_number": "1", "whatsapp_group_id": "g"})
    too_many = [("images", (f"{i}.jpg", make_image(), "image/jpeg")) for i in range(2)]
    resp = staff.post("/api/updates", data={"resident_id": alice.id, "category": "Lunch"}, files=too_many)
    assert resp.status_code == 400
    bad_cat = staff.post("/api/updates", data={"resident_id": alice.id, "category": "Snack"})
    assert bad_cat.status_code == 400


def test_gallery_download_and_export(admin, make_image):
    resident = _add_resident(admin, name="Robert Smith")
    raw = make_image(fmt="PNG")
    admin.post(
        "/api/updates",
        data={"resident_id": resident["id"], "category": "Lunch", "notes": "Soup"},
        files=[("images", ("lunch.png", raw, "image/png"))],
    )
    items = admin.get("/api/gallery").json()
    assert len(items) == 1
    assert admin.get("/api/gallery", params={"category": "Dinner"}).json() == []

    download = admin.get(f"/api/gallery/{items[0]['id']}/download")
    assert download.status_code == 200
    assert download.content == raw
    assert "Robert_Smith_Lunch_" in download.headers["content-disposition"]
    assert admin.get("/api/gallery/unknown-0/download").status_code == 404

    assert admin.post("/api/gallery/export", json={"ids": []}).status_code == 400
    export = admin.post("/api/gallery/export", json={"ids": [items[0]["id"]]})
    assert export.status_code == 200
    assert "CareWatch_Memories_" in export.headers["content-disposition"]
    with zipfile.ZipFile(io.BytesIO(export.content)) as zf:
        (name,) = zf.namelist()
        assert name.startswith("CareWatch_Memories/Robert_Smith_Lunch_")
        assert zf.read(name) == raw


def test_bot_status_and_groups(admin):
    assert admin.get("/api/bot/status").json() == {"status": "connected", "qr": None}

    class OfflineRelay:
        def list_groups(self):
            raise RelayUnavailable(OFFLINE_MESSAGE)

    services.set_backend("relay", OfflineRelay())
    resp = admin.get("/api/bot/groups")
    assert resp.status_code == 503
    assert resp.json()["message"] == OFFLINE_MESSAGE


def test_store_errors_are_reported_as_json(admin):
    class BrokenStore:
        def list_residents(self):
            raise StoreError("Failed to fetch residents. Check database connection.")

    services.set_backend("store", BrokenStore())
    resp = admin.get("/api/residents")
    assert resp.status_code == 500
    assert resp.json() == {"ok": False, "message": "Failed to fetch residents. Check database connection."}


def test_sqlite_failures_are_reported_as_json(admin, tmp_path):
    broken = SQLiteStore(str(tmp_path / "broken.db"))
    broken.init_db()
    conn = sqlite3.connect(broken.db_path)
    conn.execute("DROP TABLE residents")
    conn.commit()
    conn.close()
    services.set_backend("store", broken)
    resp = admin.get("/api/residents")
    assert resp.status_code == 500
    assert resp.headers["content-type"].startswith("application/json")
    body = resp.json()
    assert body["ok"] is False
    assert body["message"].startswith("SQLite error in list_residents")


def test_categories_list_limits(client):
    cats = {c["value"]: c for c in client.get("/api/categories").json()}
    assert cats["Vital Signs"]["max_images"] == 3
    assert cats["Vital Signs"]["collage"] is True
    assert cats["Breakfast"]["max_images"] == 1
    assert len(cats) == 6


def test_export_archive_is_named_by_utc_date(admin, make_image, monkeypatch):
    class LateEveningUtc(datetime):
        @classmethod
        def now(cls, tz=None):
            return datetime(2024, 5, 3, 23, 30, tzinfo=timezone.utc).astimezone(tz)

    resident = _add_resident(admin)
    admin.post(
        "/api/updates",
        data={"resident_id": resident["id"], "category": "Dinner", "notes": "Pasta"},
        files=[("images", ("dinner.jpg", make_image(), "image/jpeg"))],
    )
    (item,) = admin.get("/api/gallery").json()
    monkeypatch.setattr(web_app, "datetime", LateEveningUtc)
    export = admin.post("/api/gallery/export", json={"ids": [item["id"]]})
    assert 'filename="CareWatch_Memories_2024-05-03.zip"' in export.headers["content-disposition"]
