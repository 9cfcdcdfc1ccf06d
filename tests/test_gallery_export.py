import io
import zipfile
from datetime import date

from carewatch.store.schemas import ActivityLog, Resident
from carewatch.tools.export_bundle import build_export_archive, export_archive_name, export_filename
from carewatch.tools.gallery import dashboard_stats, filter_gallery, find_gallery_item, flatten_gallery, search_logs


def _log(log_id, resident, category, ts, images, notes="", message=None, staff="Nurse Joy"):
    return ActivityLog(
        id=log_id,
        resident_id=resident.lower(),
        resident_name=resident,
        staff_name=staff,
        category=category,
        timestamp=ts,
        notes=notes,
        image_urls=images,
        status="SENT",
        ai_generated_message=message,
    )


LOGS = [
    _log("aaaa1111", "Alice Johnson", "Vital Signs", "2024-05-01T09:00:00+00:00", ["/uploads/1.jpg", "/uploads/2.jpg"]),
    _log("bbbb2222", "Robert Smith", "Lunch", "2024-05-02T12:00:00+00:00", ["/uploads/3.jpg"], notes="Soup", message="Robert loved the soup"),
    _log("cccc3333", "Alice Johnson", "General Update", "2024-05-03T15:00:00+00:00", [], notes="Music session"),
]


def test_flatten_gallery_orders_newest_first_and_numbers_images():
    items = flatten_gallery(LOGS)
    assert [i.id for i in items] == ["bbbb2222-0", "aaaa1111-0", "aaaa1111-1"]
    assert items[1].url == "/uploads/1.jpg"
    assert items[0].notes == "Soup"
    assert find_gallery_item(items, "aaaa1111-1").url == "/uploads/2.jpg"
    assert find_gallery_item(items, "zzz-0") is None


def test_filter_gallery_by_resident_and_category():
    items = flatten_gallery(LOGS)
    assert len(filter_gallery(items)) == 3
    assert [i.id for i in filter_gallery(items, resident="Alice Johnson")] == ["aaaa1111-0", "aaaa1111-1"]
    assert [i.id for i in filter_gallery(items, category="Lunch")] == ["bbbb2222-0"]
    assert filter_gallery(items, resident="Robert Smith", category="Vital Signs") == []


def test_search_logs_is_case_insensitive_across_fields():
    assert search_logs(LOGS, "") == LOGS
    assert [l.id for l in search_logs(LOGS, "alice")] == ["aaaa1111", "cccc3333"]
    assert [l.id for l in search_logs(LOGS, "LOVED")] == ["bbbb2222"]
    assert [l.id for l in search_logs(LOGS, "music")] == ["cccc3333"]
    assert [l.id for l in search_logs(LOGS, "nurse joy")] == [l.id for l in LOGS]


def test_dashboard_stats_counts_today_and_linked_groups():
    residents = [
        Resident(id="1", name="A", room_number="1", whatsapp_group_id="g1"),
        Resident(id="2", name="B", room_number="2", whatsapp_group_id=""),
    ]
    stats = dashboard_stats(residents, LOGS, today=date(2024, 5, 2))
    assert stats == {"total_residents": 2, "linked_groups": 1, "updates_today": 1}


def test_export_filename_format():
    assert export_filename("Alice  Mary Johnson", "Vital Signs", "2024-05-01T09:00:00Z") == (
        "Alice_Mary_Johnson_Vital_Signs_2024-05-01.jpg"
    )
    assert export_filename("Bob/Smith", "Lunch", "2024-05-02T12:00:00Z", "ab12-0") == "Bob_Smith_Lunch_2024-05-02_ab12-0.jpg"
    assert export_archive_name(date(2024, 5, 3)) == "CareWatch_Memories_2024-05-03.zip"


def test_export_archive_collects_images_and_skips_failures():
    items = flatten_gallery(LOGS)
    blobs = {"/uploads/1.jpg": b"one", "/uploads/3.jpg": b"three"}

    def load(url):
        if url not in blobs:
            raise OSError("missing file")
        return blobs[url]

    data = build_export_archive(items, load)
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        names = sorted(zf.namelist())
        assert names == [
            "CareWatch_Memories/Alice_Johnson_Vital_Signs_2024-05-01_aaaa1111-0.jpg",
            "CareWatch_Memories/Robert_Smith_Lunch_2024-05-02_bbbb2222-0.jpg",
        ]
        assert zf.read(names[1]) == b"three"


def test_export_archive_never_overwrites_duplicate_names():
    items = flatten_gallery(LOGS)[:1] * 2
    data = build_export_archive(items, lambda url: b"x")
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        assert len(zf.namelist()) == 2
        assert len(set(zf.namelist())) == 2
