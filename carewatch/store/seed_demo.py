from __future__ import annotations

import os
from typing import List

from carewatch.store.schemas import Resident, WhatsAppGroup
from carewatch.store.sqlite_store import SQLiteStore

DEMO_RESIDENTS = [
    {
        "name": "Alice Johnson",
        "room_number": "101",
        "whatsapp_group_id": "120363045@g.us",
        "photo_url": "https://picsum.photos/200/200?random=1",
    },
    {
        "name": "Robert Smith",
        "room_number": "102",
        "whatsapp_group_id": "120363046@g.us",
        "photo_url": "https://picsum.photos/200/200?random=2",
    },
    {
        "name": "Eleanor Rigby",
        "room_number": "205",
        "whatsapp_group_id": "120363047@g.us",
        "photo_url": "https://picsum.photos/200/200?random=3",
    },
]

DEMO_GROUPS = [
    WhatsAppGroup(id="120363045@g.us", name="Alice Johnson Family"),
    WhatsAppGroup(id="120363046@g.us", name="Robert Smith Updates"),
    WhatsAppGroup(id="120363047@g.us", name="Eleanor Rigby Care Circle"),
    WhatsAppGroup(id="120363158@g.us", name="Sunrise Home Announcements"),
    WhatsAppGroup(id="120363159@g.us", name="Staff Coordination"),
]


def seed_demo(store) -> List[Resident]:
    """Insert the demo residents when the store has none; returns what was added."""
    if store.list_residents():
        return []
    return [store.add_resident(r) for r in DEMO_RESIDENTS]


def main() -> None:
    db_path = os.getenv("CAREWATCH_DB_PATH", os.path.join("data", "carewatch.db"))
    store = SQLiteStore(db_path)
    store.init_db()
    added = seed_demo(store)

    if not added:
        print("Residents already present; nothing seeded.")
        return
    print("Seeded residents:")
    for r in added:
        print(" -", r.name, "room:", r.room_number, "group:", r.whatsapp_group_id)


if __name__ == "__main__":
    main()
