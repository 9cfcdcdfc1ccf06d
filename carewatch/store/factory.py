from __future__ import annotations

from typing import Union

from carewatch.store.sqlite_store import SQLiteStore
from carewatch.store.supabase_store import SupabaseStore

Store = Union[SQLiteStore, SupabaseStore]


def is_live_mode(supabase_url: str, supabase_key: str) -> bool:
    return bool((supabase_url or "").strip() and (supabase_key or "").strip())


def open_store(*, db_path: str, supabase_url: str = "", supabase_key: str = "") -> Store:
    if is_live_mode(supabase_url, supabase_key):
        store: Store = SupabaseStore(supabase_url.strip(), supabase_key.strip())
        print("[Store] Live mode: Supabase")
    else:
        store = SQLiteStore(db_path)
        print(f"[Store] Mock mode: SQLite at {db_path}")
    store.init_db()
    return store
