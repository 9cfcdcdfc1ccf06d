from __future__ import annotations

import os
import time
from typing import Any, Dict, Optional

from carewatch.utils.env_utils import env_str, env_truthy, float_env, int_env

_BASE_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
_DB_PATH = os.path.join(_BASE_DIR, "data", "carewatch.db")
_UPLOADS_DIR = os.path.join(_BASE_DIR, "data", "uploads")
_SUPABASE_URL = ""
_SUPABASE_KEY = ""
_RELAY_MODE = "auto"
_BOT_SERVER_URL = "http://localhost:3001"
_MESSAGE_BACKEND = "auto"
_DEFAULT_STAFF_NAME = "Care Staff"
_BACKEND_CACHE: dict = {
    "store": None,
    "composer": None,
    "relay": None,
    "image_store": None,
    "dispatcher": None,
}
_PERF_LOG = env_truthy("PERF_LOG", "1")


def _log_perf(label: str, start: float, extra: str = "") -> None:
    if not _PERF_LOG:
        return
    elapsed_ms = (time.perf_counter() - start) * 1000
    suffix = f" | {extra}" if extra else ""
    print(f"[perf] {label}: {elapsed_ms:.1f}ms{suffix}")


def configure(
    *,
    base_dir: str = "",
    db_path: str = "",
    uploads_dir: str = "",
    supabase_url: Optional[str] = None,
    supabase_key: Optional[str] = None,
    relay_mode: Optional[str] = None,
    bot_server_url: Optional[str] = None,
    message_backend: Optional[str] = None,
    default_staff_name: Optional[str] = None,
) -> None:
    """Point the service layer at its data paths and backends; unset values come from the environment."""
    global _BASE_DIR, _DB_PATH, _UPLOADS_DIR, _SUPABASE_URL, _SUPABASE_KEY
    global _RELAY_MODE, _BOT_SERVER_URL, _MESSAGE_BACKEND, _DEFAULT_STAFF_NAME, _BACKEND_CACHE

    _BASE_DIR = base_dir or _BASE_DIR
    _DB_PATH = db_path or env_str("CAREWATCH_DB_PATH", os.path.join(_BASE_DIR, "data", "carewatch.db"))
    _UPLOADS_DIR = uploads_dir or os.path.join(_BASE_DIR, "data", "uploads")
    _SUPABASE_URL = supabase_url if supabase_url is not None else env_str("SUPABASE_URL")
    _SUPABASE_KEY = supabase_key if supabase_key is not None else env_str("SUPABASE_ANON_KEY")
    _RELAY_MODE = (relay_mode if relay_mode is not None else env_str("RELAY_MODE", "auto")).strip().lower()
    _BOT_SERVER_URL = bot_server_url if bot_server_url is not None else env_str("BOT_SERVER_URL", "http://localhost:3001")
    _MESSAGE_BACKEND = message_backend if message_backend is not None else env_str("MESSAGE_BACKEND", "auto")
    _DEFAULT_STAFF_NAME = default_staff_name or env_str("DEFAULT_STAFF_NAME", "Care Staff")
    _BACKEND_CACHE = {key: None for key in _BACKEND_CACHE}


def default_staff_name() -> str:
    return _DEFAULT_STAFF_NAME


def is_live_mode() -> bool:
    from carewatch.store.factory import is_live_mode as _is_live

    return _is_live(_SUPABASE_URL, _SUPABASE_KEY)


def collage_options() -> Dict[str, Any]:
    return {
        "target_height": int_env("COLLAGE_TARGET_HEIGHT", 1000, 100, 4000),
        "quality": float_env("COLLAGE_QUALITY", 0.85, 0.1, 1.0),
        "divider_width": int_env("COLLAGE_DIVIDER_WIDTH", 8, 0, 64),
    }


def get_store():
    store = _BACKEND_CACHE.get("store")
    if store is not None:
        return store
    from carewatch.store.factory import open_store

    start = time.perf_counter()
    store = open_store(db_path=_DB_PATH, supabase_url=_SUPABASE_URL, supabase_key=_SUPABASE_KEY)
    _log_perf("init store", start, type(store).__name__)
    _BACKEND_CACHE["store"] = store
    return store


def get_composer():
    composer = _BACKEND_CACHE.get("composer")
    if composer is not None:
        return composer
    from carewatch.agents.generator import build_generator
    from carewatch.agents.message_composer import MessageComposer

    start = time.perf_counter()
    client = build_generator(
        _MESSAGE_BACKEND,
        gemini_api_key=env_str("GEMINI_API_KEY"),
        gemini_model=env_str("GEMINI_MODEL", "gemini-2.5-flash"),
        local_model=env_str("LOCAL_MESSAGE_MODEL", "google/gemma-2-2b-it"),
    )
    composer = MessageComposer(client)
    _log_perf("init MessageComposer", start, type(client).__name__ if client else "template")
    _BACKEND_CACHE["composer"] = composer
    return composer


def get_relay():
    relay = _BACKEND_CACHE.get("relay")
    if relay is not None:
        return relay
    from carewatch.relay.client import MockRelayClient, RelayClient

    mode = _RELAY_MODE or "auto"
    use_http = mode == "http" or (mode == "auto" and is_live_mode())
    if use_http:
        relay = RelayClient(_BOT_SERVER_URL, timeout=float_env("RELAY_TIMEOUT_SEC", 10.0, 1.0, 120.0))
        print(f"[Relay] Using bot server at {_BOT_SERVER_URL}")
    else:
        relay = MockRelayClient()
        print("[Relay] Using mock relay")
    _BACKEND_CACHE["relay"] = relay
    return relay


def get_image_store():
    images = _BACKEND_CACHE.get("image_store")
    if images is not None:
        return images
    from carewatch.store.image_store import ImageStore

    images = ImageStore(_UPLOADS_DIR)
    _BACKEND_CACHE["image_store"] = images
    return images


def get_dispatcher():
    dispatcher = _BACKEND_CACHE.get("dispatcher")
    if dispatcher is not None:
        return dispatcher
    from carewatch.agents.update_dispatcher import UpdateDispatcher

    dispatcher = UpdateDispatcher(
        get_store(),
        get_composer(),
        get_relay(),
        get_image_store(),
        collage_options=collage_options(),
        default_staff_name=_DEFAULT_STAFF_NAME,
    )
    _BACKEND_CACHE["dispatcher"] = dispatcher
    return dispatcher


def set_backend(name: str, value: Any) -> None:
    """Swap in a prebuilt backend (store, composer, relay, image_store)."""
    if name not in _BACKEND_CACHE:
        raise KeyError(name)
    _BACKEND_CACHE[name] = value
    _BACKEND_CACHE["dispatcher"] = None
