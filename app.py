import html
import os
import socket
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, File, Form, Request, Response, UploadFile
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles

from carewatch.relay.client import RelayUnavailable, bot_snapshot
from carewatch.store.errors import StoreError
from carewatch.store.schemas import CATEGORY_RULES, clean_resident_fields
from carewatch.store.seed_demo import seed_demo
from carewatch.tools.export_bundle import build_export_archive, export_archive_name, export_filename
from carewatch.tools.gallery import dashboard_stats, filter_gallery, find_gallery_item, flatten_gallery, search_logs
from carewatch.ui import admin_pages
from carewatch.ui import services
from carewatch.ui import staff_pages
from carewatch.utils.env_utils import env_str, env_truthy
from carewatch.utils.image_utils import sniff_image_type

# Define absolute paths for the database and the uploads directory served under /uploads
BASE_DIR = os.path.dirname(os.path.abspath(__file__))
DB_PATH = os.path.abspath(env_str("CAREWATCH_DB_PATH", os.path.join(BASE_DIR, "data", "carewatch.db")))
UPLOADS_DIR = os.path.abspath(os.path.join(BASE_DIR, "data", "uploads"))
SESSION_COOKIE = "cw_session"
ROLES = {"staff": "Care Staff", "admin": "Administrator"}


# Global CSS stylesheet for the login screen and both dashboards
CSS = """
:root {
  --teal: #2F99A8;
  --light-teal: #E3F5F6;
  --lime: #CFE67E;
  --gray: #DDE4EE;
  --ink: #1D2733;
  --muted: #6B7785;
  --red: #D9534F;
  --amber: #E6A23C;
  --green: #3CA55C;
}
* { box-sizing: border-box; }
html, body { margin: 0; height: 100%; font-family: "Segoe UI", "Helvetica Neue", Arial, sans-serif; color: var(--ink); background: #F6F8FB; }
a { color: var(--teal); }
.login-page { min-height: 100vh; display: flex; align-items: center; justify-content: center; background: linear-gradient(135deg, var(--light-teal), #FFFFFF); }
.login-panel { background: #FFFFFF; border-radius: 16px; padding: 40px; width: 420px; box-shadow: 0 10px 30px rgba(0,0,0,0.08); text-align: center; }
.login-title { font-size: 26px; font-weight: 700; margin-bottom: 6px; }
.login-sub { color: var(--muted); margin-bottom: 28px; }
.login-btn { display: block; margin: 12px 0; padding: 14px; border-radius: 10px; background: var(--teal); color: #FFFFFF; text-decoration: none; font-weight: 600; }
.login-btn.secondary { background: var(--lime); color: var(--ink); }
.dash-page { display: flex; min-height: 100vh; }
.sidebar { width: 240px; background: #FFFFFF; border-right: 1px solid var(--gray); padding: 24px 16px; display: flex; flex-direction: column; gap: 18px; }
.brand-text { font-size: 20px; font-weight: 700; }
.accent { color: var(--teal); }
.nav-item { padding: 10px 12px; border-radius: 8px; cursor: pointer; }
.nav-item.active, .nav-item:hover { background: var(--light-teal); color: var(--teal); }
.profile .role, .muted { color: var(--muted); font-size: 13px; }
.logout { margin-top: auto; }
.main { flex: 1; padding: 28px 36px; }
.header-row { display: flex; align-items: center; gap: 12px; }
.header-title { font-size: 24px; font-weight: 700; }
.header-sub { color: var(--muted); margin: 4px 0 20px; }
.mode-badge { font-size: 12px; padding: 3px 10px; border-radius: 999px; font-weight: 600; }
.mode-badge.live { background: #E4F6EA; color: var(--green); }
.mode-badge.mock { background: #FFF4E0; color: var(--amber); }
.card { background: #FFFFFF; border-radius: 12px; padding: 18px 20px; margin-bottom: 18px; box-shadow: 0 2px 8px rgba(0,0,0,0.04); }
.card-title { font-weight: 600; margin: 8px 0 12px; }
.resident-grid { display: grid; grid-template-columns: repeat(auto-fill, minmax(220px, 1fr)); gap: 10px; }
.resident-card { display: flex; align-items: center; gap: 10px; border: 1px solid var(--gray); border-radius: 10px; padding: 10px; cursor: pointer; }
.resident-card img, .avatar-blank { width: 40px; height: 40px; border-radius: 50%; object-fit: cover; background: var(--gray); }
.group-dot { width: 10px; height: 10px; border-radius: 50%; margin-left: auto; }
.group-dot.linked { background: var(--green); }
.group-dot.unlinked { background: var(--gray); }
.chip-row, .toolbar { display: flex; flex-wrap: wrap; gap: 8px; margin-bottom: 12px; }
.chip { border: 1px solid var(--gray); border-radius: 999px; padding: 6px 14px; cursor: pointer; }
textarea, input[type=text], input:not([type]), select { width: 100%; padding: 10px; border: 1px solid var(--gray); border-radius: 8px; margin-bottom: 10px; font: inherit; }
.toolbar input, .toolbar select { width: auto; flex: 1; }
.primary-btn { background: var(--teal); color: #FFFFFF; border: 0; border-radius: 8px; padding: 10px 18px; font-weight: 600; cursor: pointer; }
.primary-btn:disabled { opacity: 0.5; cursor: default; }
.pill-btn { border: 1px solid var(--teal); background: #FFFFFF; color: var(--teal); border-radius: 999px; padding: 4px 12px; cursor: pointer; }
.pill-btn.danger { border-color: var(--red); color: var(--red); }
.result-box { margin-top: 12px; padding: 12px; background: var(--light-teal); border-radius: 8px; }
.log-row, .resident-row, .resident-head { display: grid; grid-template-columns: 140px 1fr 1fr 1fr 2fr 90px; gap: 10px; padding: 8px 0; border-bottom: 1px solid var(--gray); align-items: center; }
.resident-row, .resident-head { grid-template-columns: 1fr 80px 1fr 2fr 150px; }
.resident-head { font-weight: 600; }
.empty { color: var(--muted); padding: 12px 0; }
.mono { font-family: Consolas, monospace; font-size: 13px; }
.status-badge { font-size: 12px; padding: 3px 8px; border-radius: 6px; background: var(--gray); }
.status-sent, .bot-connected { background: #E4F6EA; color: var(--green); }
.status-failed, .bot-offline { background: #FDECEA; color: var(--red); }
.status-pending, .bot-disconnected { background: #FFF4E0; color: var(--amber); }
.stat-grid { display: grid; grid-template-columns: repeat(3, 1fr); gap: 16px; }
.stat-value { font-size: 34px; font-weight: 700; color: var(--teal); }
.gallery-grid { display: grid; grid-template-columns: repeat(auto-fill, minmax(200px, 1fr)); gap: 14px; }
.gallery-tile { position: relative; background: #FFFFFF; border-radius: 10px; overflow: hidden; box-shadow: 0 2px 8px rgba(0,0,0,0.05); }
.gallery-tile img { width: 100%; height: 160px; object-fit: cover; display: block; }
.select-box { position: absolute; top: 8px; left: 8px; background: #FFFFFF; border-radius: 4px; padding: 2px; }
.tile-meta { padding: 8px 10px; }
.bot-card img { width: 240px; margin: 14px 0; }
.error-text { color: var(--red); font-size: 13px; }
.mini-toast { position: fixed; bottom: 24px; left: 50%; transform: translateX(-50%); background: var(--ink); color: #FFFFFF; padding: 10px 18px; border-radius: 8px; opacity: 0; transition: opacity 0.2s; }
.mini-toast.show { opacity: 1; }
"""

services.configure(base_dir=BASE_DIR, db_path=DB_PATH, uploads_dir=UPLOADS_DIR)


_SESSIONS: Dict[str, dict] = {}
_SESSIONS_LOCK = threading.Lock()


def default_state() -> dict:
    return {"role": None, "current_page": None, "staff_name": ""}


def _get_session_id(request: Request, response: Optional[Response] = None) -> str:
    sid = request.cookies.get(SESSION_COOKIE)
    with _SESSIONS_LOCK:
        if not sid or sid not in _SESSIONS:
            sid = uuid.uuid4().hex
            _SESSIONS[sid] = default_state()
    if response is not None:
        response.set_cookie(SESSION_COOKIE, sid, httponly=True, samesite="lax")
    return sid


def _get_state(sid: str) -> dict:
    with _SESSIONS_LOCK:
        return dict(_SESSIONS.get(sid, default_state()))


def _set_state(sid: str, state: dict) -> None:
    with _SESSIONS_LOCK:
        _SESSIONS[sid] = state


def _current_role(request: Request) -> Optional[str]:
    sid = request.cookies.get(SESSION_COOKIE)
    if not sid:
        return None
    with _SESSIONS_LOCK:
        return (_SESSIONS.get(sid) or {}).get("role")


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse({"ok": False, "message": message}, status_code=status_code)


def _require_role(request: Request, *roles: str) -> Optional[JSONResponse]:
    role = _current_role(request)
    if role is None:
        return _error(401, "Please choose a role first.")
    if roles and role not in roles:
        return _error(403, "This action is not available for your role.")
    return None


def _wrap_page(body_html: str) -> str:
    return f"""<!doctype html>
<html>
<head>
  <meta charset="utf-8" />
  <meta name="viewport" content="width=device-width, initial-scale=1" />
  <title>CareWatch Family Connect</title>
  <style>{CSS}</style>
</head>
<body>
{body_html}
<script>
function cwNav(page) {{
  var navs = document.querySelectorAll('.nav-item[data-page]');
  navs.forEach(function(n) {{
    if (n.getAttribute('data-page') === page) n.classList.add('active');
    else n.classList.remove('active');
  }});
  var sections = document.querySelectorAll('.page-section[data-page]');
  sections.forEach(function(s) {{
    s.style.display = (s.getAttribute('data-page') === page) ? 'block' : 'none';
  }});
  if (history.replaceState) history.replaceState(null, '', location.pathname + location.search + '#' + page);
}}
function cwShowToast(msg) {{
  if (!msg) return;
  var el = document.getElementById('cw_toast');
  if (!el) {{
    el = document.createElement('div');
    el.id = 'cw_toast';
    el.className = 'mini-toast';
    document.body.appendChild(el);
  }}
  el.textContent = msg;
  el.classList.add('show');
  clearTimeout(window._cwToastTimer);
  window._cwToastTimer = setTimeout(function() {{
    if (el) el.classList.remove('show');
  }}, 2200);
}}
</script>
</body>
</html>
"""


def _render_login_html() -> str:
    mode = "Live mode" if services.is_live_mode() else "Mock mode (local demo data)"
    login_html = f"""
<div class="login-page">
  <div class="login-panel">
    <div class="login-title">CareWatch <span class="accent">Family Connect</span></div>
    <div class="login-sub">Daily updates from the care home to the family WhatsApp group.</div>
    <a class="login-btn" href="/login/staff">I am Care Staff</a>
    <a class="login-btn secondary" href="/login/admin">I am an Administrator</a>
    <div class="muted">{html.escape(mode)}</div>
  </div>
</div>
"""
    return _wrap_page(login_html)


def _category_rows() -> List[Dict[str, Any]]:
    return [
        {"value": cat.value, "label": rule["label"], "max_images": rule["max_images"], "collage": rule["collage"]}
        for cat, rule in CATEGORY_RULES.items()
    ]


def _build_staff_ctx() -> dict:
    store = services.get_store()
    return {
        "live_mode": services.is_live_mode(),
        "residents": [r.to_dict() for r in store.list_residents()],
        "categories": _category_rows(),
        "recent_logs": [log.to_dict() for log in store.list_logs(limit=8)],
        "default_staff_name": services.default_staff_name(),
    }


def _build_admin_ctx(query: str = "") -> dict:
    store = services.get_store()
    residents = store.list_residents()
    logs = store.list_logs()
    return {
        "live_mode": services.is_live_mode(),
        "residents": [r.to_dict() for r in residents],
        "logs": [log.to_dict() for log in search_logs(logs, query)],
        "query": query,
        "stats": dashboard_stats(residents, logs),
        "gallery": [item.to_dict() for item in flatten_gallery(logs)],
        "categories": _category_rows(),
    }


def _render_app_html(state: dict, query: str = "") -> str:
    role = state.get("role")
    if role == "staff":
        body = f"<div id='app_root'>{staff_pages.render_staff_page(state, _build_staff_ctx())}</div>"
        return _wrap_page(body)
    if role == "admin":
        body = f"<div id='app_root'>{admin_pages.render_admin_page(state, _build_admin_ctx(query))}</div>"
        return _wrap_page(body)
    return _render_login_html()


app = FastAPI()
os.makedirs(UPLOADS_DIR, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=UPLOADS_DIR), name="uploads")


@app.on_event("startup")
def on_startup():
    if services.is_live_mode() or not env_truthy("CAREWATCH_SEED_DEMO", "1"):
        return
    added = seed_demo(services.get_store())
    if added:
        print(f"[startup] Seeded {len(added)} demo residents")


@app.get("/", response_class=HTMLResponse)
def index(request: Request, q: str = ""):
    sid = _get_session_id(request)
    state = _get_state(sid)
    try:
        resp = HTMLResponse(_render_app_html(state, q))
    except StoreError as exc:
        print(f"[Store] Page render failed: {exc}")
        resp = HTMLResponse(_wrap_page(f"<div class='main'><div class='card error-text'>{html.escape(str(exc))}</div></div>"), status_code=500)
    resp.set_cookie(SESSION_COOKIE, sid, httponly=True, samesite="lax")
    return resp


@app.get("/login/{role}")
def login(request: Request, role: str):
    resp = RedirectResponse("/", status_code=303)
    sid = _get_session_id(request, resp)
    role = (role or "").strip().lower()
    if role in ROLES:
        state = default_state()
        state["role"] = role
        state["staff_name"] = services.default_staff_name() if role == "staff" else ROLES[role]
        _set_state(sid, state)
        print(f"[auth] Session {sid[:8]} signed in as {ROLES[role]}")
    return resp


@app.get("/logout")
def logout(request: Request):
    resp = RedirectResponse("/", status_code=303)
    sid = request.cookies.get(SESSION_COOKIE)
    if sid:
        with _SESSIONS_LOCK:
            _SESSIONS.pop(sid, None)
    resp.delete_cookie(SESSION_COOKIE)
    return resp


@app.get("/api/categories")
def api_categories():
    return _category_rows()


@app.get("/api/residents")
def api_list_residents(request: Request):
    denied = _require_role(request)
    if denied:
        return denied
    try:
        return [r.to_dict() for r in services.get_store().list_residents()]
    except StoreError as exc:
        return _error(500, str(exc))


@app.post("/api/residents")
def api_add_resident(request: Request, payload: Dict[str, Any]):
    denied = _require_role(request, "admin")
    if denied:
        return denied
    try:
        fields = clean_resident_fields(payload, require=True)
        resident = services.get_store().add_resident(fields)
    except ValueError as exc:
        return _error(400, str(exc))
    except StoreError as exc:
        return _error(500, str(exc))
    print(f"[Store] Added resident {resident.name} ({resident.id})")
    return resident.to_dict()


@app.put("/api/residents/{resident_id}")
def api_update_resident(request: Request, resident_id: str, payload: Dict[str, Any]):
    denied = _require_role(request, "admin")
    if denied:
        return denied
    fields = clean_resident_fields(payload)
    missing = [k for k in ("name", "room_number", "whatsapp_group_id") if k in fields and not fields[k]]
    if missing:
        return _error(400, "Please fill in all required fields: " + ", ".join(missing))
    try:
        resident = services.get_store().update_resident(resident_id, fields)
    except StoreError as exc:
        return _error(500, str(exc))
    if resident is None:
        return _error(404, f"Resident not found: {resident_id}")
    return resident.to_dict()


@app.delete("/api/residents/{resident_id}")
def api_delete_resident(request: Request, resident_id: str):
    denied = _require_role(request, "admin")
    if denied:
        return denied
    store = services.get_store()
    try:
        if store.get_resident(resident_id) is None:
            return _error(404, f"Resident not found: {resident_id}")
        store.delete_resident(resident_id)
    except StoreError as exc:
        return _error(500, str(exc))
    print(f"[Store] Deleted resident {resident_id}")
    return {"ok": True}


@app.get("/api/logs")
def api_logs(request: Request, q: str = ""):
    denied = _require_role(request)
    if denied:
        return denied
    try:
        logs = services.get_store().list_logs()
    except StoreError as exc:
        return _error(500, str(exc))
    return [log.to_dict() for log in search_logs(logs, q)]


@app.get("/api/stats")
def api_stats(request: Request):
    denied = _require_role(request, "admin")
    if denied:
        return denied
    store = services.get_store()
    try:
        return dashboard_stats(store.list_residents(), store.list_logs())
    except StoreError as exc:
        return _error(500, str(exc))


@app.post("/api/updates")
async def api_submit_update(
    request: Request,
    resident_id: str = Form(""),
    category: str = Form(""),
    notes: str = Form(""),
    staff_name: str = Form(""),
    images: Optional[List[UploadFile]] = File(None),
):
    denied = _require_role(request)
    if denied:
        return denied
    payloads = []
    for upload in images or []:
        content = await upload.read()
        if content:
            payloads.append(content)
    try:
        log = services.get_dispatcher().submit(resident_id, category, notes, payloads, staff_name)
    except LookupError as exc:
        return _error(404, str(exc))
    except ValueError as exc:
        return _error(400, str(exc))
    except StoreError as exc:
        return _error(500, str(exc))
    return log.to_dict()


def _gallery_items():
    return flatten_gallery(services.get_store().list_logs())


@app.get("/api/gallery")
def api_gallery(request: Request, resident: str = "all", category: str = "all"):
    denied = _require_role(request, "admin")
    if denied:
        return denied
    try:
        items = _gallery_items()
    except StoreError as exc:
        return _error(500, str(exc))
    return [item.to_dict() for item in filter_gallery(items, resident, category)]


@app.get("/api/gallery/{image_id}/download")
def api_gallery_download(request: Request, image_id: str):
    denied = _require_role(request, "admin")
    if denied:
        return denied
    try:
        item = find_gallery_item(_gallery_items(), image_id)
    except StoreError as exc:
        return _error(500, str(exc))
    if item is None:
        return _error(404, f"Image not found: {image_id}")
    try:
        raw = services.get_image_store().load(item.url)
    except (OSError, ValueError) as exc:
        print(f"[Export] Could not load {item.url}: {exc}")
        return _error(404, "Image file is no longer available.")
    filename = export_filename(item.resident_name, item.category, item.timestamp)
    return Response(
        raw,
        media_type=sniff_image_type(raw)[1],
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.post("/api/gallery/export")
def api_gallery_export(request: Request, payload: Dict[str, Any]):
    denied = _require_role(request, "admin")
    if denied:
        return denied
    ids = [str(i) for i in (payload.get("ids") or []) if str(i).strip()]
    if not ids:
        return _error(400, "Select at least one image to export.")
    try:
        items = _gallery_items()
    except StoreError as exc:
        return _error(500, str(exc))
    wanted = set(ids)
    selected = [item for item in items if item.id in wanted]
    if not selected:
        return _error(404, "None of the selected images were found.")
    data = build_export_archive(selected, services.get_image_store().load)
    name = export_archive_name(datetime.now(timezone.utc).date())
    return Response(
        data,
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="{name}"'},
    )


@app.get("/api/bot/status")
def api_bot_status(request: Request):
    denied = _require_role(request, "admin")
    if denied:
        return denied
    return bot_snapshot(services.get_relay())


@app.get("/api/bot/groups")
def api_bot_groups(request: Request):
    denied = _require_role(request, "admin")
    if denied:
        return denied
    try:
        groups = services.get_relay().list_groups()
    except RelayUnavailable as exc:
        return _error(503, str(exc))
    return [g.to_dict() for g in groups]


if __name__ == "__main__":
    import uvicorn

    def _detect_lan_ip() -> str:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.connect(("8.8.8.8", 80))
            return str(sock.getsockname()[0] or "").strip()
        except OSError:
            return ""
        finally:
            sock.close()

    host = env_str("HOST", "0.0.0.0") or "0.0.0.0"
    port = int(env_str("PORT", "8000") or "8000")
    local_url = f"http://localhost:{port}/"
    lan_ip = _detect_lan_ip()
    lan_url = f"http://{lan_ip}:{port}/" if lan_ip else ""

    print(f"[startup] Local URL:  {local_url}")
    if lan_url and lan_url != local_url:
        print(f"[startup] Local LAN:  {lan_url}")
    print(f"[startup] Mode: {'live (Supabase + bot server)' if services.is_live_mode() else 'mock (SQLite + mock relay)'}")
    uvicorn.run(app, host=host, port=port)
