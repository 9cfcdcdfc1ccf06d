import html
import json

from carewatch.ui.staff_pages import _page_header


def _nav_item(label: str, page: str, current: str) -> str:
    active = "active" if page == current else ""
    return (
        f"<div class='nav-item {active}' data-page='{page}' onclick=\"cwNav('{page}'); return false;\">"
        f"{html.escape(label)}</div>"
    )


def _render_sidebar(current_page: str) -> str:
    nav_items = [
        ("Overview", "overview"),
        ("Residents", "residents"),
        ("Delivery Logs", "logs"),
        ("Photo Gallery", "gallery"),
        ("WhatsApp Bot", "bot"),
    ]
    nav_html = "".join(_nav_item(label, page, current_page) for label, page in nav_items)
    return f"""
  <div class="sidebar">
    <div class="brand"><div class="brand-text">CareWatch <span class="accent">Admin</span></div></div>
    <div class="nav">{nav_html}</div>
    <a class="logout" href="/logout">Log out</a>
  </div>
"""


def _status_badge(status: str) -> str:
    value = str(status or "PENDING")
    return f"<span class='status-badge status-{value.lower()}'>{html.escape(value)}</span>"


def _render_overview(ctx: dict) -> str:
    stats = ctx.get("stats", {})
    tiles = [
        ("Total Residents", stats.get("total_residents", 0)),
        ("Linked WhatsApp Groups", stats.get("linked_groups", 0)),
        ("Updates Today", stats.get("updates_today", 0)),
    ]
    tiles_html = "".join(
        f"<div class='card stat-tile'><div class='stat-value'>{int(v)}</div><div class='muted'>{html.escape(k)}</div></div>"
        for k, v in tiles
    )
    subtitle = "Residents, family groups and today's activity at a glance."
    return f"""
<div>
  {_page_header('Overview', subtitle, ctx)}
  <div class='stat-grid'>{tiles_html}</div>
</div>
"""


def _render_residents(ctx: dict) -> str:
    rows = ""
    for r in ctx.get("residents", []):
        rid = html.escape(r.get("id", ""), quote=True)
        rows += f"""
<div class='resident-row' data-id='{rid}'>
  <div>{html.escape(r.get('name', ''))}</div>
  <div>{html.escape(str(r.get('room_number', '')))}</div>
  <div class='mono'>{html.escape(r.get('whatsapp_group_id', '') or '--')}</div>
  <div>{html.escape(r.get('notes') or '')}</div>
  <div class='row-actions'>
    <button class='pill-btn' onclick="cwEditResident('{rid}'); return false;">Edit</button>
    <button class='pill-btn danger' onclick="cwDeleteResident('{rid}'); return false;">Delete</button>
  </div>
</div>
"""
    if not rows:
        rows = "<div class='resident-row empty'>No residents yet.</div>"
    return f"""
<div>
  {_page_header('Residents', 'Add residents and link each one to a family WhatsApp group.', ctx)}
  <div class='card'>
    <div class='resident-head'><div>Name</div><div>Room</div><div>Group</div><div>Notes</div><div>Action</div></div>
    {rows}
  </div>
  <form id='cw_resident_form' class='card' onsubmit='return cwSaveResident(this);'>
    <div class='card-title' id='cw_resident_form_title'>Add Resident</div>
    <input type='hidden' name='id' />
    <input name='name' placeholder='Full name' />
    <input name='room_number' placeholder='Room number' />
    <div class='group-picker'>
      <select name='whatsapp_group_id' id='cw_group_select'><option value=''>Select a WhatsApp group</option></select>
      <button class='pill-btn' onclick='cwLoadGroups(); return false;'>Load groups</button>
    </div>
    <div id='cw_group_error' class='error-text'></div>
    <input name='photo_url' placeholder='Photo URL (optional)' />
    <textarea name='notes' rows='2' placeholder='Notes (optional)'></textarea>
    <button class='primary-btn' type='submit'>Save</button>
  </form>
</div>
"""


def _render_logs(ctx: dict) -> str:
    rows = ""
    for log in ctx.get("logs", []):
        rows += f"""
<div class='log-row'>
  <div class='mono'>{html.escape(str(log.get('timestamp', ''))[:16].replace('T', ' '))}</div>
  <div>{html.escape(log.get('resident_name', ''))}</div>
  <div>{html.escape(log.get('category', ''))}</div>
  <div>{html.escape(log.get('staff_name', ''))}</div>
  <div class='message'>{html.escape(log.get('ai_generated_message') or log.get('notes') or '')}</div>
  <div>{_status_badge(log.get('status'))}</div>
</div>
"""
    if not rows:
        rows = "<div class='log-row empty'>No matching updates.</div>"
    query = html.escape(ctx.get("query", ""), quote=True)
    return f"""
<div>
  {_page_header('Delivery Logs', 'Every update sent to families, newest first.', ctx)}
  <div class='toolbar'>
    <input type='text' placeholder='Search resident, staff, category or message' value='{query}'
      onkeydown="if(event.key==='Enter'){{location.href='/?q='+encodeURIComponent(this.value)+'#logs';}}" />
  </div>
  <div class='card'>{rows}</div>
</div>
"""


def _options(values: list, selected: str) -> str:
    out = "<option value='all'>All</option>"
    for v in values:
        sel = " selected" if v == selected else ""
        out += f"<option value='{html.escape(v, quote=True)}'{sel}>{html.escape(v)}</option>"
    return out


def _render_gallery(ctx: dict) -> str:
    items = ctx.get("gallery", [])
    tiles = ""
    for item in items:
        iid = html.escape(item["id"], quote=True)
        tiles += f"""
<div class='gallery-tile' data-id='{iid}' data-resident='{html.escape(item['resident_name'], quote=True)}'
  data-category='{html.escape(item['category'], quote=True)}'>
  <label class='select-box'><input type='checkbox' value='{iid}' onchange='cwSelectionChanged()' /></label>
  <img src='{html.escape(item['url'], quote=True)}' loading='lazy' />
  <div class='tile-meta'>
    <div class='name'>{html.escape(item['resident_name'])}</div>
    <div class='muted'>{html.escape(item['category'])} &middot; {html.escape(str(item['timestamp'])[:10])}</div>
    <a class='muted' href='/api/gallery/{iid}/download'>Download</a>
  </div>
</div>
"""
    if not tiles:
        tiles = "<div class='empty'>No photos yet.</div>"
    residents = sorted({i["resident_name"] for i in items})
    categories = [c["value"] for c in ctx.get("categories", [])]
    return f"""
<div>
  {_page_header('Photo Gallery', 'Browse and export the photos shared with families.', ctx)}
  <div class='toolbar'>
    <select id='cw_filter_resident' onchange='cwFilterGallery()'>{_options(residents, 'all')}</select>
    <select id='cw_filter_category' onchange='cwFilterGallery()'>{_options(categories, 'all')}</select>
    <button class='pill-btn' onclick='cwSelectAllVisible(); return false;'>Select all</button>
    <button class='primary-btn' id='cw_export_btn' onclick='cwExportSelected(); return false;' disabled>Download selected (0)</button>
  </div>
  <div class='gallery-grid'>{tiles}</div>
</div>
"""


def _render_bot(ctx: dict) -> str:
    return f"""
<div>
  {_page_header('WhatsApp Bot', 'Pair the care home account and check the connection.', ctx)}
  <div class='card bot-card'>
    <div>Status: <span id='cw_bot_status' class='status-badge'>checking...</span></div>
    <div id='cw_bot_qr_wrap' style='display:none;'>
      <img id='cw_bot_qr' alt='WhatsApp pairing code' />
      <div class='muted'>Open WhatsApp on the care home phone, go to Linked Devices and scan this code.</div>
    </div>
    <div id='cw_bot_offline' class='error-text' style='display:none;'>
      The bot server is not reachable. Start it with <code>python scripts/run_relay.py</code>.
    </div>
  </div>
</div>
"""


_ADMIN_JS = """
<script>
var CW_RESIDENTS = __RESIDENTS__;
function cwJson(method, url, body) {
  return fetch(url, {method: method, headers: {'Content-Type': 'application/json'}, body: body ? JSON.stringify(body) : undefined})
    .then(function(r) { return r.json().then(function(j) { if (!r.ok) throw new Error(j.message || j.detail || 'Request failed'); return j; }); });
}
function cwLoadGroups() {
  var err = document.getElementById('cw_group_error');
  err.textContent = '';
  cwJson('GET', '/api/bot/groups').then(function(groups) {
    var sel = document.getElementById('cw_group_select');
    var current = sel.value;
    sel.innerHTML = "<option value=''>Select a WhatsApp group</option>";
    groups.forEach(function(g) {
      var o = document.createElement('option');
      o.value = g.id; o.textContent = g.name;
      if (g.id === current) o.selected = true;
      sel.appendChild(o);
    });
  }).catch(function(e) { err.textContent = e.message; });
}
function cwEditResident(id) {
  var r = CW_RESIDENTS.filter(function(x) { return x.id === id; })[0];
  if (!r) return;
  var f = document.getElementById('cw_resident_form');
  ['id', 'name', 'room_number', 'photo_url', 'notes'].forEach(function(k) { f.elements[k].value = r[k] || ''; });
  var sel = document.getElementById('cw_group_select');
  if (r.whatsapp_group_id && !Array.prototype.some.call(sel.options, function(o) { return o.value === r.whatsapp_group_id; })) {
    var o = document.createElement('option'); o.value = r.whatsapp_group_id; o.textContent = r.whatsapp_group_id; sel.appendChild(o);
  }
  sel.value = r.whatsapp_group_id || '';
  document.getElementById('cw_resident_form_title').textContent = 'Edit ' + r.name;
}
function cwSaveResident(form) {
  var body = {};
  ['name', 'room_number', 'whatsapp_group_id', 'photo_url', 'notes'].forEach(function(k) { body[k] = form.elements[k].value; });
  var id = form.elements['id'].value;
  cwJson(id ? 'PUT' : 'POST', id ? '/api/residents/' + encodeURIComponent(id) : '/api/residents', body)
    .then(function() { location.hash = 'residents'; location.reload(); })
    .catch(function(e) { cwShowToast(e.message); });
  return false;
}
function cwDeleteResident(id) {
  if (!confirm('Delete this resident and all of their updates?')) return;
  cwJson('DELETE', '/api/residents/' + encodeURIComponent(id))
    .then(function() { location.hash = 'residents'; location.reload(); })
    .catch(function(e) { cwShowToast(e.message); });
}
function cwFilterGallery() {
  var res = document.getElementById('cw_filter_resident').value;
  var cat = document.getElementById('cw_filter_category').value;
  document.querySelectorAll('.gallery-tile').forEach(function(t) {
    var show = (res === 'all' || t.dataset.resident === res) && (cat === 'all' || t.dataset.category === cat);
    t.style.display = show ? '' : 'none';
  });
}
function cwSelectedIds() {
  return Array.prototype.map.call(document.querySelectorAll('.gallery-tile input:checked'), function(c) { return c.value; });
}
function cwSelectionChanged() {
  var n = cwSelectedIds().length;
  var btn = document.getElementById('cw_export_btn');
  btn.disabled = n === 0;
  btn.textContent = 'Download selected (' + n + ')';
}
function cwSelectAllVisible() {
  document.querySelectorAll('.gallery-tile').forEach(function(t) {
    if (t.style.display !== 'none') t.querySelector('input').checked = true;
  });
  cwSelectionChanged();
}
function cwExportSelected() {
  var ids = cwSelectedIds();
  if (!ids.length) return;
  fetch('/api/gallery/export', {method: 'POST', headers: {'Content-Type': 'application/json'}, body: JSON.stringify({ids: ids})})
    .then(function(r) {
      if (!r.ok) throw new Error('Export failed');
      var cd = r.headers.get('Content-Disposition') || '';
      var m = cd.match(/filename="?([^"]+)"?/);
      return r.blob().then(function(b) { return [b, m ? m[1] : 'CareWatch_Memories.zip']; });
    })
    .then(function(res) {
      var a = document.createElement('a');
      a.href = URL.createObjectURL(res[0]); a.download = res[1];
      document.body.appendChild(a); a.click(); a.remove();
    })
    .catch(function(e) { cwShowToast(e.message); });
}
function cwPollBot() {
  cwJson('GET', '/api/bot/status').then(function(s) {
    var badge = document.getElementById('cw_bot_status');
    badge.textContent = s.status;
    badge.className = 'status-badge bot-' + s.status;
    document.getElementById('cw_bot_offline').style.display = s.status === 'offline' ? 'block' : 'none';
    var wrap = document.getElementById('cw_bot_qr_wrap');
    if (s.status === 'disconnected' && s.qr) {
      document.getElementById('cw_bot_qr').src = s.qr;
      wrap.style.display = 'block';
    } else {
      wrap.style.display = 'none';
    }
  }).catch(function() {});
}
cwPollBot();
setInterval(cwPollBot, 3000);
if (location.hash) cwNav(location.hash.slice(1));
</script>
"""


def render_admin_page(state: dict, ctx: dict) -> str:
    current_page = state.get("current_page") or "overview"
    sections = [
        ("overview", _render_overview(ctx)),
        ("residents", _render_residents(ctx)),
        ("logs", _render_logs(ctx)),
        ("gallery", _render_gallery(ctx)),
        ("bot", _render_bot(ctx)),
    ]
    main_sections = ""
    for page, content in sections:
        style = "display:block;" if page == current_page else "display:none;"
        main_sections += f"<div class='page-section' data-page='{page}' style='{style}'>{content}</div>"
    residents_json = json.dumps(ctx.get("residents", []), ensure_ascii=False).replace("</", "<\\/")
    return f"""
<div class="dash-page">
{_render_sidebar(current_page)}
  <div class="main">
    {main_sections}
  </div>
</div>
""" + _ADMIN_JS.replace("__RESIDENTS__", residents_json)
