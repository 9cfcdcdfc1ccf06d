import html
import json


def _mode_badge(ctx: dict) -> str:
    live = bool(ctx.get("live_mode"))
    label = "Live" if live else "Mock"
    return f"<span class='mode-badge {'live' if live else 'mock'}'>{label}</span>"


def _page_header(title: str, subtitle: str, ctx: dict) -> str:
    return (
        f"<div class='header-row'><div class='header-title'>{html.escape(title)}</div>{_mode_badge(ctx)}</div>"
        f"<div class='header-sub'>{html.escape(subtitle)}</div>"
    )


def _resident_cards(residents: list) -> str:
    cards = ""
    for r in residents:
        linked = "linked" if (r.get("whatsapp_group_id") or "").strip() else "unlinked"
        photo = r.get("photo_url") or ""
        avatar = f"<img src='{html.escape(photo, quote=True)}' />" if photo else "<div class='avatar-blank'></div>"
        cards += f"""
<label class='resident-card'>
  <input type='radio' name='resident_id' value='{html.escape(r.get('id', ''), quote=True)}' />
  {avatar}
  <div>
    <div class='name'>{html.escape(r.get('name', ''))}</div>
    <div class='muted'>Room {html.escape(str(r.get('room_number', '')))}</div>
  </div>
  <span class='group-dot {linked}' title='WhatsApp group {linked}'></span>
</label>
"""
    if not cards:
        cards = "<div class='empty'>No residents yet. Ask an administrator to add one.</div>"
    return cards


def _category_chips(categories: list) -> str:
    chips = ""
    for c in categories:
        chips += (
            f"<label class='chip'><input type='radio' name='category' value='{html.escape(c['value'], quote=True)}'"
            f" data-max='{int(c['max_images'])}' onchange='cwCategoryChanged(this)' />"
            f"{html.escape(c['label'])}</label>"
        )
    return chips


def _recent_rows(logs: list) -> str:
    rows = ""
    for log in logs:
        status = str(log.get("status") or "PENDING")
        rows += f"""
<div class='log-row'>
  <div class='mono'>{html.escape(str(log.get('timestamp', ''))[:16].replace('T', ' '))}</div>
  <div>{html.escape(log.get('resident_name', ''))}</div>
  <div>{html.escape(log.get('category', ''))}</div>
  <div><span class='status-badge status-{status.lower()}'>{html.escape(status)}</span></div>
</div>
"""
    return rows or "<div class='log-row empty'>No updates sent yet.</div>"


def render_staff_page(state: dict, ctx: dict) -> str:
    residents = ctx.get("residents", [])
    categories = ctx.get("categories", [])
    staff_name = state.get("staff_name") or ctx.get("default_staff_name", "Care Staff")
    limits_json = json.dumps({c["value"]: c["max_images"] for c in categories}, ensure_ascii=False)
    return f"""
<div class="dash-page">
  <div class="sidebar">
    <div class="brand"><div class="brand-text">CareWatch <span class="accent">Family Connect</span></div></div>
    <div class="profile"><div class="name">{html.escape(staff_name)}</div><div class="role">Care Staff</div></div>
    <a class="logout" href="/logout">Log out</a>
  </div>
  <div class="main">
    {_page_header('Log an Update', 'Pick a resident, choose what happened and add a photo.', ctx)}
    <form id="cw_update_form" class="card update-form" onsubmit="return cwSubmitUpdate(this);">
      <div class="card-title">1. Resident</div>
      <div class="resident-grid">{_resident_cards(residents)}</div>
      <div class="card-title">2. Activity</div>
      <div class="chip-row">{_category_chips(categories)}</div>
      <div class="card-title">3. Notes and photos</div>
      <textarea name="notes" rows="3" placeholder="e.g. Ate all of the porridge, in good spirits"></textarea>
      <input type="hidden" name="staff_name" value="{html.escape(staff_name, quote=True)}" />
      <input id="cw_images" type="file" name="images" accept="image/*" capture="environment" multiple />
      <div id="cw_image_hint" class="muted">Choose an activity to see how many photos it takes.</div>
      <button class="primary-btn" type="submit">Send to family</button>
      <div id="cw_result" class="result-box" style="display:none;"></div>
    </form>
    <div class="card">
      <div class="card-title">Recent updates</div>
      {_recent_rows(ctx.get('recent_logs', []))}
    </div>
  </div>
</div>
<script>
var CW_LIMITS = {limits_json};
function cwCategoryChanged(el) {{
  var max = CW_LIMITS[el.value] || 1;
  document.getElementById('cw_image_hint').textContent = 'Up to ' + max + ' photo' + (max > 1 ? 's' : '') + ' for ' + el.value + '.';
}}
function cwSubmitUpdate(form) {{
  var data = new FormData(form);
  var cat = data.get('category');
  var files = document.getElementById('cw_images').files;
  if (!data.get('resident_id') || !cat) {{ cwShowToast('Choose a resident and an activity.'); return false; }}
  if (files.length > (CW_LIMITS[cat] || 1)) {{ cwShowToast('Too many photos for ' + cat + '.'); return false; }}
  data.delete('images');
  for (var i = 0; i < files.length; i++) data.append('images', files[i]);
  var box = document.getElementById('cw_result');
  box.style.display = 'block';
  box.textContent = 'Sending...';
  fetch('/api/updates', {{method: 'POST', body: data}})
    .then(function(r) {{ return r.json().then(function(j) {{ return [r.ok, j]; }}); }})
    .then(function(res) {{
      if (!res[0]) {{ box.textContent = res[1].message || 'Could not send the update.'; return; }}
      box.textContent = '[' + res[1].status + '] ' + (res[1].ai_generated_message || '');
      form.reset();
      setTimeout(function() {{ location.reload(); }}, 2500);
    }})
    .catch(function() {{ box.textContent = 'Network error, please try again.'; }});
  return false;
}}
</script>
"""
