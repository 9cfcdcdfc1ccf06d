from __future__ import annotations

import os
import sys

_REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if _REPO_ROOT not in sys.path:
    sys.path.insert(0, _REPO_ROOT)

from carewatch.relay.server import create_relay_app
from carewatch.relay.session import WhatsAppWebSession
from carewatch.utils.env_utils import env_str, env_truthy, int_env


def main() -> None:
    import uvicorn

    profile_dir = os.path.abspath(env_str("RELAY_PROFILE_DIR", os.path.join(_REPO_ROOT, "data", "wa_profile")))
    os.makedirs(profile_dir, exist_ok=True)
    session = WhatsAppWebSession(profile_dir, headless=env_truthy("RELAY_HEADLESS", "1"))
    app = create_relay_app(session)

    port = int_env("RELAY_PORT", 3001, 1, 65535)
    print(f"[Relay] Bot server running on port {port}")
    print("[Relay] Open the admin dashboard to scan the pairing QR code.")
    uvicorn.run(app, host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
