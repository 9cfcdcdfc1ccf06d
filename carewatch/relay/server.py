from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from carewatch.relay.session import RelaySession


def create_relay_app(session: RelaySession) -> FastAPI:
    """HTTP face of the relay: status and pairing code, group listing, text delivery."""
    app = FastAPI(title="CareWatch relay")
    app.state.session = session

    @app.on_event("startup")
    async def _startup() -> None:
        await session.start()

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        await session.stop()

    @app.get("/status")
    def status():
        ready = session.is_ready()
        return {
            "status": "connected" if ready else "disconnected",
            "hasQR": bool(session.current_qr()),
        }

    @app.get("/qr")
    def qr():
        return {"qr": session.current_qr()}

    @app.get("/groups")
    async def groups():
        if not session.is_ready():
            return JSONResponse({"error": "WhatsApp not connected"}, status_code=503)
        try:
            items = await session.list_groups()
        except Exception as exc:
            print(f"[Relay] Error fetching groups: {exc}")
            return JSONResponse({"error": "Failed to fetch groups"}, status_code=500)
        return [{"id": str(g.get("id") or ""), "name": str(g.get("name") or "")} for g in items]

    @app.post("/send-update")
    async def send_update(payload: Dict[str, Any]):
        if not session.is_ready():
            return JSONResponse({"error": "WhatsApp not connected"}, status_code=503)
        group_id = str(payload.get("groupId") or "").strip()
        message = str(payload.get("message") or "").strip()
        if not group_id or not message:
            return JSONResponse({"error": "Missing groupId or message"}, status_code=400)
        image_urls = payload.get("imageUrls") or []
        try:
            await session.send_message(group_id, message)
            if image_urls:
                # Attachments are not delivered yet; the text goes out on its own.
                print(f"[Relay] Would send images: {len(image_urls)}")
        except Exception as exc:
            print(f"[Relay] Send error: {exc}")
            return JSONResponse({"error": "Failed to send message"}, status_code=500)
        print(f"[Relay] Update sent to {group_id}")
        return {"success": True}

    return app
