from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

import requests

from carewatch.store.schemas import WhatsAppGroup
from carewatch.store.seed_demo import DEMO_GROUPS

OFFLINE_MESSAGE = "Bot server is offline. Please run 'python scripts/run_relay.py'"


class RelayUnavailable(RuntimeError):
    """The relay server could not be reached or refused the request."""


class RelayClient:
    def __init__(self, base_url: str, timeout: float = 10.0, session=None) -> None:
        self.base_url = (base_url or "").rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def status(self) -> Dict[str, Any]:
        try:
            resp = self.session.get(self._url("/status"), timeout=self.timeout)
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError):
            return {"status": "offline"}
        return {"status": str(data.get("status") or "disconnected"), "hasQR": bool(data.get("hasQR"))}

    def qr(self) -> Optional[str]:
        try:
            resp = self.session.get(self._url("/qr"), timeout=self.timeout)
            resp.raise_for_status()
            return resp.json().get("qr") or None
        except (requests.RequestException, ValueError):
            return None

    def list_groups(self) -> List[WhatsAppGroup]:
        try:
            resp = self.session.get(self._url("/groups"), timeout=self.timeout)
        except requests.RequestException as exc:
            raise RelayUnavailable(OFFLINE_MESSAGE) from exc
        if not resp.ok:
            raise RelayUnavailable(OFFLINE_MESSAGE)
        try:
            rows = resp.json()
        except ValueError as exc:
            raise RelayUnavailable(OFFLINE_MESSAGE) from exc
        return [WhatsAppGroup.from_row(row) for row in rows or []]

    def send_update(self, group_id: str, message: str, image_urls: Sequence[str] = ()) -> bool:
        payload = {"groupId": group_id, "message": message, "imageUrls": list(image_urls or [])}
        try:
            resp = self.session.post(self._url("/send-update"), json=payload, timeout=self.timeout)
        except requests.RequestException as exc:
            print(f"[Relay] Bot server unreachable: {exc}")
            return False
        if not resp.ok:
            print(f"[Relay] Bot server returned {resp.status_code}")
            return False
        return True


class MockRelayClient:
    """Offline stand-in: always paired, fixed demo groups, every send succeeds."""

    def __init__(self, groups: Optional[Sequence[WhatsAppGroup]] = None) -> None:
        self.groups = list(groups if groups is not None else DEMO_GROUPS)
        self.sent: List[Dict[str, Any]] = []

    def status(self) -> Dict[str, Any]:
        return {"status": "connected", "hasQR": False}

    def qr(self) -> Optional[str]:
        return None

    def list_groups(self) -> List[WhatsAppGroup]:
        return list(self.groups)

    def send_update(self, group_id: str, message: str, image_urls: Sequence[str] = ()) -> bool:
        self.sent.append({"groupId": group_id, "message": message, "imageUrls": list(image_urls or [])})
        print(f"[Relay] Mock send to {group_id}: {message[:60]}")
        return True


def bot_snapshot(relay) -> Dict[str, Any]:
    info = relay.status()
    status = info.get("status") or "offline"
    qr = None
    if status == "disconnected" and info.get("hasQR"):
        qr = relay.qr()
    return {"status": status, "qr": qr}
