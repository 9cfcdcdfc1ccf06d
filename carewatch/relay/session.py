from __future__ import annotations

import asyncio
from typing import Dict, List, Optional

WHATSAPP_WEB_URL = "https://web.whatsapp.com/"
_COMPOSER = 'div[contenteditable="true"][role="textbox"]'
_QR_CANVAS = "canvas[aria-label*='Scan me'], canvas"
_CHAT_ITEM = '[data-testid="cell-frame-container"]'
_CHAT_TITLE = '[data-testid="cell-frame-title"]'
_CHAT_SEARCH = '[data-testid="chat-list-search"]'
_GROUP_AVATAR = '[data-testid="default-group"], [data-icon="default-group"]'


class RelaySession:
    """A paired messaging account the relay server speaks through."""

    async def start(self) -> None:
        return None

    async def stop(self) -> None:
        return None

    def is_ready(self) -> bool:
        raise NotImplementedError

    def current_qr(self) -> Optional[str]:
        return None

    async def list_groups(self) -> List[Dict[str, str]]:
        raise NotImplementedError

    async def send_message(self, group_id: str, message: str) -> None:
        raise NotImplementedError


class WhatsAppWebSession(RelaySession):
    """WhatsApp Web driven through a persistent Playwright Chromium profile.

    A background loop watches the page: while the login canvas is shown its
    pairing code is kept as a PNG data URI, once the chat composer appears the
    session is ready and the code is dropped. Group ids are chat titles, which
    is what the chat search box resolves.
    """

    def __init__(self, profile_dir: str, headless: bool = True, poll_interval: float = 5.0) -> None:
        self.profile_dir = profile_dir
        self.headless = headless
        self.poll_interval = poll_interval
        self.settle_delay = 1.0
        self.playwright = None
        self.ctx = None
        self.page = None
        self._lock = asyncio.Lock()
        self._stop = asyncio.Event()
        self._ready = False
        self._qr: Optional[str] = None
        self._watch_task: Optional[asyncio.Task] = None

    async def start(self) -> None:
        from playwright.async_api import async_playwright

        print(f"[Relay] Starting WhatsApp Web (profile={self.profile_dir}, headless={self.headless})")
        self.playwright = await async_playwright().start()
        self.ctx = await self.playwright.chromium.launch_persistent_context(
            user_data_dir=self.profile_dir,
            headless=self.headless,
            viewport={"width": 1280, "height": 900},
            args=["--disable-blink-features=AutomationControlled"],
        )
        self.page = self.ctx.pages[0] if self.ctx.pages else await self.ctx.new_page()
        self.page.set_default_timeout(60000)
        try:
            await self.page.goto(WHATSAPP_WEB_URL, timeout=120000, wait_until="domcontentloaded")
        except Exception as exc:
            # The watch loop keeps polling until the page settles.
            print(f"[Relay] Initial page load did not finish: {exc}")
        self._watch_task = asyncio.create_task(self._watch_loop())

    async def stop(self) -> None:
        self._stop.set()
        if self._watch_task is not None:
            self._watch_task.cancel()
            try:
                await self._watch_task
            except asyncio.CancelledError:
                pass
        if self.ctx is not None:
            await self.ctx.close()
        if self.playwright is not None:
            await self.playwright.stop()
        self._ready = False
        print("[Relay] Stopped")

    def is_ready(self) -> bool:
        return self._ready

    def current_qr(self) -> Optional[str]:
        return None if self._ready else self._qr

    async def _refresh_state(self) -> None:
        async with self._lock:
            connected = await self.page.locator(_COMPOSER).count() > 0
            if connected:
                if not self._ready:
                    print("[Relay] WhatsApp client is ready!")
                self._ready = True
                self._qr = None
                return
            if self._ready:
                print("[Relay] Client was logged out")
            self._ready = False
            canvas = self.page.locator(_QR_CANVAS)
            if await canvas.count() > 0:
                data_url = await canvas.first.evaluate("(c) => c.toDataURL('image/png')")
                if data_url and data_url.startswith("data:image/png;base64,") and data_url != self._qr:
                    self._qr = data_url
                    print("[Relay] QR received")

    async def _watch_loop(self) -> None:
        while not self._stop.is_set():
            try:
                await self._refresh_state()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                print(f"[Relay] Page check failed: {exc}")
            await asyncio.sleep(self.poll_interval)

    async def list_groups(self) -> List[Dict[str, str]]:
        if not self._ready:
            raise RuntimeError("WhatsApp not connected")
        async with self._lock:
            items = self.page.locator(_CHAT_ITEM)
            count = await items.count()
            groups: List[Dict[str, str]] = []
            seen = set()
            for i in range(count):
                item = items.nth(i)
                if await item.locator(_GROUP_AVATAR).count() == 0:
                    continue
                title = (await item.locator(_CHAT_TITLE).first.inner_text()).strip()
                if title and title not in seen:
                    seen.add(title)
                    groups.append({"id": title, "name": title})
            return groups

    async def _open_chat(self, query: str) -> None:
        search_button = self.page.locator(_CHAT_SEARCH)
        if await search_button.count():
            await search_button.first.click()
        search_box = self.page.locator(_COMPOSER)
        if await search_box.count() == 0:
            raise RuntimeError("Chat search box not found")
        await search_box.first.click()
        await search_box.first.fill(query)
        await asyncio.sleep(self.settle_delay)
        # Search also lists partial title matches and message hits; only the exact title is the group.
        results = self.page.locator(_CHAT_TITLE)
        for i in range(await results.count()):
            result = results.nth(i)
            if (await result.inner_text()).strip() == query:
                await result.click()
                await asyncio.sleep(self.settle_delay)
                return
        raise RuntimeError(f"Chat not found: {query}")

    async def send_message(self, group_id: str, message: str) -> None:
        if not self._ready:
            raise RuntimeError("WhatsApp not connected")
        async with self._lock:
            await self._open_chat(group_id.strip())
            inputs = self.page.locator(_COMPOSER)
            n = await inputs.count()
            if n == 0:
                raise RuntimeError("Message composer not found")
            composer = inputs.nth(n - 1)
            await composer.click()
            await composer.fill(message)
            await asyncio.sleep(0.2)
            await self.page.keyboard.press("Enter")
            await asyncio.sleep(0.5)


__all__ = ["RelaySession", "WhatsAppWebSession"]
