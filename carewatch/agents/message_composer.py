from __future__ import annotations

from typing import Any

from carewatch.utils.message_prompts import build_family_message_prompt, fallback_message

_QUOTES = "\"'“”‘’"


def _clean_generated(text: Any) -> str:
    value = str(text or "").strip()
    while len(value) >= 2 and value[0] in _QUOTES and value[-1] in _QUOTES:
        value = value[1:-1].strip()
    return value


class MessageComposer:
    def __init__(self, client=None) -> None:
        self.client = client

    def compose(self, resident_name: str, category: str, notes: str) -> str:
        name = (resident_name or "").strip() or "Resident"
        category = str(category or "").strip()
        notes = (notes or "").strip()
        fallback = fallback_message(name, category, notes)

        if self.client is None:
            print("[Composer] No generation backend configured. Returning default message.")
            return fallback

        prompt = build_family_message_prompt(name, category, notes)
        try:
            text = _clean_generated(self.client.generate(prompt))
        except Exception as exc:
            print(f"[Composer] Error generating message: {exc}")
            return fallback
        return text or fallback
