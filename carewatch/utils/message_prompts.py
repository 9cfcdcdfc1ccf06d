from __future__ import annotations

from typing import List

SYSTEM_PROMPT = "You are an AI assistant for an elderly care home."

_GUIDELINES: List[str] = [
    "Keep it under 50 words.",
    "Be professional yet empathetic and cheerful.",
    "Do not mention medical specifics unless clearly stated in notes.",
    "Format it for WhatsApp (can use single emojis).",
    "Start directly with the message.",
]


def fallback_message(resident_name: str, category: str, notes: str) -> str:
    return f"Update for {resident_name}: {category}. {notes}"


def build_family_message_prompt(resident_name: str, category: str, notes: str) -> str:
    parts = [
        SYSTEM_PROMPT,
        f'Write a warm, short, and reassuring WhatsApp message to the family of resident "{resident_name}".',
        "",
        "Context:",
        f"- Activity Category: {category}",
        f'- Staff Notes: "{(notes or "").strip()}"',
        "",
        "Guidelines:",
        "- " + "\n- ".join(_GUIDELINES),
    ]
    return "\n".join(parts)
