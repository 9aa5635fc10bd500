"""Inline keyboards, as plain Bot API button rows."""
from typing import Dict

from .callbacks import MODEL_CANCEL, Action, encode
from .models import ButtonLayout


def _button(text: str, action: Action, data: str) -> Dict[str, str]:
    return {"text": text, "callback_data": encode(action, data)}


def main_keyboard(token: str) -> ButtonLayout:
    return [
        [_button("🤖 Send to GPT", Action.REWRITE, token)],
        [_button("📰 Send to News Channel", Action.PUBLISH, token)],
        [_button("✏️ New Prompt", Action.NEW_PROMPT, token)],
    ]


def cancel_prompt_keyboard(token: str) -> ButtonLayout:
    return [[_button("❌ Cancel New Prompt", Action.CANCEL_PROMPT, token)]]


def model_keyboard() -> ButtonLayout:
    return [
        [_button("GPT-4o", Action.SELECT_MODEL, "4o"), _button("GPT-3.5 Turbo", Action.SELECT_MODEL, "3.5t")],
        [_button("❌ Cancel", Action.SELECT_MODEL, MODEL_CANCEL)],
    ]


def start_keyboard() -> ButtonLayout:
    return [
        [_button("🚀 Start Scraping", Action.START_SCRAPE, "start")],
        [_button("❓ Support", Action.SUPPORT, "info")],
    ]
