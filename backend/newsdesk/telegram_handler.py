"""Thin Telegram Bot API client over httpx."""
import logging
from typing import Any, Dict, List, Optional

import httpx

from .models import ButtonLayout

logger = logging.getLogger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"


class TelegramError(Exception):
    """Bot API call rejected by Telegram (``ok: false``)."""

    def __init__(self, error_code: int, description: str, retry_after: Optional[float] = None):
        super().__init__(f"{error_code}: {description}")
        self.error_code = error_code
        self.description = description
        self.retry_after = retry_after

    @property
    def is_rate_limit(self) -> bool:
        return self.error_code == 429


class TelegramNetworkError(TelegramError):
    """The request never produced a Bot API response."""

    def __init__(self, description: str):
        super().__init__(0, description)


def inline_keyboard(layout: Optional[ButtonLayout]) -> Dict[str, Any]:
    return {"inline_keyboard": layout or []}


class TelegramAPI:
    def __init__(self, token: str, client: Optional[httpx.AsyncClient] = None, timeout: float = 15):
        self._base = f"{TELEGRAM_API_BASE}/bot{token}"
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def call(self, method: str, payload: Dict[str, Any]) -> Any:
        try:
            resp = await self._client.post(f"{self._base}/{method}", json=payload)
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise TelegramNetworkError(f"{method} request failed: {e}") from e

        if not data.get("ok"):
            params = data.get("parameters") or {}
            raise TelegramError(
                data.get("error_code", resp.status_code),
                data.get("description", resp.text[:200]),
                params.get("retry_after"),
            )
        return data.get("result")

    async def send_message(
        self,
        chat_id: int,
        text: str,
        parse_mode: Optional[str] = None,
        reply_markup: Optional[ButtonLayout] = None,
    ) -> Dict:
        payload: Dict[str, Any] = {
            "chat_id": chat_id,
            "text": text,
            "disable_web_page_preview": True,
        }
        if parse_mode:
            payload["parse_mode"] = parse_mode
        if reply_markup is not None:
            payload["reply_markup"] = inline_keyboard(reply_markup)
        return await self.call("sendMessage", payload)

    async def edit_message_text(
        self,
        chat_id: int,
        message_id: int,
        text: str,
        reply_markup: Optional[ButtonLayout] = None,
    ) -> Any:
        payload: Dict[str, Any] = {"chat_id": chat_id, "message_id": message_id, "text": text}
        if reply_markup is not None:
            payload["reply_markup"] = inline_keyboard(reply_markup)
        return await self.call("editMessageText", payload)

    async def edit_message_reply_markup(
        self, chat_id: int, message_id: int, reply_markup: Optional[ButtonLayout]
    ) -> Any:
        return await self.call(
            "editMessageReplyMarkup",
            {"chat_id": chat_id, "message_id": message_id, "reply_markup": inline_keyboard(reply_markup)},
        )

    async def answer_callback_query(
        self, callback_query_id: str, text: Optional[str] = None, show_alert: bool = False
    ) -> Any:
        payload: Dict[str, Any] = {"callback_query_id": callback_query_id, "show_alert": show_alert}
        if text:
            payload["text"] = text
        return await self.call("answerCallbackQuery", payload)

    async def get_me(self) -> Dict:
        return await self.call("getMe", {})

    async def set_my_commands(self, commands: List[Dict[str, str]]) -> bool:
        try:
            await self.call("setMyCommands", {"commands": commands})
            logger.info("Telegram bot commands registered")
            return True
        except TelegramError as e:
            logger.error(f"setMyCommands failed: {e}")
            return False

    async def setup_webhook(self, webhook_url: str, secret_token: str = "") -> bool:
        payload: Dict[str, Any] = {
            "url": webhook_url,
            "allowed_updates": ["message", "callback_query"],
            "drop_pending_updates": True,
        }
        if secret_token:
            payload["secret_token"] = secret_token
        try:
            await self.call("setWebhook", payload)
            logger.info(f"Telegram webhook set to {webhook_url}")
            return True
        except TelegramError as e:
            logger.error(f"Webhook setup failed: {e}")
            return False

    async def delete_webhook(self) -> bool:
        try:
            await self.call("deleteWebhook", {})
            return True
        except TelegramError:
            return False
