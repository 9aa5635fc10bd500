"""Outbound Bot API calls with exponential backoff on rate limits (HTTP 429)."""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from .models import ButtonLayout
from .telegram_handler import TelegramAPI, TelegramError

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
INITIAL_DELAY = 1.0


class DeliveryFailed(Exception):
    def __init__(self, description: str, cause: Optional[TelegramError] = None):
        super().__init__(description)
        self.cause = cause


class Dispatcher:
    """Every message the workflow sends or edits goes through here.

    A 429 waits ``max(retry_after, backoff)`` and the next backoff becomes
    twice that wait. Any other error fails at once.
    """

    def __init__(
        self,
        api: TelegramAPI,
        max_attempts: int = MAX_ATTEMPTS,
        initial_delay: float = INITIAL_DELAY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.api = api
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self._sleep = sleep

    async def _with_retry(
        self,
        label: str,
        call: Callable[[], Awaitable[Any]],
        max_attempts: Optional[int] = None,
        initial_delay: Optional[float] = None,
    ) -> Any:
        attempts = max_attempts or self.max_attempts
        backoff = self.initial_delay if initial_delay is None else initial_delay

        for attempt in range(1, attempts + 1):
            try:
                return await call()
            except TelegramError as e:
                if not e.is_rate_limit:
                    logger.error(f"{label} failed (attempt {attempt}/{attempts}): {e}")
                    raise DeliveryFailed(f"{label} failed: {e.description}", e) from e
                if attempt >= attempts:
                    logger.error(f"{label} still rate limited after {attempts} attempts")
                    raise DeliveryFailed(f"{label} rate limited after {attempts} attempts", e) from e

                # a 429 without retry_after waits out the backoff alone
                wait = max(e.retry_after or 0, backoff)
                logger.warning(
                    f"Rate limit hit on {label} (attempt {attempt}/{attempts}). Retrying after {wait}s..."
                )
                await self._sleep(wait)
                backoff = wait * 2

        raise DeliveryFailed(f"{label} not attempted (max_attempts={attempts})")

    async def send(
        self,
        chat_id: int,
        text: str,
        parse_mode: Optional[str] = None,
        reply_markup: Optional[ButtonLayout] = None,
        max_attempts: Optional[int] = None,
        initial_delay: Optional[float] = None,
    ) -> Any:
        return await self._with_retry(
            f"sendMessage to {chat_id}",
            lambda: self.api.send_message(chat_id, text, parse_mode=parse_mode, reply_markup=reply_markup),
            max_attempts,
            initial_delay,
        )

    async def edit_text(
        self, chat_id: int, message_id: int, text: str, reply_markup: Optional[ButtonLayout] = None
    ) -> Any:
        return await self._with_retry(
            f"editMessageText {chat_id}/{message_id}",
            lambda: self.api.edit_message_text(chat_id, message_id, text, reply_markup=reply_markup),
        )

    async def edit_markup(self, chat_id: int, message_id: int, reply_markup: Optional[ButtonLayout]) -> Any:
        return await self._with_retry(
            f"editMessageReplyMarkup {chat_id}/{message_id}",
            lambda: self.api.edit_message_reply_markup(chat_id, message_id, reply_markup),
        )

    async def answer(self, callback_query_id: str, text: Optional[str] = None, show_alert: bool = False) -> Any:
        return await self._with_retry(
            f"answerCallbackQuery {callback_query_id}",
            lambda: self.api.answer_callback_query(callback_query_id, text=text, show_alert=show_alert),
        )

    async def strip_keyboard(self, chat_id: int, message_id: Optional[int]) -> bool:
        """Best effort: remove buttons that no longer lead anywhere."""
        if message_id is None:
            return False
        try:
            await self.edit_markup(chat_id, message_id, [])
            return True
        except DeliveryFailed as e:
            logger.warning(f"Could not strip keyboard from {chat_id}/{message_id}: {e}")
            return False
