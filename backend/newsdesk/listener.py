"""User-account listener: relays posts from source chats to the bot.

The listener logs in as a regular Telegram user (Telethon), watches
``SOURCE_CHAT_IDS`` and sends each post's text to the bot in a private chat.
The bot treats that account as ``LISTENER_USER_ID`` and posts the text for
review like any editor-submitted item.
"""
import logging
from typing import Optional

from telethon import TelegramClient, events
from telethon.errors import RPCError
from telethon.sessions import StringSession

from .config import Settings
from .telegram_handler import TelegramAPI, TelegramError

logger = logging.getLogger(__name__)


class SourceListener:
    def __init__(self, settings: Settings, api: TelegramAPI, client: Optional[TelegramClient] = None):
        self.settings = settings
        self.api = api
        self.client = client or TelegramClient(
            StringSession(settings.telegram_session),
            settings.telegram_api_id,
            settings.telegram_api_hash,
            connection_retries=5,
        )
        self._bot_target: Optional[str] = None

    async def _resolve_bot(self) -> Optional[str]:
        if self._bot_target is None:
            try:
                me = await self.api.get_me()
            except TelegramError as e:
                logger.error(f"Could not look up the bot username: {e}")
                return None
            username = (me or {}).get("username")
            if username:
                self._bot_target = f"@{username}"
        return self._bot_target

    async def relay(self, text: Optional[str]) -> bool:
        """Send ``text`` to the bot as the listener account."""
        text = (text or "").strip()
        if not text:
            logger.info("Source message has no text, skipping")
            return False

        target = await self._resolve_bot()
        if target is None:
            logger.error("Bot username unknown, source message not relayed")
            return False

        try:
            await self.client.send_message(target, text)
        except (RPCError, ConnectionError, ValueError) as e:
            logger.error(f"Error relaying source message to {target}: {e}")
            return False
        logger.info(f"Relayed source message to {target}: {text[:50]}...")
        return True

    async def on_new_message(self, event) -> None:
        logger.info(f"New message in source chat {event.chat_id}")
        await self.relay(event.message.message)

    async def start(self) -> bool:
        """Log in and start listening. Returns False when there is nothing to watch."""
        if not self.settings.source_chat_ids:
            logger.warning("SOURCE_CHAT_IDS is empty, listener not started")
            return False
        if self.settings.listener_user_id is None:
            logger.warning("LISTENER_USER_ID not set; the bot will ignore relayed messages")

        self.client.add_event_handler(
            self.on_new_message, events.NewMessage(chats=self.settings.source_chat_ids)
        )
        # Prompts on stdin for the login code unless TELEGRAM_SESSION_STRING is set
        await self.client.start(phone=self.settings.telegram_phone_number)
        logger.info(f"Listener connected, watching {len(self.settings.source_chat_ids)} source chats")
        if not self.settings.telegram_session:
            logger.info(
                "Set TELEGRAM_SESSION_STRING to this value to skip the login prompt next time: "
                f"{self.client.session.save()}"
            )
        return True

    async def stop(self) -> None:
        await self.client.disconnect()
