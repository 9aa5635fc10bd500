"""Telegram update handling: commands, incoming news text and the ordered update queue."""
import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional

from .config import Settings
from .conversations import PromptConversations
from .dispatcher import DeliveryFailed
from .keyboards import model_keyboard, start_keyboard
from .router import CallbackRouter, Click
from .workflow import ReviewDesk

logger = logging.getLogger(__name__)

BOT_COMMANDS = [
    {"command": "start", "description": "Starts the bot and shows main actions"},
    {"command": "gpt", "description": "Change GPT model"},
]

WELCOME_TEXT = "Welcome! Use the buttons below or forward news items if you are authorized."


class NewsBot:
    def __init__(
        self,
        settings: Settings,
        desk: ReviewDesk,
        conversations: PromptConversations,
        router: CallbackRouter,
    ):
        self.settings = settings
        self.desk = desk
        self.conversations = conversations
        self.router = router

    async def handle_update(self, update: Dict) -> None:
        if update.get("callback_query"):
            await self.router.handle(Click.from_update(update["callback_query"]))
        elif update.get("message"):
            await self.handle_message(update["message"])

    async def _reply(self, chat_id: int, text: str, layout=None) -> None:
        try:
            await self.desk.dispatcher.send(chat_id, text, reply_markup=layout)
        except DeliveryFailed as e:
            logger.error(f"Reply to {chat_id} failed: {e}")

    async def handle_message(self, message: Dict) -> None:
        text = (message.get("text") or "").strip()
        chat = message.get("chat") or {}
        chat_id = chat.get("id")
        is_private = chat.get("type") == "private"
        user_id = (message.get("from") or {}).get("id")
        if not text or chat_id is None or user_id is None:
            return

        authorized = self.settings.is_authorized(user_id)

        if text.startswith("/"):
            await self._handle_command(chat_id, is_private, user_id, authorized, text)
            return

        if self.conversations.offer_text((chat_id, user_id), text):
            logger.info(f"Custom prompt received from {user_id} in {chat_id}")
            return

        if is_private and not authorized:
            logger.info(f"Unauthorized access attempt by user {user_id}")
            await self._reply(chat_id, "You are not authorized to use this bot directly.")
            return

        if chat_id != self.settings.editors_group_id and not is_private:
            logger.info(f"Ignoring message from chat {chat_id} / user {user_id}")
            return
        if not authorized:
            logger.info(f"Ignoring message from non-authorized user {user_id} in editors group")
            return

        source = "listener" if user_id == self.settings.listener_user_id else f"user {user_id}"
        logger.info(f"Received news text from {source}: {text[:50]}...")
        try:
            await self.desk.post_for_review(text)
        except DeliveryFailed as e:
            logger.error(f"Could not post incoming item for review: {e}")
            await self._reply(chat_id, "Failed to post this item to the editors group.")

    async def _handle_command(
        self, chat_id: int, is_private: bool, user_id: int, authorized: bool, text: str
    ) -> None:
        command = text.split()[0].split("@")[0].lower()
        if not authorized:
            logger.info(f"Unauthorized command {command} by user {user_id} in chat {chat_id}")
            if is_private:
                await self._reply(chat_id, "You are not authorized to use this bot directly.")
            return

        if command == "/start":
            await self._reply(chat_id, WELCOME_TEXT, start_keyboard())
        elif command == "/gpt":
            await self._reply(chat_id, "Choose the default OpenAI model:", model_keyboard())
        else:
            logger.info(f"Ignoring unknown command {command}")


class UpdateQueue:
    """Runs updates one at a time, in arrival order, on a single consumer task."""

    def __init__(self, handler: Callable[[Dict], Awaitable[None]]):
        self._handler = handler
        self._queue: "asyncio.Queue[Dict]" = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None

    def start(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._consume())

    async def stop(self) -> None:
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None

    def submit(self, update: Dict) -> None:
        self._queue.put_nowait(update)

    async def join(self) -> None:
        await self._queue.join()

    def __len__(self) -> int:
        return self._queue.qsize()

    async def _consume(self) -> None:
        while True:
            update = await self._queue.get()
            try:
                await self._handler(update)
            except Exception as e:
                logger.error(f"Error while handling update {update.get('update_id')}: {e}", exc_info=True)
            finally:
                self._queue.task_done()
