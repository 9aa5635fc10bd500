"""Posting items into the review chat and keeping their contexts in step."""
import logging
from typing import Optional

from .config import Settings
from .dispatcher import DeliveryFailed, Dispatcher
from .keyboards import main_keyboard
from .models import ButtonLayout, WorkflowContext
from .storage import ContextStore

logger = logging.getLogger(__name__)

DEFAULT_PROMPT_TEXT = "Choose an option:"


class ReviewDesk:
    def __init__(self, settings: Settings, dispatcher: Dispatcher, contexts: ContextStore):
        self.settings = settings
        self.dispatcher = dispatcher
        self.contexts = contexts

    @property
    def review_chat(self) -> int:
        return self.settings.editors_group_id

    async def post_for_review(
        self,
        text: str,
        scraped_content: Optional[str] = None,
        prompt_text: str = DEFAULT_PROMPT_TEXT,
    ) -> str:
        """Show ``text`` to the editors followed by the action keyboard.

        Returns the new context token. Raises DeliveryFailed (and drops the
        context) when the keyboard message cannot be delivered.
        """
        ctx = WorkflowContext(original_text=text, button_layout=[], prompt_text=prompt_text,
                              scraped_content=scraped_content)
        token = self.contexts.create(ctx)
        ctx.button_layout = main_keyboard(token)
        self.contexts.update(token, ctx)

        try:
            await self.dispatcher.send(self.review_chat, text, parse_mode="Markdown")
        except DeliveryFailed as e:
            logger.warning(f"Item text rejected with Markdown ({e}), resending as plain text")
            try:
                await self.dispatcher.send(self.review_chat, text)
            except DeliveryFailed as e2:
                logger.error(f"Failed to send item text to review chat: {e2}")

        try:
            await self.dispatcher.send(self.review_chat, prompt_text, reply_markup=ctx.button_layout)
        except DeliveryFailed:
            self.contexts.delete(token)
            raise

        logger.info(f"Posted item {token} for review")
        return token

    async def edit(
        self, chat_id: int, message_id: Optional[int], text: str, layout: Optional[ButtonLayout] = None
    ) -> bool:
        """Rewrite a message (and its buttons) in place; failures are logged."""
        if message_id is None:
            return False
        try:
            await self.dispatcher.edit_text(chat_id, message_id, text, reply_markup=layout or [])
            return True
        except DeliveryFailed as e:
            logger.warning(f"Could not edit message {chat_id}/{message_id}: {e}")
            return False

    async def notify(self, text: str, chat_id: Optional[int] = None) -> bool:
        """Plain notice; failures are logged, never raised."""
        try:
            await self.dispatcher.send(chat_id or self.review_chat, text)
            return True
        except DeliveryFailed as e:
            logger.error(f"Failed to send notice to {chat_id or self.review_chat}: {e}")
            return False
