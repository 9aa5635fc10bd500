"""Custom-prompt conversation: ask an editor for an instruction, then rewrite with it.

Each conversation is a parked future keyed by (chat_id, user_id) plus a
detached task waiting on it, so other chats keep flowing while an editor types.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, Optional

from .dispatcher import DeliveryFailed
from .keyboards import cancel_prompt_keyboard
from .models import Stage
from .storage import ContextStore, SessionKey, SessionStore
from .summarizer import Summarizer
from .workflow import ReviewDesk

logger = logging.getLogger(__name__)

ASK_PROMPT_TEXT = "Please enter the new prompt for GPT:"


@dataclass
class PendingPrompt:
    key: SessionKey
    token: str
    chat_id: int
    message_id: Optional[int]
    reply: "asyncio.Future[Optional[str]]"


class PromptConversations:
    def __init__(self, desk: ReviewDesk, contexts: ContextStore, sessions: SessionStore, summarizer: Summarizer):
        self.desk = desk
        self.contexts = contexts
        self.sessions = sessions
        self.summarizer = summarizer
        self._pending: Dict[SessionKey, PendingPrompt] = {}
        self._tasks: Dict[asyncio.Task, PendingPrompt] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def is_waiting(self, key: SessionKey) -> bool:
        return key in self._pending

    async def wait_idle(self) -> None:
        """Let conversations that already got their answer run to completion."""
        answered = [task for task, pending in self._tasks.items() if pending.reply.done()]
        if answered:
            await asyncio.wait(answered)

    async def start(self, key: SessionKey, token: str, chat_id: int, message_id: Optional[int]) -> bool:
        """Enter the conversation for ``token``. Returns False if the item is gone."""
        previous = self._pending.get(key)
        if previous is not None:
            logger.info(f"Session {key} starts a new prompt; cancelling the one for {previous.token}")
            await self.cancel(previous.token)

        ctx = self.contexts.get(token)
        if ctx is None or not ctx.is_live:
            await self.desk.notify(
                "Error: Could not find the original message context. It might be too old.", chat_id
            )
            await self.desk.dispatcher.strip_keyboard(chat_id, message_id)
            return False

        self.sessions.set_pending_prompt(key, token)
        ctx.stage = Stage.AWAITING_CUSTOM_PROMPT
        self.contexts.update(token, ctx)

        cancel_layout = cancel_prompt_keyboard(token)
        if not await self.desk.edit(chat_id, message_id, ASK_PROMPT_TEXT, cancel_layout):
            try:
                await self.desk.dispatcher.send(chat_id, ASK_PROMPT_TEXT, reply_markup=cancel_layout)
            except DeliveryFailed as e:
                logger.error(f"Could not ask for a custom prompt in {chat_id}: {e}")

        pending = PendingPrompt(key, token, chat_id, message_id, asyncio.get_running_loop().create_future())
        self._pending[key] = pending
        task = asyncio.create_task(self._run(pending))
        self._tasks[task] = pending
        task.add_done_callback(lambda t: self._tasks.pop(t, None))
        return True

    def offer_text(self, key: SessionKey, text: str) -> bool:
        """Hand a text message to the conversation waiting in this chat, if any."""
        pending = self._pending.get(key)
        if pending is None or pending.reply.done():
            return False
        pending.reply.set_result(text)
        return True

    async def cancel(self, token: str, chat_id: Optional[int] = None, message_id: Optional[int] = None) -> bool:
        """Abandon the conversation on ``token`` and put the item's buttons back.

        ``chat_id``/``message_id`` name the message to restore when the
        cancel came from a click; otherwise the conversation's own message is used.
        """
        pending = next((p for p in self._pending.values() if p.token == token), None)
        if pending is not None:
            self._finish(pending)
            if not pending.reply.done():
                pending.reply.set_result(None)
            if chat_id is None:
                chat_id, message_id = pending.chat_id, pending.message_id

        ctx = self.contexts.get(token)
        if ctx is None:
            return False
        if ctx.stage == Stage.AWAITING_CUSTOM_PROMPT:
            ctx.stage = Stage.POSTED
            self.contexts.update(token, ctx)
        if chat_id is not None:
            await self.desk.edit(chat_id, message_id, ctx.prompt_text, ctx.button_layout)
        return True

    def _finish(self, pending: PendingPrompt) -> None:
        if self._pending.get(pending.key) is pending:
            del self._pending[pending.key]
        if self.sessions.pending_prompt(pending.key) == pending.token:
            self.sessions.set_pending_prompt(pending.key, None)

    async def _run(self, pending: PendingPrompt) -> None:
        try:
            prompt = await pending.reply
            if prompt is None:
                return
            self._finish(pending)
            await self._rewrite(pending, prompt)
        except Exception as e:
            logger.error(f"Prompt conversation for {pending.token} failed: {e}", exc_info=True)
            await self.desk.notify("An error occurred while processing your prompt. Please try again.",
                                   pending.chat_id)
        finally:
            self._finish(pending)

    async def _rewrite(self, pending: PendingPrompt, prompt: str) -> None:
        chat_id, token = pending.chat_id, pending.token
        ctx = self.contexts.get(token)
        if ctx is None or not ctx.is_live:
            await self.desk.notify("Error: The original message context is gone. It might be too old.", chat_id)
            return

        ctx.stage = Stage.REWRITE_REQUESTED
        self.contexts.update(token, ctx)
        await self.desk.notify("Processing with new prompt...", chat_id)
        try:
            result = await self.summarizer.summarize(ctx.rewrite_source, prompt, self.sessions.model_for(pending.key))
        except Exception as e:
            logger.error(f"Custom rewrite call for {token} raised: {e}", exc_info=True)
            result = None

        if not result:
            ctx.stage = Stage.REWRITE_FAILED
            self.contexts.update(token, ctx)
            await self.desk.notify("Sorry, failed to get a response from OpenAI with the new prompt.", chat_id)
            await self.desk.edit(chat_id, pending.message_id, "Failed. Choose an option:", ctx.button_layout)
            return

        try:
            new_token = await self.desk.post_for_review(result)
        except DeliveryFailed as e:
            logger.error(f"Could not post rewritten item for {token}: {e}")
            ctx.stage = Stage.REWRITE_FAILED
            self.contexts.update(token, ctx)
            await self.desk.notify("The rewrite succeeded but could not be posted. Please try again.", chat_id)
            await self.desk.edit(chat_id, pending.message_id, ctx.prompt_text, ctx.button_layout)
            return

        ctx.rewritten_text = result
        ctx.stage = Stage.SUPERSEDED
        self.contexts.update(token, ctx)
        await self.desk.edit(
            chat_id, pending.message_id, "Rewritten with your prompt. The new version is posted below."
        )
        logger.info(f"Item {token} rewritten with a custom prompt as {new_token}")
