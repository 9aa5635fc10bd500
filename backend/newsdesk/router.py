"""Inline button clicks → workflow transitions.

Every click gets exactly one answerCallbackQuery. When the outcome is already
known it is answered with that outcome first; before the slow rewrite call it
is answered with a provisional "Processing..." instead.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional, Set

from .callbacks import INVALID_TOKEN, MODEL_CANCEL, MODEL_CHOICES, Action, CallbackAction, MalformedPayload, parse
from .config import Settings
from .conversations import PromptConversations
from .dispatcher import DeliveryFailed
from .models import Stage, WorkflowContext
from .storage import ContextStore, SessionKey, SessionStore
from .summarizer import Summarizer
from .workflow import ReviewDesk

logger = logging.getLogger(__name__)

SUPPORT_TEXT = "For support, please contact the bot admin or check the project documentation."

ScrapeTrigger = Callable[[], Awaitable[object]]


class Click:
    """The parts of a Telegram callback_query the router needs."""

    def __init__(self, query_id: str, user_id: Optional[int], chat_id: Optional[int],
                 message_id: Optional[int], data: Optional[str]):
        self.query_id = query_id
        self.user_id = user_id
        self.chat_id = chat_id
        self.message_id = message_id
        self.data = data

    @classmethod
    def from_update(cls, query: Dict) -> "Click":
        message = query.get("message") or {}
        return cls(
            query_id=str(query.get("id", "")),
            user_id=(query.get("from") or {}).get("id"),
            chat_id=(message.get("chat") or {}).get("id"),
            message_id=message.get("message_id"),
            data=query.get("data"),
        )

    @property
    def session_key(self) -> SessionKey:
        return (self.chat_id, self.user_id)


class CallbackRouter:
    def __init__(
        self,
        settings: Settings,
        desk: ReviewDesk,
        contexts: ContextStore,
        sessions: SessionStore,
        summarizer: Summarizer,
        conversations: PromptConversations,
        trigger_scrape: Optional[ScrapeTrigger] = None,
    ):
        self.settings = settings
        self.desk = desk
        self.dispatcher = desk.dispatcher
        self.contexts = contexts
        self.sessions = sessions
        self.summarizer = summarizer
        self.conversations = conversations
        self.trigger_scrape = trigger_scrape
        self._background: Set[asyncio.Task] = set()

    async def _answer(self, click: Click, text: Optional[str] = None, show_alert: bool = False) -> None:
        try:
            await self.dispatcher.answer(click.query_id, text, show_alert)
        except DeliveryFailed as e:
            logger.error(f"Could not answer callback {click.query_id}: {e}")

    async def handle(self, click: Click) -> None:
        if not click.query_id:
            logger.error("Callback query without id; cannot answer it")
            return
        if not self.settings.is_authorized(click.user_id):
            await self._answer(click, "Error: Unauthorized action.", show_alert=True)
            return

        parsed = parse(click.data)
        logger.info(f"Callback from {click.user_id}: {click.data!r}")

        if isinstance(parsed, MalformedPayload):
            await self._reject(click, parsed)
            return
        if not parsed.needs_context:
            await self._handle_literal(click, parsed)
            return

        ctx = self.contexts.get(parsed.data)
        if ctx is None or not ctx.is_live:
            await self._answer(click, "Error: Original message context not found (too old?).")
            await self.dispatcher.strip_keyboard(click.chat_id, click.message_id)
            return

        try:
            await self._handle_context(click, parsed, ctx)
        except Exception as e:
            logger.error(f"Error processing {parsed.action.name} for {parsed.data}: {e}", exc_info=True)
            await self.desk.notify(
                f"An error occurred while processing action '{parsed.action.value}'. Please try again later.",
                click.chat_id,
            )

    async def _reject(self, click: Click, malformed: MalformedPayload) -> None:
        logger.warning(f"Rejected callback payload {malformed.raw!r}: {malformed.reason}")
        if malformed.reason == INVALID_TOKEN:
            await self._answer(click, "Error: Invalid or missing message context ID.")
            await self.dispatcher.strip_keyboard(click.chat_id, click.message_id)
        else:
            await self._answer(click, "Unknown action")

    # ------------------------------------------------------------------
    # Actions without a workflow context
    # ------------------------------------------------------------------
    async def _handle_literal(self, click: Click, action: CallbackAction) -> None:
        if action.action == Action.SELECT_MODEL:
            await self._select_model(click, action.data)
        elif action.action == Action.START_SCRAPE:
            await self._start_scrape(click)
        elif action.action == Action.SUPPORT:
            await self._answer(click)
            await self.desk.notify(SUPPORT_TEXT, click.chat_id)
        else:
            await self._answer(click, "Unknown action")

    async def _select_model(self, click: Click, choice: str) -> None:
        if choice == MODEL_CANCEL:
            await self._answer(click, "Cancelled")
            await self.desk.edit(click.chat_id, click.message_id, "GPT model selection cancelled.")
            return
        model = MODEL_CHOICES[choice]
        await self._answer(click, f"Model set to {model}")
        self.sessions.set_model(click.session_key, model)
        await self.desk.edit(click.chat_id, click.message_id, f"Default OpenAI model set to {model}.")

    async def _start_scrape(self, click: Click) -> None:
        if self.trigger_scrape is None:
            await self._answer(click, "Scraping is not available.")
            return
        await self._answer(click, "Starting scraping process...")
        await self.desk.notify(
            "Manual scraping process initiated. This might take a moment. "
            "Found articles will be sent to the editors group.",
            click.chat_id,
        )
        task = asyncio.create_task(self._run_scrape(click.chat_id))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _run_scrape(self, chat_id: Optional[int]) -> None:
        try:
            await self.trigger_scrape()
            logger.info("Manual scrape triggered via button finished")
        except Exception as e:
            logger.error(f"Manual scrape triggered via button failed: {e}", exc_info=True)
            await self.desk.notify("An error occurred during the manual scraping process.", chat_id)

    # ------------------------------------------------------------------
    # Actions on a workflow context
    # ------------------------------------------------------------------
    async def _handle_context(self, click: Click, action: CallbackAction, ctx: WorkflowContext) -> None:
        token = action.data
        if action.action == Action.REWRITE:
            await self._rewrite(click, token, ctx)
        elif action.action == Action.PUBLISH:
            await self._publish(click, token, ctx)
        elif action.action == Action.NEW_PROMPT:
            await self._answer(click)
            await self.conversations.start(click.session_key, token, click.chat_id, click.message_id)
        elif action.action == Action.CANCEL_PROMPT:
            await self._answer(click, "Cancelled")
            self.sessions.set_pending_prompt(click.session_key, None)
            await self.conversations.cancel(token, click.chat_id, click.message_id)
        else:
            await self._answer(click, "Unknown action")

    async def _rewrite(self, click: Click, token: str, ctx: WorkflowContext) -> None:
        if ctx.stage in (Stage.REWRITE_REQUESTED, Stage.PUBLISHING):
            await self._answer(click, "This item is already being processed.")
            return
        await self._answer(click, "Processing with GPT...")
        ctx.stage = Stage.REWRITE_REQUESTED
        self.contexts.update(token, ctx)

        model = self.sessions.model_for(click.session_key)
        try:
            result = await self.summarizer.summarize(ctx.rewrite_source, self.settings.ready_prompt, model)
        except Exception as e:
            logger.error(f"Rewrite call for {token} raised: {e}", exc_info=True)
            result = None

        ctx = self.contexts.get(token)
        if ctx is None:
            return
        if not result:
            ctx.stage = Stage.REWRITE_FAILED
            self.contexts.update(token, ctx)
            await self.desk.notify("Sorry, failed to get a response from OpenAI.")
            return

        try:
            await self.desk.notify("GPT Summary Generated:")
            new_token = await self.desk.post_for_review(result)
        except DeliveryFailed as e:
            logger.error(f"Could not post rewritten item for {token}: {e}")
            ctx.stage = Stage.REWRITE_FAILED
            self.contexts.update(token, ctx)
            await self.desk.notify("The summary was generated but could not be posted. Please try again.")
            return

        ctx.rewritten_text = result
        ctx.stage = Stage.SUPERSEDED
        self.contexts.update(token, ctx)
        await self.desk.edit(click.chat_id, click.message_id,
                             "Original message processed by GPT. Summary posted below.")
        logger.info(f"Item {token} rewritten as {new_token}")

    async def _publish(self, click: Click, token: str, ctx: WorkflowContext) -> None:
        if ctx.stage in (Stage.PUBLISHING, Stage.REWRITE_REQUESTED):
            await self._answer(click, "This item is already being processed.")
            return
        await self._answer(click, "Sending to news channel...")
        previous_stage = ctx.stage
        ctx.stage = Stage.PUBLISHING
        self.contexts.update(token, ctx)

        try:
            await self.dispatcher.send(self.settings.news_channel_id, ctx.publish_text, parse_mode="Markdown")
        except DeliveryFailed as e:
            logger.error(f"Failed to publish {token} to channel {self.settings.news_channel_id}: {e}")
            ctx.stage = previous_stage
            self.contexts.update(token, ctx)
            await self.desk.notify(f"Failed to send message to the news channel. Error: {e}")
            return

        self.contexts.delete(token)
        logger.info(f"Published item {token} to channel {self.settings.news_channel_id}")
        await self.desk.edit(click.chat_id, click.message_id, "Sent to news channel!")
