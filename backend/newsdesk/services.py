"""Wires the stores, clients and handlers into one object for the entry points."""
import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from .bot import NewsBot, UpdateQueue
from .config import Settings
from .conversations import PromptConversations
from .dispatcher import Dispatcher
from .listener import SourceListener
from .main import Scraper, build_graph
from .nodes.fetchers import FetchHtml, fetch_html
from .router import CallbackRouter
from .storage import ContextStore, DedupIndex, SessionStore
from .summarizer import Summarizer
from .telegram_handler import TelegramAPI
from .workflow import ReviewDesk


@dataclass
class Services:
    settings: Settings
    api: TelegramAPI
    dispatcher: Dispatcher
    contexts: ContextStore
    dedup: DedupIndex
    sessions: SessionStore
    desk: ReviewDesk
    summarizer: Summarizer
    conversations: PromptConversations
    router: CallbackRouter
    bot: NewsBot
    scraper: Scraper
    updates: UpdateQueue
    listener: Optional[SourceListener] = None


def build_services(
    settings: Settings,
    api: Optional[TelegramAPI] = None,
    dispatcher: Optional[Dispatcher] = None,
    summarizer: Optional[Summarizer] = None,
    fetch: FetchHtml = fetch_html,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> Services:
    api = api or TelegramAPI(settings.telegram_bot_token)
    dispatcher = dispatcher or Dispatcher(api)
    contexts = ContextStore()
    dedup = DedupIndex()
    sessions = SessionStore(settings.default_model)
    desk = ReviewDesk(settings, dispatcher, contexts)
    summarizer = summarizer or Summarizer(settings)
    scraper = Scraper(settings, desk, dedup, graph=build_graph(settings, desk, dedup, fetch, sleep))
    conversations = PromptConversations(desk, contexts, sessions, summarizer)
    router = CallbackRouter(
        settings, desk, contexts, sessions, summarizer, conversations, trigger_scrape=scraper.run_scraper
    )
    bot = NewsBot(settings, desk, conversations, router)
    listener = SourceListener(settings, api) if settings.listener_enabled else None
    return Services(
        settings=settings,
        api=api,
        dispatcher=dispatcher,
        contexts=contexts,
        dedup=dedup,
        sessions=sessions,
        desk=desk,
        summarizer=summarizer,
        conversations=conversations,
        router=router,
        bot=bot,
        scraper=scraper,
        updates=UpdateQueue(bot.handle_update),
        listener=listener,
    )
