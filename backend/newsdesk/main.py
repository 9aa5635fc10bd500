"""LangGraph scrape cycle and its scheduler."""
import asyncio
import logging
import uuid
from typing import Awaitable, Callable, Optional

from langgraph.graph import END, START, StateGraph

from .config import Settings
from .nodes.fetchers import FetchHtml, fetch_html, make_fetch_index, make_scrape_articles
from .nodes.review import make_deliver, make_precheck
from .state import ScrapeState
from .storage import DedupIndex
from .workflow import ReviewDesk

logger = logging.getLogger(__name__)


def build_graph(
    settings: Settings,
    desk: ReviewDesk,
    dedup: DedupIndex,
    fetch: FetchHtml = fetch_html,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
):
    builder = StateGraph(ScrapeState)

    builder.add_node("fetch_index", make_fetch_index(settings.home_url, fetch))
    builder.add_node("precheck", make_precheck(dedup))
    builder.add_node("scrape_articles", make_scrape_articles(fetch))
    builder.add_node("deliver", make_deliver(desk, dedup, settings.scrape_item_delay, sleep))

    builder.add_edge(START, "fetch_index")
    builder.add_edge("fetch_index", "precheck")
    builder.add_edge("precheck", "scrape_articles")
    builder.add_edge("scrape_articles", "deliver")
    builder.add_edge("deliver", END)

    return builder.compile()


class Scraper:
    def __init__(self, settings: Settings, desk: ReviewDesk, dedup: DedupIndex, graph=None):
        self.settings = settings
        self.graph = graph or build_graph(settings, desk, dedup)
        self.last_run: Optional[ScrapeState] = None
        self._lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._lock.locked()

    async def run_scraper(self, run_id: Optional[str] = None) -> Optional[ScrapeState]:
        """Run one scrape cycle. Never raises; returns None if a cycle is already running."""
        if self._lock.locked():
            logger.info("Scrape already in progress, skipping this trigger")
            return None

        async with self._lock:
            run_id = run_id or str(uuid.uuid4())
            logger.info(f"Starting scrape run: {run_id}")
            initial_state: ScrapeState = {
                "run_id": run_id,
                "candidates": [],
                "fresh": [],
                "scraped": [],
                "delivered": [],
                "stats": {},
                "errors": [],
            }
            try:
                result = await self.graph.ainvoke(initial_state)
            except Exception as e:
                logger.error(f"Scrape run {run_id} failed: {e}", exc_info=True)
                result = {**initial_state, "errors": [str(e)]}

            self.last_run = result
            logger.info(f"Scrape run {run_id} complete. Stats: {result.get('stats', {})}")
            return result

    async def scrape_forever(self) -> None:
        interval = self.settings.scrape_interval_hours * 3600
        logger.info(f"Scrape scheduler for {self.settings.home_url} started, every "
                    f"{self.settings.scrape_interval_hours} hours")
        while True:
            await asyncio.sleep(interval)
            await self.run_scraper()
