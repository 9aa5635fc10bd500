"""Dedup checks and posting scraped articles into the review chat."""
import asyncio
import logging
from typing import Awaitable, Callable, Dict

from ..dispatcher import DeliveryFailed
from ..state import ScrapeState
from ..storage import DedupIndex
from ..workflow import ReviewDesk

logger = logging.getLogger(__name__)

SCRAPED_PROMPT_TEXT = "Choose an option for scraped news:"


def make_precheck(dedup: DedupIndex):
    """Cheap check on title + link, before any article page is fetched."""

    async def precheck(state: ScrapeState) -> Dict:
        fresh = [item for item in state.get("candidates", []) if not dedup.contains(item.short_fingerprint)]
        return {
            "fresh": fresh,
            "stats": {**state.get("stats", {}), "after_precheck": len(fresh)},
        }

    return precheck


def make_deliver(
    desk: ReviewDesk,
    dedup: DedupIndex,
    item_delay: float,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
):
    async def deliver(state: ScrapeState) -> Dict:
        delivered = []
        errors = list(state.get("errors", []))
        items = state.get("scraped", [])
        for i, item in enumerate(items):
            if dedup.contains(item.fingerprint):
                logger.info(f"Article (checked with full content) already sent: {item.title}")
                continue

            logger.info(f"Sending new article to editors group: {item.title}")
            try:
                token = await desk.post_for_review(
                    item.short_form, scraped_content=item.full_form, prompt_text=SCRAPED_PROMPT_TEXT
                )
            except DeliveryFailed as e:
                logger.error(f"Failed to send scraped news to editors group: {e}")
                errors.append(f"Delivery failed: {item.link}")
            else:
                dedup.mark_delivered(item)
                delivered.append(token)

            if item_delay and i < len(items) - 1:
                await sleep(item_delay)

        return {
            "delivered": delivered,
            "stats": {**state.get("stats", {}), "delivered": len(delivered)},
            "errors": errors,
        }

    return deliver
