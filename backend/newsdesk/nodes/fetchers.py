"""Index page and article scraping: aiohttp for transport, BeautifulSoup for extraction."""
import logging
from typing import Awaitable, Callable, Dict, List, Optional

import aiohttp
from bs4 import BeautifulSoup

from ..models import NewsItem
from ..state import ScrapeState

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/121.0 Safari/537.36 NewsDesk/1.0"
)

INDEX_TIMEOUT = 20
ARTICLE_TIMEOUT = 15

ARTICLE_SELECTOR = "article.type-post"
TITLE_SELECTOR = "h2.entry-title a"
CONTENT_SELECTORS = [
    "div.entry-content",
    "article .post-content",
    "div.td-post-content",
    "div.article-content",
]
_BOILERPLATE = ["Follow @LedgerInsightsCopyright", "Learn more about"]
_MIN_PARAGRAPH = 30

FetchHtml = Callable[[str, float], Awaitable[str]]


async def fetch_html(url: str, timeout: float) -> str:
    headers = {"User-Agent": USER_AGENT, "Accept": "text/html,application/xhtml+xml,*/*"}
    async with aiohttp.ClientSession(headers=headers) as session:
        async with session.get(url, timeout=aiohttp.ClientTimeout(total=timeout)) as resp:
            resp.raise_for_status()
            return await resp.text(errors="replace")


def parse_index(html: str) -> List[NewsItem]:
    soup = BeautifulSoup(html, "html.parser")
    items = []
    for article in soup.select(ARTICLE_SELECTOR):
        anchor = article.select_one(TITLE_SELECTOR)
        title = anchor.get_text().strip() if anchor else ""
        link = (anchor.get("href") or "").strip() if anchor else ""
        if not title or not link:
            logger.warning("Could not extract title or link from an article element, skipping")
            continue
        items.append(NewsItem(title=title, link=link))
    return items


def _keep(text: str) -> bool:
    return len(text) > _MIN_PARAGRAPH and not any(b in text for b in _BOILERPLATE)


def extract_article_text(html: str) -> str:
    soup = BeautifulSoup(html, "html.parser")
    container = next((c for c in (soup.select_one(s) for s in CONTENT_SELECTORS) if c is not None), None)
    if container is None:
        logger.warning("No main content container found, falling back to all <p> tags")
        container = soup

    paragraphs = [p.get_text().strip() for p in container.find_all("p")]
    return "\n\n".join(p for p in paragraphs if _keep(p))


async def scrape_article(url: str, fetch: FetchHtml = fetch_html) -> Optional[str]:
    try:
        html = await fetch(url, ARTICLE_TIMEOUT)
    except Exception as e:
        logger.error(f"Error scraping article content from {url}: {e}")
        return None
    return extract_article_text(html) or None


def make_fetch_index(home_url: str, fetch: FetchHtml = fetch_html):
    async def fetch_index(state: ScrapeState) -> Dict:
        errors = list(state.get("errors", []))
        try:
            html = await fetch(home_url, INDEX_TIMEOUT)
            candidates = parse_index(html)
        except Exception as e:
            logger.error(f"Failed to fetch index page {home_url}: {e}")
            errors.append(f"Index page error: {e}")
            candidates = []

        logger.info(f"Found {len(candidates)} potential articles on {home_url}")
        return {
            "candidates": candidates,
            "stats": {**state.get("stats", {}), "candidates": len(candidates)},
            "errors": errors,
        }

    return fetch_index


def make_scrape_articles(fetch: FetchHtml = fetch_html):
    async def scrape_articles(state: ScrapeState) -> Dict:
        scraped = []
        errors = list(state.get("errors", []))
        for item in state.get("fresh", []):
            logger.info(f"New article found: {item.title}. Scraping content...")
            summary = await scrape_article(item.link, fetch)
            if not summary:
                logger.warning(f"Could not scrape content for: {item.title} ({item.link}), skipping")
                errors.append(f"No content: {item.link}")
                continue
            scraped.append(item.with_summary(summary))
        return {
            "scraped": scraped,
            "stats": {**state.get("stats", {}), "scraped": len(scraped)},
            "errors": errors,
        }

    return scrape_articles
