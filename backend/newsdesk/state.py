from typing import Dict, List, TypedDict

from .models import NewsItem


class ScrapeState(TypedDict):
    run_id: str
    candidates: List[NewsItem]    # Title + link from the index page
    fresh: List[NewsItem]         # Not seen by title + link
    scraped: List[NewsItem]       # With article text
    delivered: List[str]          # Context tokens posted for review
    stats: Dict
    errors: List[str]
