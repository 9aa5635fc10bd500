"""Review items and the mutable state the workflow keeps for them."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

# Rows of inline buttons as sent to the Bot API: [[{"text": ..., "callback_data": ...}]]
ButtonLayout = List[List[Dict[str, str]]]


class Stage(str, Enum):
    POSTED = "posted"
    REWRITE_REQUESTED = "rewrite_requested"
    REWRITE_FAILED = "rewrite_failed"
    AWAITING_CUSTOM_PROMPT = "awaiting_custom_prompt"
    PUBLISHING = "publishing"
    # Replaced by a rewritten item; its buttons no longer do anything.
    SUPERSEDED = "superseded"


@dataclass(frozen=True)
class NewsItem:
    title: str
    link: str
    summary: str = ""

    @property
    def short_form(self) -> str:
        return f"📰 Scraped News:\n{self.title}\nLink: {self.link}"

    @property
    def full_form(self) -> str:
        return f"{self.title}\n\n{self.summary}\n\nLink: {self.link}"

    @property
    def short_fingerprint(self) -> str:
        return f"{self.title}\nLink:{self.link}"

    @property
    def fingerprint(self) -> str:
        return self.full_form

    def with_summary(self, summary: str) -> "NewsItem":
        return NewsItem(title=self.title, link=self.link, summary=summary)


@dataclass
class WorkflowContext:
    original_text: str
    button_layout: ButtonLayout
    prompt_text: str = "Choose an option:"
    scraped_content: Optional[str] = None
    rewritten_text: Optional[str] = None
    stage: Stage = Stage.POSTED
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def rewrite_source(self) -> str:
        return self.scraped_content or self.original_text

    @property
    def publish_text(self) -> str:
        return self.rewritten_text or self.original_text

    @property
    def is_live(self) -> bool:
        return self.stage != Stage.SUPERSEDED


@dataclass
class Session:
    preferred_model: Optional[str] = None
    pending_prompt_token: Optional[str] = None
