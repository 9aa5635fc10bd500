"""Environment-driven settings for the newsdesk bot."""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union

from dotenv import load_dotenv

BACKEND_DIR = Path(__file__).resolve().parent.parent

DEFAULT_SYSTEM_PROMPT = (
    "You are an editor who helps users turn the content they provide into concise, "
    "effective news bulletins. Analyse the news you are given, pick out the key points "
    "and return a clear, readable bulletin draft. The news is provided as plain text."
)

DEFAULT_READY_PROMPT = """\
Read the whole text and identify the points it emphasises.
Assess the strategic, financial and economic significance of the news.
Summarise the key points in 3 sentences, always keeping numbers and highlighted facts.
Then re-read the article, compare it with your summary and add that comparison.
Do not add a source link if the content does not contain one.
Example format:
[Title]
[content, key points, numbers if any]
[Source](www.Link.com)"""


class ConfigError(ValueError):
    """Raised when a required variable is missing or malformed."""


def _get(env: Dict[str, str], key: str, default: Optional[str] = None) -> Optional[str]:
    value = env.get(key)
    if value is None or value == "":
        return default
    return value


def _required(env: Dict[str, str], key: str, default: Optional[str] = None) -> str:
    value = _get(env, key, default)
    if value is None:
        raise ConfigError(f"Required environment variable {key} is not set")
    return value


def _as_int(key: str, value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value.strip())
    except ValueError:
        raise ConfigError(f"Environment variable {key} must be an integer, got {value!r}")


def _as_float(key: str, value: str) -> float:
    try:
        return float(value.strip())
    except ValueError:
        raise ConfigError(f"Environment variable {key} must be a number, got {value!r}")


def _as_int_list(key: str, value: Optional[str]) -> List[int]:
    if not value:
        return []
    return [_as_int(key, part) for part in value.split(",") if part.strip()]


def _as_chat_list(value: Optional[str]) -> List[Union[int, str]]:
    """Numeric ids become ints; anything else is kept as a username or link."""
    chats: List[Union[int, str]] = []
    for part in (value or "").split(","):
        part = part.strip()
        if not part:
            continue
        try:
            chats.append(int(part))
        except ValueError:
            chats.append(part)
    return chats


@dataclass(frozen=True)
class Settings:
    telegram_bot_token: str
    editors_group_id: int
    news_channel_id: int
    openai_api_key: str
    allowed_user_ids: List[int] = field(default_factory=list)
    listener_user_id: Optional[int] = None
    webhook_secret: str = ""
    backend_url: str = ""
    agent_secret_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    default_model: str = "gpt-4o"
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    ready_prompt: str = DEFAULT_READY_PROMPT
    home_url: str = "https://www.ledgerinsights.com/category/news/"
    scrape_interval_hours: float = 4
    scrape_item_delay: float = 2
    log_level: str = "info"
    # User-account listener relaying posts from source chats
    telegram_api_id: Optional[int] = None
    telegram_api_hash: str = ""
    telegram_phone_number: str = ""
    telegram_session: str = ""
    source_chat_ids: List[Union[int, str]] = field(default_factory=list)

    @property
    def listener_enabled(self) -> bool:
        return bool(self.telegram_api_id and self.telegram_api_hash and self.telegram_phone_number)

    def is_authorized(self, user_id: Optional[int]) -> bool:
        """Allow-listed editors and the listener account may drive the bot."""
        if user_id is None:
            return False
        if user_id in self.allowed_user_ids:
            return True
        return self.listener_user_id is not None and user_id == self.listener_user_id


def load_settings(env: Optional[Dict[str, str]] = None) -> Settings:
    """Build Settings from ``env`` (defaults to os.environ after loading backend/.env)."""
    if env is None:
        load_dotenv(BACKEND_DIR / ".env")
        env = dict(os.environ)

    return Settings(
        telegram_bot_token=_required(env, "TELEGRAM_BOT_TOKEN"),
        editors_group_id=_as_int("EDITORS_GROUP_ID", _required(env, "EDITORS_GROUP_ID")),
        news_channel_id=_as_int("NEWS_CHANNEL_ID", _required(env, "NEWS_CHANNEL_ID")),
        openai_api_key=_required(env, "OPENAI_API_KEY"),
        allowed_user_ids=_as_int_list("ALLOWED_USER_IDS", _get(env, "ALLOWED_USER_IDS")),
        listener_user_id=_as_int("LISTENER_USER_ID", _get(env, "LISTENER_USER_ID")),
        webhook_secret=_get(env, "TELEGRAM_WEBHOOK_SECRET", ""),
        backend_url=_get(env, "BACKEND_URL", "").rstrip("/"),
        agent_secret_key=_get(env, "AGENT_SECRET_KEY", ""),
        openai_base_url=_get(env, "OPENAI_BASE_URL", "https://api.openai.com/v1").rstrip("/"),
        default_model=_get(env, "OPENAI_DEFAULT_MODEL", "gpt-4o"),
        system_prompt=_get(env, "OPENAI_SYSTEM_PROMPT", DEFAULT_SYSTEM_PROMPT),
        ready_prompt=_get(env, "OPENAI_READY_PROMPT", DEFAULT_READY_PROMPT),
        home_url=_get(env, "HOME_URL", "https://www.ledgerinsights.com/category/news/"),
        scrape_interval_hours=_as_float(
            "SCRAPE_INTERVAL_HOURS", _get(env, "SCRAPE_INTERVAL_HOURS", "4")
        ),
        scrape_item_delay=_as_float("SCRAPE_ITEM_DELAY", _get(env, "SCRAPE_ITEM_DELAY", "2")),
        log_level=_get(env, "LOG_LEVEL", "info"),
        telegram_api_id=_as_int("TELEGRAM_API_ID", _get(env, "TELEGRAM_API_ID")),
        telegram_api_hash=_get(env, "TELEGRAM_API_HASH", ""),
        telegram_phone_number=_get(env, "TELEGRAM_PHONE_NUMBER", ""),
        telegram_session=_get(env, "TELEGRAM_SESSION_STRING", ""),
        source_chat_ids=_as_chat_list(_get(env, "SOURCE_CHAT_IDS")),
    )
