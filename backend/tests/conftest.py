"""Shared fakes: an in-process Bot API, a scripted rewrite call and test settings."""
import itertools
from typing import Dict, List, Optional

import pytest

from newsdesk.config import Settings
from newsdesk.dispatcher import Dispatcher
from newsdesk.services import build_services
from newsdesk.telegram_handler import TelegramError

EDITORS_GROUP = -100111
NEWS_CHANNEL = -100222
EDITOR = 501
OTHER_EDITOR = 502
LISTENER = 777
STRANGER = 999


def make_settings(**overrides) -> Settings:
    values = dict(
        telegram_bot_token="123:abc",
        editors_group_id=EDITORS_GROUP,
        news_channel_id=NEWS_CHANNEL,
        openai_api_key="sk-test",
        allowed_user_ids=[EDITOR, OTHER_EDITOR],
        listener_user_id=LISTENER,
        home_url="https://news.example.com/category/news/",
        scrape_item_delay=0,
    )
    values.update(overrides)
    return Settings(**values)


class FakeTelegramAPI:
    """Records every Bot API call; ``fail(method, *errors)`` queues failures."""

    def __init__(self):
        self.calls: List[tuple] = []
        self.failures: Dict[str, List[Exception]] = {}
        self._ids = itertools.count(1000)

    def fail(self, method: str, *errors: Exception) -> None:
        self.failures.setdefault(method, []).extend(errors)

    def _record(self, method: str, **kwargs) -> None:
        self.calls.append((method, kwargs))
        pending = self.failures.get(method)
        if pending:
            raise pending.pop(0)

    def of(self, method: str) -> List[dict]:
        return [kwargs for name, kwargs in self.calls if name == method]

    async def send_message(self, chat_id, text, parse_mode=None, reply_markup=None):
        message_id = next(self._ids)
        self._record("sendMessage", chat_id=chat_id, text=text, parse_mode=parse_mode, reply_markup=reply_markup,
                     message_id=message_id)
        return {"message_id": message_id, "chat": {"id": chat_id}, "text": text}

    async def edit_message_text(self, chat_id, message_id, text, reply_markup=None):
        self._record("editMessageText", chat_id=chat_id, message_id=message_id, text=text,
                     reply_markup=reply_markup)
        return True

    async def edit_message_reply_markup(self, chat_id, message_id, reply_markup):
        self._record("editMessageReplyMarkup", chat_id=chat_id, message_id=message_id, reply_markup=reply_markup)
        return True

    async def answer_callback_query(self, callback_query_id, text=None, show_alert=False):
        self._record("answerCallbackQuery", callback_query_id=callback_query_id, text=text, show_alert=show_alert)
        return True

    async def get_me(self):
        self._record("getMe")
        return {"id": 42, "is_bot": True, "username": "NewsdeskBot"}

    async def set_my_commands(self, commands):
        self._record("setMyCommands", commands=commands)
        return True

    async def setup_webhook(self, webhook_url, secret_token=""):
        self._record("setWebhook", url=webhook_url, secret_token=secret_token)
        return True

    async def delete_webhook(self):
        self._record("deleteWebhook")
        return True

    async def aclose(self):
        pass


class FakeSummarizer:
    def __init__(self, result: Optional[str] = "Rewritten item"):
        self.result = result
        self.calls: List[tuple] = []

    async def summarize(self, content, prompt, model):
        self.calls.append((content, prompt, model))
        return self.result


class RaisingSummarizer(FakeSummarizer):
    async def summarize(self, content, prompt, model):
        self.calls.append((content, prompt, model))
        raise RuntimeError("LLM client blew up")


def rate_limited(retry_after: float = 5) -> TelegramError:
    return TelegramError(429, "Too Many Requests: retry later", retry_after)


async def no_sleep(seconds: float) -> None:
    return None


def make_services(api=None, summarizer=None, fetch=None, **setting_overrides):
    api = api or FakeTelegramAPI()
    kwargs = {}
    if fetch is not None:
        kwargs["fetch"] = fetch
    return build_services(
        make_settings(**setting_overrides),
        api=api,
        dispatcher=Dispatcher(api, sleep=no_sleep),
        summarizer=summarizer or FakeSummarizer(),
        sleep=no_sleep,
        **kwargs,
    )


_query_ids = itertools.count(1)


def callback_update(data: str, message_id: int, user_id: int = EDITOR, chat_id: int = EDITORS_GROUP) -> dict:
    return {
        "update_id": next(_query_ids),
        "callback_query": {
            "id": f"q{next(_query_ids)}",
            "from": {"id": user_id},
            "message": {"message_id": message_id, "chat": {"id": chat_id, "type": "supergroup"}},
            "data": data,
        },
    }


def message_update(text: str, user_id: int = EDITOR, chat_id: int = EDITORS_GROUP, chat_type: str = "supergroup"):
    return {
        "update_id": next(_query_ids),
        "message": {
            "message_id": next(_query_ids),
            "from": {"id": user_id},
            "chat": {"id": chat_id, "type": chat_type},
            "text": text,
        },
    }


def keyboard_messages(api: FakeTelegramAPI) -> List[dict]:
    return [c for c in api.of("sendMessage") if c["reply_markup"]]


@pytest.fixture
def api():
    return FakeTelegramAPI()


@pytest.fixture
def summarizer():
    return FakeSummarizer()
