"""In-memory stores: seen fingerprints, review contexts and per-user sessions.

Nothing here survives a restart. Every store guards its dict/set with a
``threading.Lock`` because the scrape scheduler and the update consumer both
write to them.
"""
import copy
import logging
import threading
import uuid
from typing import Dict, Optional, Tuple

from .models import NewsItem, Session, WorkflowContext

logger = logging.getLogger(__name__)

SessionKey = Tuple[int, int]


class DedupIndex:
    """Fingerprints of items already surfaced in the review chat. Grows forever."""

    def __init__(self):
        self._seen = set()
        self._lock = threading.Lock()

    def contains(self, fingerprint: str) -> bool:
        with self._lock:
            return fingerprint in self._seen

    def add(self, fingerprint: str) -> None:
        with self._lock:
            self._seen.add(fingerprint)

    def mark_delivered(self, item: NewsItem) -> None:
        with self._lock:
            self._seen.add(item.fingerprint)
            self._seen.add(item.short_fingerprint)

    def __len__(self) -> int:
        with self._lock:
            return len(self._seen)


class ContextStore:
    """Workflow contexts keyed by a uuid4 token.

    ``get`` hands out copies, so callers must ``update`` to persist a change.
    An unknown token yields ``None``: the item expired or never existed.
    """

    def __init__(self):
        self._items: Dict[str, WorkflowContext] = {}
        self._lock = threading.Lock()

    def create(self, ctx: WorkflowContext) -> str:
        with self._lock:
            token = str(uuid.uuid4())
            while token in self._items:
                token = str(uuid.uuid4())
            self._items[token] = copy.deepcopy(ctx)
        logger.debug(f"Created workflow context {token}")
        return token

    def get(self, token: str) -> Optional[WorkflowContext]:
        with self._lock:
            ctx = self._items.get(token)
            return copy.deepcopy(ctx) if ctx is not None else None

    def update(self, token: str, ctx: WorkflowContext) -> None:
        with self._lock:
            if token not in self._items:
                logger.warning(f"Update for unknown workflow context {token} ignored")
                return
            self._items[token] = copy.deepcopy(ctx)

    def delete(self, token: str) -> None:
        with self._lock:
            self._items.pop(token, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class SessionStore:
    """Per (chat, user) session: sticky rewrite model and the pending-prompt slot."""

    def __init__(self, default_model: str):
        self.default_model = default_model
        self._sessions: Dict[SessionKey, Session] = {}
        self._lock = threading.Lock()

    def _session(self, key: SessionKey) -> Session:
        return self._sessions.setdefault(key, Session())

    def model_for(self, key: SessionKey) -> str:
        with self._lock:
            return self._session(key).preferred_model or self.default_model

    def set_model(self, key: SessionKey, model: str) -> None:
        with self._lock:
            self._session(key).preferred_model = model

    def pending_prompt(self, key: SessionKey) -> Optional[str]:
        with self._lock:
            session = self._sessions.get(key)
            return session.pending_prompt_token if session else None

    def set_pending_prompt(self, key: SessionKey, token: Optional[str]) -> None:
        with self._lock:
            self._session(key).pending_prompt_token = token
