"""Inline button payloads: ``<action>:<data>`` with data either a literal or a 36-char token."""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Union

TOKEN_LENGTH = 36
SEPARATOR = ":"
INVALID_TOKEN = "invalid context token"

# Literal argument -> model id for the sticky default-model keyboard.
MODEL_CHOICES: Dict[str, str] = {
    "4o": "gpt-4o",
    "3.5t": "gpt-3.5-turbo",
}
MODEL_CANCEL = "cancel"


class Action(str, Enum):
    REWRITE = "gpt"
    PUBLISH = "chn"
    NEW_PROMPT = "prm"
    CANCEL_PROMPT = "cnp"
    SELECT_MODEL = "mdl"
    START_SCRAPE = "scr"
    SUPPORT = "sup"


TOKEN_ACTIONS = frozenset({Action.REWRITE, Action.PUBLISH, Action.NEW_PROMPT, Action.CANCEL_PROMPT})

LITERAL_ARGS = {
    Action.SELECT_MODEL: frozenset(MODEL_CHOICES) | {MODEL_CANCEL},
    Action.START_SCRAPE: frozenset({"start"}),
    Action.SUPPORT: frozenset({"info"}),
}


@dataclass(frozen=True)
class CallbackAction:
    action: Action
    data: str

    @property
    def needs_context(self) -> bool:
        return self.action in TOKEN_ACTIONS

    @property
    def token(self) -> Optional[str]:
        return self.data if self.needs_context else None


@dataclass(frozen=True)
class MalformedPayload:
    raw: str
    reason: str


def encode(action: Action, data: str) -> str:
    return f"{action.value}{SEPARATOR}{data}"


def parse(raw: Optional[str]) -> Union[CallbackAction, MalformedPayload]:
    """Decode a callback payload once, before anything looks at the stores."""
    if not raw or SEPARATOR not in raw:
        return MalformedPayload(raw or "", "missing delimiter")

    tag, data = raw.split(SEPARATOR, 1)
    if not tag or not data:
        return MalformedPayload(raw, "empty action or data")

    try:
        action = Action(tag)
    except ValueError:
        return MalformedPayload(raw, f"unknown action {tag!r}")

    if action in TOKEN_ACTIONS:
        if len(data) != TOKEN_LENGTH:
            return MalformedPayload(raw, INVALID_TOKEN)
    elif data not in LITERAL_ARGS[action]:
        return MalformedPayload(raw, f"unknown argument {data!r} for {tag!r}")

    return CallbackAction(action, data)
