"""
app/flow/intents.py

Purpose: Maps raw chat input to intents

- Text commands and button captions -> Intent
- Callback data ("verb:argument") -> CallbackVerb
- Single source of truth for routing
"""

from enum import Enum
from dataclasses import dataclass
from typing import Optional

from utils.constants import (
    CALLBACK_CONSULTATION_CONTINUE,
    CALLBACK_TAKE_ORDER,
    CONSULTATION_START_PARAM,
    REFERRAL_PREFIX,
    SHARE_BUTTON_TEXT,
    WRITE_TO_CONSULTANT_CAPTION,
)

START_COMMAND = "/start"
CONSULTATION_COMMAND = "/astro_consultation"


class Intent(str, Enum):
    START_REFERRAL = "start_referral"
    CONSULTATION = "consultation"
    START = "start"
    SHARE = "share"
    FREE_TEXT = "free_text"


class CallbackVerb(str, Enum):
    TAKE_ORDER = CALLBACK_TAKE_ORDER
    CONSULTATION_CONTINUE = CALLBACK_CONSULTATION_CONTINUE
    UNKNOWN = "unknown"


@dataclass
class ParsedIntent:
    intent: Intent
    argument: Optional[str] = None


@dataclass
class ParsedCallback:
    verb: CallbackVerb
    argument: Optional[str] = None
    raw: str = ""


def _split_command(text: str):
    parts = text.split(maxsplit=1)
    if not parts:
        return "", ""
    # "/start@InviteAstroBot" in group chats
    command = parts[0].split("@", 1)[0]
    argument = parts[1].strip() if len(parts) > 1 else ""
    return command, argument


def classify_text(text: Optional[str]) -> ParsedIntent:
    """
    Classifies an incoming text message.

    Order matters: a referral deep link wins over a plain /start, and the
    consultant link caption is matched anywhere in the text so forwarded
    invitations work.
    """
    stripped = (text or "").strip()
    command, argument = _split_command(stripped)

    if command == START_COMMAND:
        if argument.startswith(REFERRAL_PREFIX) and len(argument) > len(REFERRAL_PREFIX):
            return ParsedIntent(Intent.START_REFERRAL, argument[len(REFERRAL_PREFIX):])
        if argument == CONSULTATION_START_PARAM:
            return ParsedIntent(Intent.CONSULTATION)

    if command == CONSULTATION_COMMAND:
        return ParsedIntent(Intent.CONSULTATION)

    if WRITE_TO_CONSULTANT_CAPTION in stripped:
        return ParsedIntent(Intent.CONSULTATION)

    if command == START_COMMAND:
        return ParsedIntent(Intent.START)

    if stripped == SHARE_BUTTON_TEXT:
        return ParsedIntent(Intent.SHARE)

    return ParsedIntent(Intent.FREE_TEXT)


def parse_callback(data: Optional[str]) -> ParsedCallback:
    raw = data or ""
    verb, _, argument = raw.partition(":")

    try:
        parsed_verb = CallbackVerb(verb)
    except ValueError:
        parsed_verb = CallbackVerb.UNKNOWN

    return ParsedCallback(parsed_verb, argument or None, raw)
