"""
utils/telegram_utils.py

Purpose: Telegram message builders

- Markdown escaping for user-supplied text
- Staff-channel order notifications
- Inline and reply keyboards
"""

from typing import Optional

from app.models.order import Order
from app.services.notification_channel import Button, Keyboard
from utils.constants import (
    CALLBACK_CONSULTATION_CONTINUE,
    CALLBACK_TAKE_ORDER,
    CONTINUE_CONSULTATION_BUTTON_TEXT,
    REFERRAL_PREFIX,
    SHARE_BUTTON_TEXT,
    STAFF_FULL_ORDER_TITLE,
    STAFF_NEW_ORDER_TITLE,
    STAFF_REPEAT_CLIENT_NOTE,
    TAKE_ORDER_BUTTON_TEXT,
)
from utils.time_utils import format_timestamp

# Parentheses stay unescaped
MARKDOWN_SPECIAL_CHARS = "_*[]~`>#+-=|.!"


def escape_markdown(text: Optional[str]) -> str:
    """
    Escapes Markdown control characters with a backslash.

    Example:
        escape_markdown("A_B*C(D)E.F") -> "A\\_B\\*C(D)E\\.F"
    """
    if not text:
        return ""
    return "".join(f"\\{ch}" if ch in MARKDOWN_SPECIAL_CHARS else ch for ch in text)


def build_callback_data(verb: str, argument: Optional[str] = None) -> str:
    return f"{verb}:{argument}" if argument else verb


def build_referral_link(bot_username: str, code: str) -> str:
    return f"https://t.me/{bot_username}?start={REFERRAL_PREFIX}{code}"


def _order_lines(order: Order, client_name: str, client_handle: str) -> list:
    lines = [
        f"*Order ID:* `{order.id}`",
        f"*Client:* {client_name}",
        f"*Username:* @{escape_markdown(client_handle)}",
        f"*Created:* {format_timestamp(order.created_at)}",
    ]
    if order.referrer_id:
        lines.append(f"*Invited by:* {escape_markdown(order.referrer_name)}")
    return lines


def build_new_order_text(
    order: Order,
    client_name: str,
    client_handle: str,
    repeat_client: bool = False,
) -> str:
    """
    Staff-channel announcement for a freshly created order.
    """
    lines = [STAFF_NEW_ORDER_TITLE, ""]
    lines.extend(_order_lines(order, client_name, client_handle))
    if repeat_client:
        lines.append(STAFF_REPEAT_CLIENT_NOTE)
    return "\n".join(lines)


def build_claimed_order_text(order: Order, client_name: str, client_handle: str) -> str:
    """
    Staff-channel text once an order is taken. Shown without buttons.
    """
    lines = [STAFF_NEW_ORDER_TITLE, ""]
    lines.extend(_order_lines(order, client_name, client_handle))
    lines.append("")
    lines.append(
        f"✅ *Taken by:* {escape_markdown(order.staff_name)} "
        f"at {format_timestamp(order.taken_at)}"
    )
    return "\n".join(lines)


def build_full_order_text(order: Order, client_name: str, client_handle: str) -> str:
    lines = [STAFF_FULL_ORDER_TITLE, ""]
    lines.extend(_order_lines(order, client_name, client_handle))
    if order.staff_name:
        lines.append(f"*Consultant:* {escape_markdown(order.staff_name)}")
    return "\n".join(lines)


def take_order_keyboard(order_id: str) -> Keyboard:
    return Keyboard(rows=[[
        Button(TAKE_ORDER_BUTTON_TEXT, callback_data=build_callback_data(CALLBACK_TAKE_ORDER, order_id))
    ]])


def continue_consultation_keyboard() -> Keyboard:
    return Keyboard(rows=[[
        Button(CONTINUE_CONSULTATION_BUTTON_TEXT, callback_data=CALLBACK_CONSULTATION_CONTINUE)
    ]])


def share_keyboard() -> Keyboard:
    """
    Reply keyboard with the single share button shown after /start.
    """
    return Keyboard(rows=[[Button(SHARE_BUTTON_TEXT)]], inline=False)


def no_keyboard() -> Keyboard:
    return Keyboard(rows=[])
