"""
app/services/telegram_service.py

Purpose: Telegram transport

- Long-polls the Bot API via python-telegram-bot
- Normalizes updates into IncomingMessage / CallbackEvent queues
- Sends and edits messages (legacy Markdown, inline and reply keyboards)
- Maps transport failures to NotificationSendError
"""

import asyncio
from typing import AsyncIterator, Optional, Union

from telegram import (
    InlineKeyboardButton,
    InlineKeyboardMarkup,
    KeyboardButton,
    ReplyKeyboardMarkup,
    Update,
)
from telegram.constants import ParseMode
from telegram.error import TelegramError
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CallbackQueryHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from app.core.exceptions import NotificationSendError
from app.core.logging import get_logger
from app.schemas.events import CallbackEvent, IncomingMessage
from app.services.notification_channel import Keyboard, NotificationChannel, Recipient

logger = get_logger(__name__)

CHANNEL_ID_PREFIX = "-100"


def normalize_chat_id(recipient: Recipient) -> Union[int, str]:
    """
    Converts a recipient into a Bot API chat_id.

    Numeric channel IDs configured without the "-100" prefix get it
    added; "@channelname" is passed through unchanged.
    """
    if isinstance(recipient, int):
        return recipient

    value = str(recipient).strip()
    if value.startswith("@"):
        return value

    if not value.startswith("-"):
        value = CHANNEL_ID_PREFIX + value
    try:
        return int(value)
    except ValueError:
        raise NotificationSendError(
            f"Invalid chat ID: {recipient}",
            details={"recipient": str(recipient)}
        )


def to_reply_markup(keyboard: Optional[Keyboard]):
    if keyboard is None:
        return None

    if keyboard.inline:
        return InlineKeyboardMarkup([
            [
                InlineKeyboardButton(button.text, callback_data=button.callback_data, url=button.url)
                for button in row
            ]
            for row in keyboard.rows
        ])

    return ReplyKeyboardMarkup(
        [[KeyboardButton(button.text) for button in row] for row in keyboard.rows],
        resize_keyboard=True
    )


class TelegramChannel(NotificationChannel):
    """NotificationChannel backed by a python-telegram-bot Application."""

    def __init__(self, token: str, application: Optional[Application] = None):
        if not token and application is None:
            raise ValueError("Telegram bot token is required")

        self.application = application or ApplicationBuilder().token(token).build()
        self._messages: "asyncio.Queue[Optional[IncomingMessage]]" = asyncio.Queue()
        self._callbacks: "asyncio.Queue[Optional[CallbackEvent]]" = asyncio.Queue()
        self._running = False

        self.application.add_handler(MessageHandler(filters.TEXT, self._on_message))
        self.application.add_handler(CallbackQueryHandler(self._on_callback))

    # ------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------

    async def start(self) -> None:
        if self._running:
            return

        await self.application.initialize()
        await self.application.start()
        await self.application.updater.start_polling(allowed_updates=Update.ALL_TYPES)
        self._running = True

        logger.info(f"✅ Telegram polling started as @{self.application.bot.username}")

    async def stop(self) -> None:
        if not self._running:
            return

        self._running = False
        try:
            await self.application.updater.stop()
            await self.application.stop()
            await self.application.shutdown()
        finally:
            # Unblock consumers
            await self._messages.put(None)
            await self._callbacks.put(None)
        logger.info("Telegram polling stopped")

    # ------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------

    async def _on_message(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        message = update.effective_message
        user = update.effective_user
        if message is None or user is None or not message.text:
            return

        await self._messages.put(IncomingMessage(
            chat_id=message.chat_id,
            user_id=user.id,
            name=user.full_name or "",
            handle=user.username or "",
            text=message.text,
        ))

    async def _on_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        query = update.callback_query
        if query is None:
            return

        try:
            await query.answer()
        except TelegramError as e:
            logger.warning(f"Could not answer callback query: {str(e)}")

        message = query.message
        chat_id = message.chat.id if message is not None else query.from_user.id
        message_id = str(message.message_id) if message is not None else ""

        await self._callbacks.put(CallbackEvent(
            user_id=query.from_user.id,
            chat_id=chat_id,
            name=query.from_user.full_name or "",
            handle=query.from_user.username or "",
            data=query.data or "",
            message_id=message_id,
        ))

    async def incoming_messages(self) -> AsyncIterator[IncomingMessage]:
        while True:
            item = await self._messages.get()
            if item is None:
                return
            yield item

    async def callback_queries(self) -> AsyncIterator[CallbackEvent]:
        while True:
            item = await self._callbacks.get()
            if item is None:
                return
            yield item

    # ------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------

    async def send(
        self,
        recipient: Recipient,
        text: str,
        keyboard: Optional[Keyboard] = None,
        markdown: bool = False,
    ) -> str:
        chat_id = normalize_chat_id(recipient)
        try:
            sent = await self.application.bot.send_message(
                chat_id=chat_id,
                text=text,
                reply_markup=to_reply_markup(keyboard),
                parse_mode=ParseMode.MARKDOWN if markdown else None,
            )
        except TelegramError as e:
            logger.error(f"Telegram send to {chat_id} failed: {str(e)}")
            raise NotificationSendError(
                f"Failed to send message: {str(e)}",
                details={"recipient": str(recipient)}
            ) from e

        return str(sent.message_id)

    async def edit(
        self,
        recipient: Recipient,
        handle: str,
        text: str,
        keyboard: Optional[Keyboard] = None,
        markdown: bool = False,
    ) -> None:
        if keyboard is not None and not keyboard.inline:
            raise NotificationSendError("Only inline keyboards can be attached to an edited message")

        chat_id = normalize_chat_id(recipient)
        try:
            await self.application.bot.edit_message_text(
                text=text,
                chat_id=chat_id,
                message_id=int(handle),
                reply_markup=to_reply_markup(keyboard),
                parse_mode=ParseMode.MARKDOWN if markdown else None,
            )
        except (TelegramError, ValueError) as e:
            logger.error(f"Telegram edit of {chat_id}/{handle} failed: {str(e)}")
            raise NotificationSendError(
                f"Failed to edit message: {str(e)}",
                details={"recipient": str(recipient), "handle": handle}
            ) from e
