"""
app/flow/handlers/welcome.py

Handles: entry points

- Plain /start: welcome text and the share button
- Unrecognized text: hint to send /start
"""

from app.schemas.events import IncomingMessage
from app.services.notification_channel import NotificationChannel
from utils.constants import FREE_TEXT_HINT_MESSAGE, SHARE_PROMPT_MESSAGE, WELCOME_MESSAGE
from utils.telegram_utils import share_keyboard
from app.core.logging import get_logger, LogContext

logger = get_logger(__name__)


async def handle_start(channel: NotificationChannel, message: IncomingMessage) -> None:
    """
    Sends the welcome message followed by the reply keyboard with the
    share button.
    """
    with LogContext(client_id=message.user_id):
        logger.info("Processing welcome interaction")

        await channel.send(message.chat_id, WELCOME_MESSAGE)
        await channel.send(message.chat_id, SHARE_PROMPT_MESSAGE, keyboard=share_keyboard())


async def handle_free_text(channel: NotificationChannel, message: IncomingMessage) -> None:
    logger.debug("Unrecognized text", extra={"client_id": message.user_id})
    await channel.send(message.chat_id, FREE_TEXT_HINT_MESSAGE)
