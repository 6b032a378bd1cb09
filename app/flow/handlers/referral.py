"""
app/flow/handlers/referral.py

Handles: share button

- Assigns (or reuses) the user's referral code
- Sends the forwardable invitation with the personal deep link
"""

from app.schemas.events import IncomingMessage
from app.services.notification_channel import NotificationChannel
from app.services.order_service import OrderService
from utils.constants import (
    SHARE_INSTRUCTION_MESSAGE,
    SHARE_LINK_MESSAGE,
    WRITE_TO_CONSULTANT_CAPTION,
)
from utils.telegram_utils import build_referral_link
from app.core.logging import get_logger, LogContext

logger = get_logger(__name__)


async def handle_share(
    service: OrderService,
    channel: NotificationChannel,
    message: IncomingMessage,
    bot_username: str,
) -> None:
    with LogContext(client_id=message.user_id):
        code = await service.get_or_create_referral_code(
            message.user_id,
            message.display_name,
            message.username,
        )
        logger.info("Referral link prepared")

        text = SHARE_LINK_MESSAGE.format(
            caption=WRITE_TO_CONSULTANT_CAPTION,
            link=build_referral_link(bot_username, code),
        )
        await channel.send(message.chat_id, text, markdown=True)
        await channel.send(message.chat_id, SHARE_INSTRUCTION_MESSAGE)
