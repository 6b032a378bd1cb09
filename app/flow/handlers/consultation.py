"""
app/flow/handlers/consultation.py

Handles: consultation requests

- /start astro, /astro_consultation, forwarded invitation links
- /start ref_<code> (request attributed to the inviting user)
- "Continue consultation" button (upgrade to a full consultation)
"""

from typing import Optional

from app.core.exceptions import TransientStoreError
from app.schemas.events import CallbackEvent, IncomingMessage
from app.services.notification_channel import NotificationChannel
from app.services.order_service import OrderService
from utils.constants import CONSULTATION_REQUESTED_MESSAGE, FULL_CONSULTATION_REQUESTED_MESSAGE
from app.core.logging import get_logger, LogContext

logger = get_logger(__name__)


async def handle_consultation_request(
    service: OrderService,
    channel: NotificationChannel,
    message: IncomingMessage,
    referral_code: Optional[str] = None,
) -> None:
    """
    Creates the order and acknowledges it to the client.

    A referral code that cannot be resolved falls back to an order
    without a referrer. ConsultationExistsError propagates to the
    dispatcher.
    """
    with LogContext(client_id=message.user_id):
        referrer_id, referrer_name = 0, ""
        if referral_code:
            try:
                referrer_id, referrer_name = await service.resolve_referrer(
                    referral_code,
                    client_id=message.user_id,
                )
            except TransientStoreError as e:
                logger.warning(f"Referrer lookup failed, continuing without referrer: {e.message}")

        creation = await service.create_order(
            message.user_id,
            message.display_name,
            message.username,
            referrer_id=referrer_id,
            referrer_name=referrer_name,
        )
        if creation.warning:
            logger.warning(
                "Order created without staff notification",
                extra={"order_id": creation.order_id}
            )

        await channel.send(message.chat_id, CONSULTATION_REQUESTED_MESSAGE)


async def handle_full_consultation(
    service: OrderService,
    channel: NotificationChannel,
    event: CallbackEvent,
) -> None:
    with LogContext(client_id=event.user_id):
        order = await service.request_full_consultation(
            event.user_id,
            event.display_name,
            event.username,
        )
        logger.info("Full consultation acknowledged", extra={"order_id": order.id})
        await channel.send(event.chat_id, FULL_CONSULTATION_REQUESTED_MESSAGE)
