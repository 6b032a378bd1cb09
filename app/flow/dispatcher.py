"""
app/flow/dispatcher.py

Purpose: Central update dispatcher

- Consumes inbound messages and button callbacks from the channel
- Routes each to the handler for its intent
- Turns order errors into user-facing replies; never stops a loop
"""

import asyncio
from typing import Optional

from app.core.config import settings
from app.core.exceptions import (
    AlreadyClaimedError,
    ConsultationExistsError,
    OrderNotFoundError,
)
from app.core.logging import get_logger
from app.flow.intents import CallbackVerb, Intent, classify_text, parse_callback
from app.flow.handlers.claim import handle_take_order
from app.flow.handlers.consultation import handle_consultation_request, handle_full_consultation
from app.flow.handlers.referral import handle_share
from app.flow.handlers.welcome import handle_free_text, handle_start
from app.schemas.events import CallbackEvent, IncomingMessage
from app.services.notification_channel import NotificationChannel, Recipient
from app.services.order_service import OrderService
from utils.constants import (
    CONSULTATION_EXISTS_MESSAGE,
    GENERIC_ERROR_MESSAGE,
    STAFF_ALREADY_CLAIMED_MESSAGE,
    STAFF_ORDER_NOT_FOUND_MESSAGE,
)

logger = get_logger(__name__)


class UpdateDispatcher:
    """
    Routes chat events to handlers. Holds no persistence logic.
    """

    def __init__(
        self,
        service: OrderService,
        channel: NotificationChannel,
        bot_username: Optional[str] = None,
    ):
        self.service = service
        self.channel = channel
        self.bot_username = bot_username or settings.BOT_USERNAME

    async def run(self) -> None:
        """Runs both consumption loops until the channel streams end."""
        await asyncio.gather(self.run_messages(), self.run_callbacks())

    async def run_messages(self) -> None:
        logger.info("Message loop started")
        async for message in self.channel.incoming_messages():
            try:
                await self.dispatch_message(message)
            except Exception as e:
                logger.error(f"❌ Message loop error: {e}", exc_info=True)
        logger.info("Message loop stopped")

    async def run_callbacks(self) -> None:
        logger.info("Callback loop started")
        async for event in self.channel.callback_queries():
            try:
                await self.dispatch_callback(event)
            except Exception as e:
                logger.error(f"❌ Callback loop error: {e}", exc_info=True)
        logger.info("Callback loop stopped")

    async def dispatch_message(self, message: IncomingMessage) -> None:
        parsed = classify_text(message.text)
        logger.info(
            f"📨 Message intent: {parsed.intent.value}",
            extra={"client_id": message.user_id}
        )

        try:
            if parsed.intent == Intent.START_REFERRAL:
                await handle_consultation_request(
                    self.service, self.channel, message, referral_code=parsed.argument
                )
            elif parsed.intent == Intent.CONSULTATION:
                await handle_consultation_request(self.service, self.channel, message)
            elif parsed.intent == Intent.START:
                await handle_start(self.channel, message)
            elif parsed.intent == Intent.SHARE:
                await handle_share(self.service, self.channel, message, self.bot_username)
            else:
                await handle_free_text(self.channel, message)
        except Exception as e:
            await self._reply_with_error(message.chat_id, e)

    async def dispatch_callback(self, event: CallbackEvent) -> None:
        parsed = parse_callback(event.data)
        logger.info(
            f"🔘 Callback: {parsed.raw}",
            extra={"client_id": event.user_id}
        )

        try:
            if parsed.verb == CallbackVerb.TAKE_ORDER and parsed.argument:
                await handle_take_order(self.service, event, parsed.argument)
            elif parsed.verb == CallbackVerb.CONSULTATION_CONTINUE:
                await handle_full_consultation(self.service, self.channel, event)
            else:
                logger.warning(f"Unknown callback data: {parsed.raw!r}")
        except Exception as e:
            # Errors go to the presser's private chat, not the staff channel
            await self._reply_with_error(event.user_id, e)

    async def _reply_with_error(self, recipient: Recipient, error: Exception) -> None:
        if isinstance(error, ConsultationExistsError):
            logger.info("Consultation already exists", extra={"client_id": error.client_id})
            text = CONSULTATION_EXISTS_MESSAGE
        elif isinstance(error, AlreadyClaimedError):
            logger.warning(
                f"Order already claimed (status={error.status})",
                extra={"order_id": error.order_id}
            )
            text = STAFF_ALREADY_CLAIMED_MESSAGE.format(order_id=error.order_id)
        elif isinstance(error, OrderNotFoundError):
            logger.warning("Order not found", extra={"order_id": error.order_id})
            text = STAFF_ORDER_NOT_FOUND_MESSAGE.format(order_id=error.order_id)
        else:
            logger.error(f"❌ Dispatcher error: {error}", exc_info=error)
            text = GENERIC_ERROR_MESSAGE

        try:
            await self.channel.send(recipient, text)
        except Exception as e:
            logger.error(f"Could not deliver error reply to {recipient}: {e}")
