"""
app/flow/handlers/claim.py

Handles: "Take order" button in the staff channel
"""

from app.schemas.events import CallbackEvent
from app.services.order_service import OrderService
from app.core.logging import get_logger

logger = get_logger(__name__)


async def handle_take_order(service: OrderService, event: CallbackEvent, order_id: str) -> None:
    # The staff message edit and the client confirmation happen in the service
    order = await service.take_order(order_id, event.user_id, event.display_name)
    logger.info(
        "Claim handled",
        extra={"order_id": order.id, "staff_id": event.user_id}
    )
