"""
app/api/orders.py

Purpose: Document collaborator endpoints

- Lists in-work orders still waiting for a document
- Receives document-ready and completion callbacks
- Records the "buy" button press
- Order lookup

Protected by the X-API-Key header when API_KEY is configured.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, Request

from app.core.config import settings
from app.core.exceptions import AuthenticationError
from app.core.logging import get_logger
from app.schemas.orders import DocumentReadyRequest, OrderListResponse, OrderResponse
from app.services.order_service import OrderService

logger = get_logger(__name__)


async def verify_api_key(x_api_key: Optional[str] = Header(default=None)):
    if settings.API_KEY and x_api_key != settings.API_KEY:
        logger.warning("Rejected request with invalid API key")
        raise AuthenticationError("Invalid or missing API key")


def get_order_service(request: Request) -> OrderService:
    return request.app.state.order_service


router = APIRouter(prefix="/orders", dependencies=[Depends(verify_api_key)])


@router.get("/awaiting-document", response_model=OrderListResponse)
async def list_awaiting_document(service: OrderService = Depends(get_order_service)):
    """
    Poll entry for the document generator: in-work orders without a document.
    """
    orders = await service.list_orders_awaiting_document()
    return OrderListResponse(
        orders=[OrderResponse.from_order(order) for order in orders],
        count=len(orders)
    )


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str, service: OrderService = Depends(get_order_service)):
    order = await service.get_order(order_id)
    return OrderResponse.from_order(order)


@router.post("/{order_id}/document", response_model=OrderResponse)
async def document_ready(
    order_id: str,
    payload: DocumentReadyRequest,
    service: OrderService = Depends(get_order_service),
):
    """
    Stores the document URL and delivery time. Does not change the status.
    """
    logger.info("📄 Document ready callback", extra={"order_id": order_id})
    order = await service.attach_document(order_id, payload.url, payload.sent_at)
    return OrderResponse.from_order(order)


@router.post("/{order_id}/complete", response_model=OrderResponse)
async def complete_order(order_id: str, service: OrderService = Depends(get_order_service)):
    order = await service.complete_order(order_id)
    return OrderResponse.from_order(order)


@router.post("/{order_id}/button-pressed", response_model=OrderResponse)
async def button_pressed(order_id: str, service: OrderService = Depends(get_order_service)):
    order = await service.mark_button_pressed(order_id)
    return OrderResponse.from_order(order)
