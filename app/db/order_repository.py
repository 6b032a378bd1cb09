"""
app/db/order_repository.py

Purpose: Order persistence

- Atomic creation under the one-active-order rule
- Compare-and-set status transitions
- Reminder, document and button bookkeeping
"""

from datetime import datetime
from typing import Iterable, List, Optional, Dict, Any

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from app.core.exceptions import ConsultationExistsError, DuplicateOrderIdError, UpgradeExistsError
from app.core.logging import get_logger
from app.db.mongo import get_orders_collection
from app.models.order import ACTIVE_STATUSES, ALLOWED_TRANSITIONS, Order, OrderStatus, is_active

logger = get_logger(__name__)


class OrderRepository:
    """
    Access to the `orders` collection.

    The collection can be injected; otherwise it is resolved on every
    call so the repository can be built before the database connects.
    """

    def __init__(self, collection=None):
        self._collection = collection

    @property
    def collection(self):
        if self._collection is not None:
            return self._collection
        return get_orders_collection()

    async def count_active(self, client_id: int) -> int:
        return await self.collection.count_documents(
            {"client_id": client_id, "status": {"$in": [s.value for s in ACTIVE_STATUSES]}}
        )

    async def create(self, order: Order) -> Order:
        """
        Inserts a new order.

        Raises:
            ConsultationExistsError: The client already has an active order
            DuplicateOrderIdError: The order ID is taken
            UpgradeExistsError: A full order was already recorded after the same predecessor
        """
        if order.active and await self.count_active(order.client_id) > 0:
            raise ConsultationExistsError(order.client_id)

        try:
            await self.collection.insert_one(order.to_document())
        except DuplicateKeyError as e:
            # Either a concurrent insert won the active slot or the ID collided
            if order.active and await self.count_active(order.client_id) > 0:
                raise ConsultationExistsError(order.client_id) from e
            if order.upgrade_of and await self.find_upgrade(order.upgrade_of) is not None:
                raise UpgradeExistsError(order.client_id, order.upgrade_of) from e
            raise DuplicateOrderIdError(order.id) from e

        logger.info(
            "Order stored",
            extra={"order_id": order.id, "client_id": order.client_id}
        )
        return order

    async def find_upgrade(self, upgrade_of: str) -> Optional[Order]:
        doc = await self.collection.find_one({"upgrade_of": upgrade_of})
        return Order.from_document(doc) if doc else None

    async def get(self, order_id: str) -> Optional[Order]:
        doc = await self.collection.find_one({"_id": order_id})
        return Order.from_document(doc) if doc else None

    async def transition_status(
        self,
        order_id: str,
        expected: Iterable[OrderStatus],
        new_status: OrderStatus,
        extra: Optional[Dict[str, Any]] = None,
    ) -> Optional[Order]:
        """
        Single conditional write: applies `new_status` only while the stored
        status is one of `expected`.

        Returns:
            The updated order, or None when no document matched

        Raises:
            ValueError: If `expected` names a status that may not move to `new_status`
        """
        expected = tuple(expected)
        allowed = ALLOWED_TRANSITIONS.get(new_status, ())
        if not set(expected) <= set(allowed):
            raise ValueError(f"Transition to {new_status.value} not allowed from {expected}")

        update = {"status": new_status.value, "active": is_active(new_status)}
        if extra:
            update.update(extra)

        doc = await self.collection.find_one_and_update(
            {"_id": order_id, "status": {"$in": [s.value for s in expected]}},
            {"$set": update},
            return_document=ReturnDocument.AFTER,
        )
        return Order.from_document(doc) if doc else None

    async def claim(
        self,
        order_id: str,
        staff_id: int,
        staff_name: str,
        taken_at: Optional[datetime] = None,
    ) -> Optional[Order]:
        return await self.transition_status(
            order_id,
            (OrderStatus.NEW,),
            OrderStatus.IN_WORK,
            {
                "taken_at": taken_at or datetime.utcnow(),
                "staff_id": staff_id,
                "staff_name": staff_name,
            },
        )

    async def find_due_for_reminder(self, older_than: datetime) -> List[Order]:
        cursor = self.collection.find({
            "status": OrderStatus.IN_WORK.value,
            "taken_at": {"$lt": older_than},
            "reminder_sent": {"$ne": True},
        }).sort("taken_at", 1)
        return [Order.from_document(doc) for doc in await cursor.to_list(length=None)]

    async def _set_flag(self, order_id: str, field: str) -> bool:
        result = await self.collection.update_one(
            {"_id": order_id, field: {"$ne": True}},
            {"$set": {field: True}}
        )
        return result.modified_count > 0

    async def mark_reminder_sent(self, order_id: str) -> bool:
        return await self._set_flag(order_id, "reminder_sent")

    async def mark_notification_sent(self, order_id: str) -> bool:
        return await self._set_flag(order_id, "notification_sent")

    async def mark_button_pressed(self, order_id: str) -> Optional[Order]:
        doc = await self.collection.find_one_and_update(
            {"_id": order_id},
            {"$set": {"button_pressed": True}},
            return_document=ReturnDocument.AFTER,
        )
        return Order.from_document(doc) if doc else None

    async def attach_document(
        self,
        order_id: str,
        url: str,
        sent_at: Optional[datetime] = None,
    ) -> Optional[Order]:
        doc = await self.collection.find_one_and_update(
            {"_id": order_id},
            {"$set": {"document_url": url, "document_sent_at": sent_at or datetime.utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        return Order.from_document(doc) if doc else None

    async def list_awaiting_document(self) -> List[Order]:
        """In-work orders that have no document URL yet, oldest claim first."""
        cursor = self.collection.find({
            "status": OrderStatus.IN_WORK.value,
            "document_url": None,
        }).sort("taken_at", 1)
        return [Order.from_document(doc) for doc in await cursor.to_list(length=None)]

    async def list_by_client(self, client_id: int, limit: Optional[int] = None) -> List[Order]:
        cursor = self.collection.find({"client_id": client_id}).sort("created_at", -1)
        if limit:
            cursor = cursor.limit(limit)
        return [Order.from_document(doc) for doc in await cursor.to_list(length=None)]

    async def latest_for_client(self, client_id: int) -> Optional[Order]:
        orders = await self.list_by_client(client_id, limit=1)
        return orders[0] if orders else None

    async def get_active_for_client(self, client_id: int) -> Optional[Order]:
        doc = await self.collection.find_one(
            {"client_id": client_id, "status": {"$in": [s.value for s in ACTIVE_STATUSES]}}
        )
        return Order.from_document(doc) if doc else None
