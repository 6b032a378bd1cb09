"""
app/services/order_service.py

Purpose: Consultation order lifecycle

- Creates orders under the one-active-order-per-client rule
- Arbitrates concurrent claims (first claim wins)
- Keeps the staff-channel notification in sync with the order
- Sends follow-up reminders after a claim
- Referral codes, upgrades, completion and document bookkeeping

Store calls are bounded by STORE_TIMEOUT_SECONDS and surface as
TransientStoreError; send/edit calls are bounded by
NOTIFICATION_TIMEOUT_SECONDS and surface as NotificationSendError.
A failed notification never rolls back a committed state change.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, List, Optional, Tuple, TypeVar

from pymongo.errors import ConnectionFailure

from app.core.config import settings
from app.core.exceptions import (
    AlreadyClaimedError,
    DuplicateOrderIdError,
    InvalidTransitionError,
    NotificationSendError,
    OrderNotFoundError,
    SarafanError,
    TransientStoreError,
    UpgradeExistsError,
)
from app.core.logging import get_logger, LogContext
from app.db.order_repository import OrderRepository
from app.db.user_repository import UserRepository
from app.models.order import ACTIVE_STATUSES, Order, OrderStatus, is_active
from app.models.user import User
from app.services.notification_channel import Keyboard, NotificationChannel, Recipient
from app.services.order_message_index import OrderMessageIndex
from utils.constants import (
    CONSULTATION_TAKEN_CLIENT_MESSAGE,
    REFERRER_NOTICE_MESSAGE,
    REMINDER_MESSAGE,
    UNNAMED_HANDLE,
    UNNAMED_USER,
)
from utils.id_utils import generate_id, generate_unique_code
from utils.telegram_utils import (
    build_claimed_order_text,
    build_full_order_text,
    build_new_order_text,
    continue_consultation_keyboard,
    no_keyboard,
    take_order_keyboard,
)
from utils.time_utils import reminder_cutoff

logger = get_logger(__name__)

T = TypeVar("T")

REFERRAL_CODE_STORE_ATTEMPTS = 3


@dataclass
class OrderCreation:
    """
    Result of create_order. `warning` holds the notification failure, if
    any; the order itself is stored either way.
    """
    order_id: str
    order: Order
    warning: Optional[NotificationSendError] = None


def normalize_name(name: Optional[str]) -> str:
    return (name or "").strip() or UNNAMED_USER


def normalize_handle(handle: Optional[str]) -> str:
    return (handle or "").strip().lstrip("@") or UNNAMED_HANDLE


class OrderService:
    """
    Core order logic. Owns the order-message index; holds no other state.
    """

    def __init__(
        self,
        channel: NotificationChannel,
        orders: Optional[OrderRepository] = None,
        users: Optional[UserRepository] = None,
        staff_channel_id: Optional[Recipient] = None,
        store_timeout: Optional[float] = None,
        notification_timeout: Optional[float] = None,
        reminder_after_hours: Optional[int] = None,
        order_id_attempts: Optional[int] = None,
        referral_code_attempts: Optional[int] = None,
    ):
        self.channel = channel
        self.orders = orders or OrderRepository()
        self.users = users or UserRepository()
        self.staff_channel_id = staff_channel_id or settings.STAFF_CHANNEL_ID
        self.store_timeout = store_timeout or settings.STORE_TIMEOUT_SECONDS
        self.notification_timeout = notification_timeout or settings.NOTIFICATION_TIMEOUT_SECONDS
        self.reminder_after_hours = reminder_after_hours or settings.REMINDER_AFTER_HOURS
        self.order_id_attempts = order_id_attempts or settings.ORDER_ID_MAX_ATTEMPTS
        self.referral_code_attempts = referral_code_attempts or settings.REFERRAL_CODE_MAX_ATTEMPTS
        self.message_index = OrderMessageIndex()

    # ------------------------------------------------------------
    # Bounded calls
    # ------------------------------------------------------------

    async def _store(self, call: Awaitable[T], operation: str) -> T:
        try:
            return await asyncio.wait_for(call, timeout=self.store_timeout)
        except asyncio.TimeoutError as e:
            raise TransientStoreError(
                f"Store timed out during {operation}",
                details={"operation": operation}
            ) from e
        except ConnectionFailure as e:
            raise TransientStoreError(
                f"Store unavailable during {operation}: {str(e)}",
                details={"operation": operation}
            ) from e

    async def _notify(self, call: Awaitable[T], operation: str) -> T:
        try:
            return await asyncio.wait_for(call, timeout=self.notification_timeout)
        except asyncio.TimeoutError as e:
            raise NotificationSendError(
                f"Notification timed out during {operation}",
                details={"operation": operation}
            ) from e

    async def _send_best_effort(
        self,
        recipient: Recipient,
        text: str,
        operation: str,
        keyboard: Optional[Keyboard] = None,
        markdown: bool = False,
    ) -> Optional[str]:
        try:
            return await self._notify(
                self.channel.send(recipient, text, keyboard=keyboard, markdown=markdown),
                operation
            )
        except NotificationSendError as e:
            logger.warning(f"{operation} failed: {e.message}")
            return None

    # ------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------

    async def _insert_order(
        self,
        client_id: int,
        status: OrderStatus,
        referrer_id: int = 0,
        referrer_name: str = "",
        upgrade_of: Optional[str] = None,
    ) -> Order:
        """
        Inserts a fresh order, retrying with a new ID on primary key collision.
        """
        last_error: Optional[DuplicateOrderIdError] = None

        for attempt in range(1, self.order_id_attempts + 1):
            order = Order(
                id=generate_id(),
                client_id=client_id,
                status=status,
                active=is_active(status),
                referrer_id=referrer_id or 0,
                referrer_name=referrer_name or "",
                upgrade_of=upgrade_of,
            )
            try:
                return await self._store(self.orders.create(order), "order insert")
            except DuplicateOrderIdError as e:
                logger.warning(f"Order ID collision on attempt {attempt}: {order.id}")
                last_error = e

        raise last_error

    async def create_order(
        self,
        client_id: int,
        client_name: str,
        client_handle: str,
        referrer_id: int = 0,
        referrer_name: str = "",
    ) -> OrderCreation:
        """
        Records a consultation request and announces it to staff.

        Raises:
            ConsultationExistsError: The client already has an active order
            DuplicateOrderIdError: Every generated ID collided
            TransientStoreError: The store failed or timed out
        """
        client_name = normalize_name(client_name)
        client_handle = normalize_handle(client_handle)

        with LogContext(client_id=client_id, referrer_id=referrer_id):
            await self._store(
                self.users.upsert(client_id, client_handle, client_name),
                "user upsert"
            )

            order = await self._insert_order(
                client_id,
                OrderStatus.NEW,
                referrer_id=referrer_id,
                referrer_name=referrer_name,
            )

            with LogContext(order_id=order.id):
                logger.info("Order created")

                repeat_client = False
                try:
                    repeat_client = not await self._store(
                        self.users.mark_demo_used(client_id),
                        "demo flag"
                    )
                except TransientStoreError as e:
                    logger.warning(f"Could not update demo flag: {e.message}")

                warning = None
                try:
                    handle = await self._notify(
                        self.channel.send(
                            self.staff_channel_id,
                            build_new_order_text(order, client_name, client_handle, repeat_client),
                            keyboard=take_order_keyboard(order.id),
                            markdown=True,
                        ),
                        "staff notification"
                    )
                    self.message_index.put(order.id, handle)
                except NotificationSendError as e:
                    logger.error(f"Staff notification failed: {e.message}")
                    warning = e
                else:
                    try:
                        await self._store(
                            self.orders.mark_notification_sent(order.id),
                            "notification flag"
                        )
                        order.notification_sent = True
                    except TransientStoreError as e:
                        logger.warning(f"Could not record staff notification: {e.message}")

                if order.has_referrer:
                    await self._send_best_effort(
                        order.referrer_id,
                        REFERRER_NOTICE_MESSAGE.format(client_name=client_name),
                        "referrer notice"
                    )

        return OrderCreation(order_id=order.id, order=order, warning=warning)

    # ------------------------------------------------------------
    # Claiming
    # ------------------------------------------------------------

    async def _client_profile(self, client_id: int) -> Tuple[str, str]:
        try:
            user: Optional[User] = await self._store(self.users.get(client_id), "user lookup")
        except TransientStoreError as e:
            logger.warning(f"Client lookup failed: {e.message}")
            user = None

        if user is None:
            return UNNAMED_USER, UNNAMED_HANDLE
        return normalize_name(user.display_name), normalize_handle(user.handle)

    async def _render_claimed(self, order: Order) -> None:
        handle = self.message_index.get(order.id)
        if handle is None:
            logger.warning("No staff message known for order; skipping edit")
            return

        client_name, client_handle = await self._client_profile(order.client_id)
        try:
            await self._notify(
                self.channel.edit(
                    self.staff_channel_id,
                    handle,
                    build_claimed_order_text(order, client_name, client_handle),
                    keyboard=no_keyboard(),
                    markdown=True,
                ),
                "staff message edit"
            )
        except NotificationSendError as e:
            logger.error(f"Could not update staff message: {e.message}")

    async def take_order(self, order_id: str, staff_id: int, staff_name: str) -> Order:
        """
        Claims an order for a staff member.

        Exactly one of several concurrent callers wins; the stored status is
        compared and set in one write. Repeating a successful claim by the
        same staff member is a no-op that re-renders the notification.

        Raises:
            OrderNotFoundError: Unknown order ID
            AlreadyClaimedError: The order is no longer new
        """
        staff_name = normalize_name(staff_name)

        with LogContext(order_id=order_id, staff_id=staff_id):
            order = await self._store(self.orders.get(order_id), "order lookup")
            if order is None:
                raise OrderNotFoundError(order_id)

            if order.status == OrderStatus.IN_WORK and order.staff_id == staff_id:
                logger.info("Order already taken by this staff member")
                await self._render_claimed(order)
                return order

            if order.status != OrderStatus.NEW:
                raise AlreadyClaimedError(order_id, order.status.value)

            claimed = await self._store(
                self.orders.claim(order_id, staff_id, staff_name, datetime.utcnow()),
                "order claim"
            )
            if claimed is None:
                logger.info("Lost claim race")
                raise AlreadyClaimedError(order_id)

            logger.info("Order taken", extra={"client_id": claimed.client_id})

            await self._render_claimed(claimed)
            await self._send_best_effort(
                claimed.client_id,
                CONSULTATION_TAKEN_CLIENT_MESSAGE.format(staff_name=staff_name),
                "client confirmation"
            )
            return claimed

    # ------------------------------------------------------------
    # Reminders
    # ------------------------------------------------------------

    async def check_consultation_timeouts(self, now: Optional[datetime] = None) -> List[str]:
        """
        Reminds clients whose order was taken more than REMINDER_AFTER_HOURS ago.

        The reminder flag is set only after a successful send, so a failed
        send stays eligible and a crash in between yields a duplicate.

        Returns:
            IDs of the orders whose reminder was delivered
        """
        cutoff = reminder_cutoff(now, self.reminder_after_hours)
        due = await self._store(self.orders.find_due_for_reminder(cutoff), "reminder query")

        if due:
            logger.info(f"Found {len(due)} orders due for a reminder")

        reminded = []
        for order in due:
            with LogContext(order_id=order.id, client_id=order.client_id):
                try:
                    await self._notify(
                        self.channel.send(
                            order.client_id,
                            REMINDER_MESSAGE,
                            keyboard=continue_consultation_keyboard(),
                        ),
                        "reminder"
                    )
                except NotificationSendError as e:
                    logger.warning(f"Reminder not delivered, will retry next sweep: {e.message}")
                    continue

                reminded.append(order.id)
                # Past the re-render window; the staff message stays as last edited
                self.message_index.delete(order.id)
                try:
                    await self._store(self.orders.mark_reminder_sent(order.id), "reminder flag")
                    logger.info("Reminder sent")
                except TransientStoreError as e:
                    logger.error(f"Reminder sent but not recorded: {e.message}")

        return reminded

    # ------------------------------------------------------------
    # Referrals
    # ------------------------------------------------------------

    async def get_or_create_referral_code(self, chat_id: int, name: str, handle: str) -> str:
        """
        Returns the user's referral code, assigning one on first use.
        Concurrent callers converge on the first stored code.
        """
        with LogContext(client_id=chat_id):
            await self._store(
                self.users.upsert(chat_id, normalize_handle(handle), normalize_name(name)),
                "user upsert"
            )

            user = await self._store(self.users.get(chat_id), "user lookup")
            if user and user.referral_code:
                return user.referral_code

            async def is_taken(code: str) -> bool:
                return await self._store(self.users.referral_code_exists(code), "referral code check")

            for _ in range(REFERRAL_CODE_STORE_ATTEMPTS):
                code = await generate_unique_code(is_taken, max_attempts=self.referral_code_attempts)
                stored = await self._store(
                    self.users.set_referral_code_if_absent(chat_id, code),
                    "referral code assignment"
                )
                if stored:
                    return stored

            raise SarafanError("Could not assign a referral code", code="REFERRAL_CODE_FAILED")

    async def resolve_referrer(self, code: Optional[str], client_id: Optional[int] = None) -> Tuple[int, str]:
        """
        Maps a referral code to (referrer_id, referrer_name).
        Unknown codes and self-referrals resolve to (0, "").
        """
        if not code:
            return 0, ""

        referrer = await self._store(self.users.get_by_referral_code(code), "referral lookup")
        if referrer is None:
            logger.info(f"Unknown referral code: {code}")
            return 0, ""

        if client_id is not None and referrer.chat_id == client_id:
            logger.info("Self-referral ignored", extra={"client_id": client_id})
            return 0, ""

        return referrer.chat_id, normalize_name(referrer.display_name)

    # ------------------------------------------------------------
    # Upgrade & completion
    # ------------------------------------------------------------

    async def request_full_consultation(self, client_id: int, name: str, handle: str) -> Order:
        """
        Moves the client's active order to `full`. Without an active order a
        new order is recorded directly as `full`, unless the latest one
        already is.
        """
        client_name = normalize_name(name)
        client_handle = normalize_handle(handle)

        with LogContext(client_id=client_id):
            await self._store(
                self.users.upsert(client_id, client_handle, client_name),
                "user upsert"
            )

            active = await self._store(self.orders.get_active_for_client(client_id), "active order lookup")
            if active is not None:
                upgraded = await self._store(
                    self.orders.transition_status(active.id, ACTIVE_STATUSES, OrderStatus.FULL),
                    "order upgrade"
                )
                if upgraded is None:
                    current = await self._store(self.orders.get(active.id), "order lookup")
                    if current is not None and current.status == OrderStatus.FULL:
                        return current
                    raise InvalidTransitionError(
                        active.id,
                        current.status.value if current else None,
                        OrderStatus.FULL.value
                    )
                self.message_index.delete(upgraded.id)
            else:
                latest = await self._store(self.orders.latest_for_client(client_id), "order history")
                if latest is not None and latest.status == OrderStatus.FULL:
                    logger.info("Full consultation already requested", extra={"order_id": latest.id})
                    return latest
                # Concurrent presses after the same predecessor record one order
                upgrade_of = latest.id if latest else f"client:{client_id}"
                try:
                    upgraded = await self._insert_order(
                        client_id,
                        OrderStatus.FULL,
                        referrer_id=latest.referrer_id if latest else 0,
                        referrer_name=latest.referrer_name if latest else "",
                        upgrade_of=upgrade_of,
                    )
                except UpgradeExistsError:
                    existing = await self._store(self.orders.find_upgrade(upgrade_of), "upgrade lookup")
                    logger.info("Full consultation recorded concurrently", extra={"order_id": existing.id})
                    return existing

            logger.info("Full consultation requested", extra={"order_id": upgraded.id})

            await self._send_best_effort(
                self.staff_channel_id,
                build_full_order_text(upgraded, client_name, client_handle),
                "staff upgrade notification",
                markdown=True,
            )
            return upgraded

    async def complete_order(self, order_id: str) -> Order:
        """
        Applies the external completion signal (in_work -> complete).
        Completing an already complete order returns it unchanged.
        """
        with LogContext(order_id=order_id):
            order = await self._store(
                self.orders.transition_status(order_id, (OrderStatus.IN_WORK,), OrderStatus.COMPLETE),
                "order completion"
            )
            if order is None:
                current = await self._store(self.orders.get(order_id), "order lookup")
                if current is None:
                    raise OrderNotFoundError(order_id)
                if current.status == OrderStatus.COMPLETE:
                    return current
                raise InvalidTransitionError(order_id, current.status.value, OrderStatus.COMPLETE.value)

            self.message_index.delete(order_id)
            logger.info("Order completed")
            return order

    # ------------------------------------------------------------
    # Documents & bookkeeping
    # ------------------------------------------------------------

    async def get_order(self, order_id: str) -> Order:
        order = await self._store(self.orders.get(order_id), "order lookup")
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    async def attach_document(self, order_id: str, url: str, sent_at: Optional[datetime] = None) -> Order:
        with LogContext(order_id=order_id):
            order = await self._store(
                self.orders.attach_document(order_id, url, sent_at),
                "document attach"
            )
            if order is None:
                raise OrderNotFoundError(order_id)
            logger.info("Document attached")
            return order

    async def list_orders_awaiting_document(self) -> List[Order]:
        return await self._store(self.orders.list_awaiting_document(), "awaiting document query")

    async def mark_button_pressed(self, order_id: str) -> Order:
        order = await self._store(self.orders.mark_button_pressed(order_id), "button flag")
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    async def list_client_orders(self, client_id: int) -> List[Order]:
        return await self._store(self.orders.list_by_client(client_id), "order history")
