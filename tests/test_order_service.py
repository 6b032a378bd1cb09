import asyncio
from datetime import datetime, timedelta

import pytest

from app.core.exceptions import (
    AlreadyClaimedError,
    ConsultationExistsError,
    DuplicateOrderIdError,
    InvalidTransitionError,
    NotificationSendError,
    OrderNotFoundError,
    TransientStoreError,
)
from app.db.order_repository import OrderRepository
from app.models.order import OrderStatus
from app.services.order_service import OrderCreation, OrderService
from utils.constants import CALLBACK_TAKE_ORDER
from utils.id_utils import ID_ALPHABET
from conftest import STAFF_CHANNEL


async def test_create_and_take_order_end_to_end(order_service, order_repository, channel):
    creation = await order_service.create_order(42, "Ann", "ann1", 0, "")

    assert isinstance(creation, OrderCreation)
    assert creation.warning is None
    assert len(creation.order_id) == 8
    assert all(ch in ID_ALPHABET for ch in creation.order_id)

    staff_messages = channel.texts_to(STAFF_CHANNEL)
    assert len(staff_messages) == 1
    assert "Ann" in staff_messages[0]
    assert "ann1" in staff_messages[0]
    button = channel.sent[0].keyboard.rows[0][0]
    assert button.callback_data == f"{CALLBACK_TAKE_ORDER}:{creation.order_id}"

    stored = await order_repository.get(creation.order_id)
    assert stored.status == OrderStatus.NEW
    assert stored.notification_sent is True

    taken = await order_service.take_order(creation.order_id, 99, "Bob")

    assert taken.status == OrderStatus.IN_WORK
    assert taken.staff_id == 99
    assert taken.taken_at is not None

    assert len(channel.edits) == 1
    edit = channel.edits[0]
    assert edit.recipient == STAFF_CHANNEL
    assert edit.handle == channel.sent[0].handle
    assert "Bob" in edit.text
    assert edit.keyboard.is_empty

    client_messages = channel.texts_to(42)
    assert len(client_messages) == 1
    assert "Bob" in client_messages[0]


async def test_concurrent_creates_allow_exactly_one(order_service, order_repository):
    results = await asyncio.gather(
        *[order_service.create_order(7, "Kim", "kim", 0, "") for _ in range(5)],
        return_exceptions=True
    )

    created = [r for r in results if isinstance(r, OrderCreation)]
    rejected = [r for r in results if isinstance(r, ConsultationExistsError)]
    assert len(created) == 1
    assert len(rejected) == 4
    assert await order_repository.count_active(7) == 1


async def test_second_create_rejected_while_active(order_service):
    await order_service.create_order(42, "Ann", "ann1")

    with pytest.raises(ConsultationExistsError):
        await order_service.create_order(42, "Ann", "ann1")


async def test_concurrent_claims_have_single_winner(order_service, order_repository):
    creation = await order_service.create_order(42, "Ann", "ann1")

    results = await asyncio.gather(
        order_service.take_order(creation.order_id, 1, "Alice"),
        order_service.take_order(creation.order_id, 2, "Boris"),
        return_exceptions=True
    )

    winners = [r for r in results if not isinstance(r, Exception)]
    losers = [r for r in results if isinstance(r, AlreadyClaimedError)]
    assert len(winners) == 1
    assert len(losers) == 1

    stored = await order_repository.get(creation.order_id)
    assert stored.status == OrderStatus.IN_WORK
    assert stored.staff_id == winners[0].staff_id


async def test_repeated_claim_by_same_staff_is_idempotent(order_service, channel):
    creation = await order_service.create_order(42, "Ann", "ann1")

    first = await order_service.take_order(creation.order_id, 99, "Bob")
    second = await order_service.take_order(creation.order_id, 99, "Bob")

    assert second.status == OrderStatus.IN_WORK
    assert second.taken_at == first.taken_at
    assert len(channel.edits) == 2
    assert len(channel.texts_to(42)) == 1


async def test_claim_by_other_staff_after_claim_fails(order_service):
    creation = await order_service.create_order(42, "Ann", "ann1")
    await order_service.take_order(creation.order_id, 99, "Bob")

    with pytest.raises(AlreadyClaimedError):
        await order_service.take_order(creation.order_id, 100, "Eve")


async def test_take_unknown_order(order_service):
    with pytest.raises(OrderNotFoundError):
        await order_service.take_order("NOPE1234", 99, "Bob")


async def test_referrer_round_trip(order_service, order_repository, channel):
    creation = await order_service.create_order(42, "Ann", "ann1", referrer_id=7, referrer_name="Rita")

    stored = await order_repository.get(creation.order_id)
    assert stored.referrer_id == 7
    assert stored.referrer_name == "Rita"
    assert "Rita" in channel.texts_to(STAFF_CHANNEL)[0]
    assert len(channel.texts_to(7)) == 1
    assert "Ann" in channel.texts_to(7)[0]


async def test_no_referrer_leaves_fields_empty(order_service, order_repository):
    creation = await order_service.create_order(42, "Ann", "ann1")

    stored = await order_repository.get(creation.order_id)
    assert stored.referrer_id == 0
    assert stored.referrer_name == ""


async def test_empty_names_are_normalized(order_service, channel):
    await order_service.create_order(42, "", "")

    text = channel.texts_to(STAFF_CHANNEL)[0]
    assert "Unnamed User" in text
    assert "unnamed\\_user" in text


async def test_repeat_client_flagged_to_staff(order_service, channel):
    creation = await order_service.create_order(42, "Ann", "ann1")
    await order_service.take_order(creation.order_id, 99, "Bob")
    await order_service.complete_order(creation.order_id)

    await order_service.create_order(42, "Ann", "ann1")

    first, second = channel.texts_to(STAFF_CHANNEL)
    assert "Repeat client" not in first
    assert "Repeat client" in second


async def test_new_order_allowed_after_complete(order_service):
    creation = await order_service.create_order(42, "Ann", "ann1")
    await order_service.take_order(creation.order_id, 99, "Bob")
    completed = await order_service.complete_order(creation.order_id)
    assert completed.status == OrderStatus.COMPLETE
    assert completed.active is False

    again = await order_service.create_order(42, "Ann", "ann1")
    assert again.order_id != creation.order_id


async def test_new_order_allowed_after_full(order_service):
    creation = await order_service.create_order(42, "Ann", "ann1")
    upgraded = await order_service.request_full_consultation(42, "Ann", "ann1")
    assert upgraded.id == creation.order_id
    assert upgraded.status == OrderStatus.FULL

    again = await order_service.create_order(42, "Ann", "ann1")
    assert again.order.status == OrderStatus.NEW


async def test_staff_notification_failure_is_reported_not_raised(order_service, order_repository, channel):
    channel.failing_recipients.add(STAFF_CHANNEL)

    creation = await order_service.create_order(42, "Ann", "ann1")

    assert isinstance(creation.warning, NotificationSendError)
    stored = await order_repository.get(creation.order_id)
    assert stored.status == OrderStatus.NEW
    assert stored.notification_sent is False

    # Claim still works without a known staff message
    taken = await order_service.take_order(creation.order_id, 99, "Bob")
    assert taken.status == OrderStatus.IN_WORK
    assert channel.edits == []


async def test_edit_failure_does_not_roll_back_claim(order_service, order_repository, channel):
    creation = await order_service.create_order(42, "Ann", "ann1")
    channel.fail_edits = True

    await order_service.take_order(creation.order_id, 99, "Bob")

    stored = await order_repository.get(creation.order_id)
    assert stored.status == OrderStatus.IN_WORK
    assert stored.staff_id == 99


async def test_complete_requires_in_work(order_service):
    creation = await order_service.create_order(42, "Ann", "ann1")

    with pytest.raises(InvalidTransitionError):
        await order_service.complete_order(creation.order_id)


async def test_complete_is_idempotent(order_service):
    creation = await order_service.create_order(42, "Ann", "ann1")
    await order_service.take_order(creation.order_id, 99, "Bob")

    first = await order_service.complete_order(creation.order_id)
    second = await order_service.complete_order(creation.order_id)
    assert first.status == second.status == OrderStatus.COMPLETE


async def test_complete_unknown_order(order_service):
    with pytest.raises(OrderNotFoundError):
        await order_service.complete_order("NOPE1234")


async def test_full_consultation_without_active_order(order_service, orders_collection, channel):
    creation = await order_service.create_order(42, "Ann", "ann1")
    await order_service.take_order(creation.order_id, 99, "Bob")
    await order_service.complete_order(creation.order_id)
    orders_collection.sync.update_one(
        {"_id": creation.order_id},
        {"$set": {"created_at": datetime.utcnow() - timedelta(hours=1)}}
    )

    full = await order_service.request_full_consultation(42, "Ann", "ann1")
    again = await order_service.request_full_consultation(42, "Ann", "ann1")

    assert full.id != creation.order_id
    assert full.status == OrderStatus.FULL
    assert again.id == full.id
    history = await order_service.list_client_orders(42)
    assert [o.id for o in history] == [full.id, creation.order_id]
    assert sum("Full consultation" in t for t in channel.texts_to(STAFF_CHANNEL)) == 1


async def test_referral_code_is_stable(order_service, user_repository):
    first = await order_service.get_or_create_referral_code(7, "Rita", "rita")
    second = await order_service.get_or_create_referral_code(7, "Rita", "rita")

    assert first == second
    user = await user_repository.get(7)
    assert user.referral_code == first


async def test_concurrent_referral_code_requests_converge(order_service):
    codes = await asyncio.gather(
        order_service.get_or_create_referral_code(7, "Rita", "rita"),
        order_service.get_or_create_referral_code(7, "Rita", "rita"),
    )
    assert codes[0] == codes[1]


async def test_resolve_referrer(order_service):
    code = await order_service.get_or_create_referral_code(7, "Rita", "rita")

    assert await order_service.resolve_referrer(code, client_id=42) == (7, "Rita")
    assert await order_service.resolve_referrer(code, client_id=7) == (0, "")
    assert await order_service.resolve_referrer("UNKNOWN1", client_id=42) == (0, "")
    assert await order_service.resolve_referrer(None) == (0, "")


async def test_documents_and_button(order_service):
    creation = await order_service.create_order(42, "Ann", "ann1")
    await order_service.take_order(creation.order_id, 99, "Bob")

    waiting = await order_service.list_orders_awaiting_document()
    assert [o.id for o in waiting] == [creation.order_id]

    sent_at = datetime(2026, 10, 19, 12, 30)
    order = await order_service.attach_document(creation.order_id, "https://files/x.pdf", sent_at)
    assert order.document_url == "https://files/x.pdf"
    assert order.status == OrderStatus.IN_WORK
    assert await order_service.list_orders_awaiting_document() == []

    pressed = await order_service.mark_button_pressed(creation.order_id)
    assert pressed.button_pressed is True

    with pytest.raises(OrderNotFoundError):
        await order_service.attach_document("NOPE1234", "https://files/y.pdf")


class SlowOrderRepository(OrderRepository):
    async def get(self, order_id):
        await asyncio.sleep(1)
        return await super().get(order_id)


async def test_store_timeout_surfaces_as_transient_error(channel, orders_collection, user_repository):
    service = OrderService(
        channel,
        orders=SlowOrderRepository(orders_collection),
        users=user_repository,
        staff_channel_id=STAFF_CHANNEL,
        store_timeout=0.01,
    )

    with pytest.raises(TransientStoreError):
        await service.take_order("K3M9Q2ZX", 99, "Bob")


async def test_notification_timeout_becomes_warning(order_service, channel, monkeypatch):
    async def slow_send(*args, **kwargs):
        await asyncio.sleep(1)
        return "1"

    monkeypatch.setattr(channel, "send", slow_send)
    order_service.notification_timeout = 0.01

    creation = await order_service.create_order(42, "Ann", "ann1")
    assert isinstance(creation.warning, NotificationSendError)


async def test_claim_after_restart_still_succeeds(order_service, channel):
    creation = await order_service.create_order(42, "Ann", "ann1")
    order_service.message_index.delete(creation.order_id)

    taken = await order_service.take_order(creation.order_id, 99, "Bob")

    assert taken.status == OrderStatus.IN_WORK
    assert channel.edits == []
    assert timedelta(0) <= datetime.utcnow() - taken.taken_at < timedelta(minutes=1)


async def test_concurrent_full_requests_record_one_order(order_service, order_repository, channel):
    creation = await order_service.create_order(42, "Ann", "ann1")
    await order_service.take_order(creation.order_id, 99, "Bob")
    await order_service.complete_order(creation.order_id)

    first, second = await asyncio.gather(
        order_service.request_full_consultation(42, "Ann", "ann1"),
        order_service.request_full_consultation(42, "Ann", "ann1"),
    )

    assert first.id == second.id
    assert first.upgrade_of == creation.order_id
    history = await order_repository.list_by_client(42)
    assert sum(o.status == OrderStatus.FULL for o in history) == 1
    assert sum("Full consultation" in t for t in channel.texts_to(STAFF_CHANNEL)) == 1


async def test_concurrent_full_requests_for_new_client(order_service, order_repository):
    results = await asyncio.gather(
        *[order_service.request_full_consultation(7, "Rita", "rita") for _ in range(3)]
    )

    assert len({order.id for order in results}) == 1
    assert len(await order_repository.list_by_client(7)) == 1


async def test_order_id_collision_retries_with_fresh_id(order_service, order_repository, monkeypatch):
    taken = await order_service.create_order(1, "Max", "max")
    ids = iter([taken.order_id, "FRESH002"])
    monkeypatch.setattr("app.services.order_service.generate_id", lambda: next(ids))

    creation = await order_service.create_order(42, "Ann", "ann1")

    assert creation.order_id == "FRESH002"
    assert (await order_repository.get("FRESH002")).client_id == 42
    assert (await order_repository.get(taken.order_id)).client_id == 1


async def test_order_id_collisions_exhaust_attempts(order_service, order_repository, channel, monkeypatch):
    taken = await order_service.create_order(1, "Max", "max")
    calls = []

    def always_taken():
        calls.append(taken.order_id)
        return taken.order_id

    monkeypatch.setattr("app.services.order_service.generate_id", always_taken)

    with pytest.raises(DuplicateOrderIdError):
        await order_service.create_order(42, "Ann", "ann1")

    assert len(calls) == order_service.order_id_attempts
    assert await order_repository.count_active(42) == 0
    assert len(channel.texts_to(STAFF_CHANNEL)) == 1
