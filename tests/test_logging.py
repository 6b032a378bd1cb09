import json
import logging

import pytest

from app.core.logging import DevelopmentFormatter, LogContext, StructuredFormatter, get_logger
from app.flow.dispatcher import UpdateDispatcher
from app.schemas.events import IncomingMessage
from utils.constants import CONSULTATION_REQUESTED_MESSAGE, GENERIC_ERROR_MESSAGE

logger = get_logger("tests")


def test_extra_inside_matching_context_does_not_raise(caplog):
    with LogContext(client_id=42, order_id="K3M9Q2ZX"):
        logger.info("Order stored", extra={"client_id": 7})

    record = caplog.records[-1]
    assert record.client_id == 7
    assert record.log_context == {"client_id": 42, "order_id": "K3M9Q2ZX"}


def test_formatters_merge_context_with_extra(caplog):
    with LogContext(client_id=42, order_id="K3M9Q2ZX"):
        logger.info("Order stored", extra={"client_id": 7})
    record = caplog.records[-1]

    data = json.loads(StructuredFormatter().format(record))
    assert data["client_id"] == 7
    assert data["order_id"] == "K3M9Q2ZX"

    line = DevelopmentFormatter().format(record)
    assert "client_id=7" in line
    assert "order_id=K3M9Q2ZX" in line


def test_context_is_reset_on_exit(caplog):
    with LogContext(staff_id=99):
        pass
    logger.info("Outside")

    assert caplog.records[-1].log_context == {}


@pytest.mark.parametrize("level", [logging.INFO, logging.DEBUG])
async def test_create_order_logs_at_level(order_service, order_repository, channel, caplog, level):
    caplog.set_level(level)

    creation = await order_service.create_order(42, "Ann", "ann1")

    assert creation.warning is None
    assert len(channel.sent) == 1
    assert (await order_repository.get(creation.order_id)).notification_sent is True
    assert any(r.getMessage() == "Order created" for r in caplog.records)


@pytest.mark.parametrize("level", [logging.INFO, logging.DEBUG])
async def test_referral_code_logs_at_level(order_service, caplog, level):
    caplog.set_level(level)

    code = await order_service.get_or_create_referral_code(7, "Rita", "rita")

    assert code
    assert await order_service.get_or_create_referral_code(7, "Rita", "rita") == code


@pytest.mark.parametrize("level", [logging.INFO, logging.DEBUG])
async def test_self_referral_dispatch_creates_order(order_service, order_repository, channel, caplog, level):
    caplog.set_level(level)
    code = await order_service.get_or_create_referral_code(42, "Ann", "ann1")
    dispatcher = UpdateDispatcher(order_service, channel, bot_username="InviteAstroBot")

    await dispatcher.dispatch_message(
        IncomingMessage(chat_id=42, user_id=42, name="Ann", handle="ann1", text=f"/start ref_{code}")
    )

    orders = await order_repository.list_by_client(42)
    assert len(orders) == 1
    assert orders[0].referrer_id == 0
    assert channel.texts_to(42) == [CONSULTATION_REQUESTED_MESSAGE]
    assert GENERIC_ERROR_MESSAGE not in channel.texts_to(42)
