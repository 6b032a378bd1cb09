import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional

import mongomock
import pytest

from app.core.exceptions import NotificationSendError
from app.db.indexes import create_order_indexes, create_user_indexes
from app.db.order_repository import OrderRepository
from app.db.user_repository import UserRepository
from app.services.notification_channel import Keyboard, NotificationChannel
from app.services.order_service import OrderService

STAFF_CHANNEL = "staff"


@pytest.fixture(autouse=True)
def debug_logging(caplog):
    # Every record is built, so logging calls run as they do in production
    caplog.set_level(logging.DEBUG)
    return caplog


class AsyncCursor:
    def __init__(self, cursor):
        self._cursor = cursor

    def sort(self, *args, **kwargs):
        self._cursor = self._cursor.sort(*args, **kwargs)
        return self

    def limit(self, count):
        self._cursor = self._cursor.limit(count)
        return self

    async def to_list(self, length=None):
        await asyncio.sleep(0)
        docs = list(self._cursor)
        return docs if length is None else docs[:length]


class AsyncCollection:
    """
    Awaitable wrapper around a mongomock collection exposing the Motor
    calls the repositories use. Every call yields to the event loop first
    so concurrent coroutines interleave between store operations.
    """

    def __init__(self, collection):
        self.sync = collection

    async def find_one(self, *args, **kwargs):
        await asyncio.sleep(0)
        return self.sync.find_one(*args, **kwargs)

    def find(self, *args, **kwargs):
        return AsyncCursor(self.sync.find(*args, **kwargs))

    async def insert_one(self, *args, **kwargs):
        await asyncio.sleep(0)
        return self.sync.insert_one(*args, **kwargs)

    async def update_one(self, *args, **kwargs):
        await asyncio.sleep(0)
        return self.sync.update_one(*args, **kwargs)

    async def find_one_and_update(self, *args, **kwargs):
        await asyncio.sleep(0)
        return self.sync.find_one_and_update(*args, **kwargs)

    async def count_documents(self, *args, **kwargs):
        await asyncio.sleep(0)
        return self.sync.count_documents(*args, **kwargs)

    async def create_index(self, *args, **kwargs):
        return self.sync.create_index(*args, **kwargs)

    async def drop_indexes(self):
        return self.sync.drop_indexes()

    async def index_information(self):
        return self.sync.index_information()


@dataclass
class SentMessage:
    recipient: object
    text: str
    keyboard: Optional[Keyboard]
    markdown: bool
    handle: str


@dataclass
class EditedMessage:
    recipient: object
    handle: str
    text: str
    keyboard: Optional[Keyboard]
    markdown: bool


class FakeChannel(NotificationChannel):
    """In-memory NotificationChannel recording every send and edit."""

    def __init__(self):
        self.sent: List[SentMessage] = []
        self.edits: List[EditedMessage] = []
        self.failing_recipients = set()
        self.fail_edits = False
        self.started = False
        self._counter = 0
        self._messages = asyncio.Queue()
        self._callbacks = asyncio.Queue()

    async def start(self):
        self.started = True

    async def stop(self):
        self.started = False
        await self._messages.put(None)
        await self._callbacks.put(None)

    async def send(self, recipient, text, keyboard=None, markdown=False):
        await asyncio.sleep(0)
        if recipient in self.failing_recipients:
            raise NotificationSendError(f"send to {recipient} failed")
        self._counter += 1
        handle = str(self._counter)
        self.sent.append(SentMessage(recipient, text, keyboard, markdown, handle))
        return handle

    async def edit(self, recipient, handle, text, keyboard=None, markdown=False):
        await asyncio.sleep(0)
        if self.fail_edits:
            raise NotificationSendError(f"edit of {handle} failed")
        self.edits.append(EditedMessage(recipient, handle, text, keyboard, markdown))

    async def incoming_messages(self):
        while True:
            item = await self._messages.get()
            if item is None:
                return
            yield item

    async def callback_queries(self):
        while True:
            item = await self._callbacks.get()
            if item is None:
                return
            yield item

    def push_message(self, message):
        self._messages.put_nowait(message)

    def push_callback(self, event):
        self._callbacks.put_nowait(event)

    def texts_to(self, recipient) -> List[str]:
        return [m.text for m in self.sent if m.recipient == recipient]


@pytest.fixture
def mongo_db():
    return mongomock.MongoClient()["sarafan_test"]


@pytest.fixture
async def orders_collection(mongo_db):
    collection = AsyncCollection(mongo_db["orders"])
    await create_order_indexes(collection)
    return collection


@pytest.fixture
async def users_collection(mongo_db):
    collection = AsyncCollection(mongo_db["users"])
    await create_user_indexes(collection)
    return collection


@pytest.fixture
def order_repository(orders_collection):
    return OrderRepository(orders_collection)


@pytest.fixture
def user_repository(users_collection):
    return UserRepository(users_collection)


@pytest.fixture
def channel():
    return FakeChannel()


@pytest.fixture
def order_service(channel, order_repository, user_repository):
    return OrderService(
        channel,
        orders=order_repository,
        users=user_repository,
        staff_channel_id=STAFF_CHANNEL,
        store_timeout=5,
        notification_timeout=5,
        reminder_after_hours=24,
        order_id_attempts=3,
        referral_code_attempts=10,
    )
