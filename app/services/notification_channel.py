"""
app/services/notification_channel.py

Purpose: Chat transport interface

- Send and edit primitives used by the order service
- Inbound message and callback streams consumed by the dispatcher
- Transport-neutral keyboard description
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import AsyncIterator, List, Optional, Union

from app.schemas.events import CallbackEvent, IncomingMessage


@dataclass
class Button:
    """
    A single keyboard button.

    Inline buttons carry either `callback_data` or `url`; reply keyboard
    buttons carry only `text`.
    """
    text: str
    callback_data: Optional[str] = None
    url: Optional[str] = None


@dataclass
class Keyboard:
    rows: List[List[Button]] = field(default_factory=list)
    inline: bool = True

    @property
    def is_empty(self) -> bool:
        return not any(self.rows)


Recipient = Union[int, str]


class NotificationChannel(ABC):
    """
    Messaging transport used by the bot.

    `send` returns an opaque message handle that `edit` accepts later.
    Both raise NotificationSendError on transport failure.
    """

    @abstractmethod
    async def start(self) -> None:
        ...

    @abstractmethod
    async def stop(self) -> None:
        ...

    @abstractmethod
    async def send(
        self,
        recipient: Recipient,
        text: str,
        keyboard: Optional[Keyboard] = None,
        markdown: bool = False,
    ) -> str:
        ...

    @abstractmethod
    async def edit(
        self,
        recipient: Recipient,
        handle: str,
        text: str,
        keyboard: Optional[Keyboard] = None,
        markdown: bool = False,
    ) -> None:
        """
        Replaces the text of a sent message. An empty keyboard removes
        the existing buttons; None leaves the markup to the transport.
        """

    @abstractmethod
    def incoming_messages(self) -> AsyncIterator[IncomingMessage]:
        ...

    @abstractmethod
    def callback_queries(self) -> AsyncIterator[CallbackEvent]:
        ...
