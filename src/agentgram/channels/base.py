"""Abstract base class for chat transports.

A transport normalizes platform updates into InboundMessage records and
exposes the three outbound primitives the bridge needs: send, edit, get_me.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncIterator

GROUP_CHAT_TYPES = frozenset({"group", "supergroup"})


@dataclass(frozen=True)
class InboundMessage:
    """One text message received from the platform.

    Attributes:
        sender_id: Platform user id of the author (None for channel posts).
        chat_id: Conversation id. Negative for group-type chats.
        message_id: Id of this message inside the chat.
        text: Message text ("" for non-text messages).
        reply_to_message_id: Id of the message this one replies to, if any.
        chat_type: "private", "group", "supergroup" or "channel".
        chat_title: Group title, or None for private chats.
    """

    sender_id: str | None
    chat_id: int
    message_id: int
    text: str
    reply_to_message_id: int | None = None
    chat_type: str = "private"
    chat_title: str | None = None

    @property
    def is_group(self) -> bool:
        return self.chat_type in GROUP_CHAT_TYPES


class ChatTransport(ABC):
    """Base interface for chat platform transports."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Transport identifier (e.g. 'telegram')."""
        ...

    @abstractmethod
    async def start(self) -> None:
        """Connect and begin receiving updates."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Stop receiving updates and release the connection."""
        ...

    @abstractmethod
    async def get_me(self) -> str:
        """Return the username of the bot identity behind this transport."""
        ...

    @abstractmethod
    def inbound(self) -> AsyncIterator[InboundMessage]:
        """Iterate over inbound messages until the transport stops."""
        ...

    @abstractmethod
    async def send(self, chat_id: int, text: str) -> int:
        """Send a new message and return its message id.

        Raises:
            TransportError: the platform call failed.
        """
        ...

    @abstractmethod
    async def edit(self, chat_id: int, message_id: int, text: str) -> None:
        """Replace the text of an already sent message.

        An edit whose content equals what is already displayed succeeds.

        Raises:
            TransportError: the platform call failed.
        """
        ...
