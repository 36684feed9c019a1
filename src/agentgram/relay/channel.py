"""CommunicationChannel: a two-way conversation with one chat.

Used by escalation-style callers: the caller sends a question, then
iterates ``receive()`` to get the human replies to it. Replies are matched
through the ReplyCorrelator, so only answers to this channel's own
messages (or to earlier replies in the thread) arrive here.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import AsyncIterator, Callable

from agentgram.channels.base import ChatTransport
from agentgram.errors import ChannelClosedError
from agentgram.relay.correlator import ReplyCorrelator

logger = logging.getLogger(__name__)


class CommunicationChannel:
    """Bidirectional handle over one chat.

    Example::

        async with bot.create_channel_with_group("ops") as channel:
            await channel.send("Deploy to prod?")
            async for answer in channel.receive():
                ...
    """

    def __init__(
        self,
        chat_id: int,
        transport: ChatTransport,
        correlator: ReplyCorrelator,
        identity: str,
        on_close: Callable[[CommunicationChannel], None] | None = None,
    ) -> None:
        self.chat_id = chat_id
        self.tracked_message_ids: set[int] = set()
        self._transport = transport
        self._correlator = correlator
        self._identity = identity
        self._on_close = on_close
        self._queue: deque[str] = deque()
        self._waiter: asyncio.Future[str | None] | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, text: str) -> int:
        """Send ``text`` to the chat and remember the message for replies."""
        if self._closed:
            raise ChannelClosedError(f"Channel to chat {self.chat_id} is closed")
        message_id = await self._transport.send(self.chat_id, text)
        self.track(message_id)
        return message_id

    def track(self, message_id: int) -> None:
        self.tracked_message_ids.add(message_id)
        self._correlator.track(self.chat_id, message_id, self._identity, self)

    def deliver(self, text: str) -> bool:
        """Hand an inbound reply to the reader. Returns False once closed."""
        if self._closed:
            return False
        waiter = self._waiter
        if waiter is not None and not waiter.done():
            self._waiter = None
            waiter.set_result(text)
        else:
            self._queue.append(text)
        return True

    async def receive(self) -> AsyncIterator[str]:
        """Yield replies in arrival order until the channel is closed."""
        while not self._closed:
            if self._queue:
                yield self._queue.popleft()
                continue

            if self._waiter is not None:
                raise RuntimeError("receive() is already waiting on this channel")
            waiter = asyncio.get_running_loop().create_future()
            self._waiter = waiter
            try:
                text = await waiter
            finally:
                if self._waiter is waiter:
                    self._waiter = None
            if text is None:
                return
            yield text

    def close(self) -> None:
        """Stop the receive sequence and forget all tracked messages."""
        if self._closed:
            return
        self._closed = True

        waiter, self._waiter = self._waiter, None
        if waiter is not None and not waiter.done():
            waiter.set_result(None)

        self._correlator.forget(self)
        self.tracked_message_ids.clear()
        self._queue.clear()
        if self._on_close:
            self._on_close(self)
        logger.debug("Channel to chat %s closed", self.chat_id)

    async def __aenter__(self) -> CommunicationChannel:
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.close()
