"""Output aggregation: streams agent text into Telegram messages.

Agents produce output as many small fragments. Sending each fragment as its
own message would flood the chat and hit rate limits, so fragments are
accumulated per chat and reconciled with the platform in flush cycles:

- the first flush of a buffer sends a new message, later flushes edit it
  in place;
- a buffer longer than the message ceiling is split: the head is written
  out as a finished message and the tail starts a fresh one;
- one shared scheduler runs at most one cycle at a time, and cycle starts
  are spaced at least ``min_interval`` apart across all chats.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from agentgram.channels.base import ChatTransport
from agentgram.channels.telegram import TG_MAX_LEN, TG_MIN_INTERVAL
from agentgram.errors import TransportError

logger = logging.getLogger(__name__)

# Consecutive failed flushes after which a buffer is dropped, so that
# finish() cannot wait forever on a chat the platform keeps rejecting
MAX_FLUSH_FAILURES = 5


@dataclass
class OutputBuffer:
    """Accumulated output for one chat.

    Attributes:
        text: Everything appended and not yet finalized.
        last_flushed: What the live message currently displays.
        message_id: The live (still editable) message, if one was sent.
        closing: The producing request is done; discard once clean.
        failures: Consecutive failed flush attempts.
    """

    text: str = ""
    last_flushed: str = ""
    message_id: int | None = None
    closing: bool = False
    failures: int = 0

    @property
    def dirty(self) -> bool:
        return self.text != self.last_flushed


class OutputAggregator:
    """Rate-limited, length-bounded edit-in-place output buffering.

    Usage::

        aggregator = OutputAggregator(transport)
        aggregator.append(chat_id, "Hello, ")
        aggregator.append(chat_id, "world!")
        await aggregator.finish(chat_id)  # waits until the chat shows it
    """

    def __init__(
        self,
        transport: ChatTransport,
        max_length: int = TG_MAX_LEN,
        min_interval: float = TG_MIN_INTERVAL,
        max_failures: int = MAX_FLUSH_FAILURES,
    ) -> None:
        self._transport = transport
        self._max_length = max_length
        self._min_interval = min_interval
        self._max_failures = max_failures
        self._buffers: dict[int, OutputBuffer] = {}
        self._pending: set[int] = set()
        self._waiters: dict[int, list[asyncio.Future[None]]] = {}
        self._task: asyncio.Task | None = None
        self._last_cycle_start: float | None = None

    # ── Producer side ──

    def append(self, chat_id: int, text: str) -> None:
        """Add a fragment to the chat's buffer and schedule a flush."""
        if not text:
            return
        buffer = self._buffers.setdefault(chat_id, OutputBuffer())
        buffer.text += text
        self.request_flush(chat_id)

    def request_flush(self, chat_id: int) -> None:
        self._pending.add(chat_id)
        self._schedule()

    async def finish(self, chat_id: int) -> None:
        """Flush the chat's buffer completely, then discard it.

        The next append for this chat starts a new platform message.
        """
        buffer = self._buffers.get(chat_id)
        if buffer is None:
            return
        buffer.closing = True
        if not buffer.dirty and chat_id not in self._pending:
            del self._buffers[chat_id]
            return

        waiter = asyncio.get_running_loop().create_future()
        self._waiters.setdefault(chat_id, []).append(waiter)
        self.request_flush(chat_id)
        await waiter

    async def drain(self) -> None:
        """Wait until no chat is pending and no cycle is running."""
        while self._task is not None:
            await asyncio.shield(self._task)

    # ── Inspection ──

    def get_buffer(self, chat_id: int) -> OutputBuffer | None:
        return self._buffers.get(chat_id)

    @property
    def pending(self) -> frozenset[int]:
        return frozenset(self._pending)

    @property
    def is_idle(self) -> bool:
        return self._task is None and not self._pending

    # ── Flushing ──

    async def flush(self, chat_id: int) -> None:
        """Reconcile one chat's buffer with what the platform displays.

        Raises:
            TransportError: the send/edit failed; the buffer is left dirty.
        """
        buffer = self._buffers.get(chat_id)
        if buffer is None or not buffer.dirty:
            return

        text = buffer.text
        if len(text) > self._max_length:
            head = text[: self._max_length]
            if buffer.message_id is None:
                await self._transport.send(chat_id, head)
            else:
                await self._transport.edit(chat_id, buffer.message_id, head)
            # The head is final; the tail (plus anything appended meanwhile)
            # becomes a new message on the next cycle.
            buffer.text = buffer.text[len(head):]
            buffer.message_id = None
            buffer.last_flushed = ""
            return

        if buffer.message_id is None:
            buffer.message_id = await self._transport.send(chat_id, text)
        else:
            await self._transport.edit(chat_id, buffer.message_id, text)
        buffer.last_flushed = text

    def _schedule(self) -> None:
        if self._task is not None or not self._pending:
            return
        loop = asyncio.get_running_loop()
        delay = 0.0
        if self._last_cycle_start is not None:
            delay = max(0.0, self._last_cycle_start + self._min_interval - loop.time())
        self._task = loop.create_task(self._run_cycle(delay))

    async def _run_cycle(self, delay: float) -> None:
        cancelled = False
        try:
            if delay > 0:
                await asyncio.sleep(delay)
            self._last_cycle_start = asyncio.get_running_loop().time()
            chat_ids = list(self._pending)
            self._pending.clear()
            for chat_id in chat_ids:
                await self._flush_one(chat_id)
        except asyncio.CancelledError:
            cancelled = True
            raise
        finally:
            self._task = None
            if not cancelled:
                self._schedule()

    async def _flush_one(self, chat_id: int) -> None:
        buffer = self._buffers.get(chat_id)
        if buffer is None:
            self._wake(chat_id)
            return

        try:
            await self.flush(chat_id)
            buffer.failures = 0
        except TransportError as e:
            buffer.failures += 1
            logger.error("Error flushing buffer for chat %s: %s", chat_id, e)
        except Exception:
            buffer.failures += 1
            logger.exception("Unexpected error flushing buffer for chat %s", chat_id)

        # Dropping the buffer releases every finish() waiter for this chat
        if buffer.failures >= self._max_failures:
            logger.error(
                "Dropping output for chat %s after %d failed flushes", chat_id, buffer.failures
            )
            self._buffers.pop(chat_id, None)
            self._wake(chat_id)
        elif buffer.dirty:
            self._pending.add(chat_id)
        else:
            if buffer.closing:
                self._buffers.pop(chat_id, None)
            self._wake(chat_id)

    def _wake(self, chat_id: int) -> None:
        for waiter in self._waiters.pop(chat_id, []):
            if not waiter.done():
                waiter.set_result(None)
