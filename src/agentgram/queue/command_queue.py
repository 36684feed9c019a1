"""Per-chat command queue: prevents concurrent agent requests on the same chat.

Uses a simple defaultdict(asyncio.Lock) pattern. Different chats can process
simultaneously; the same chat queues messages in FIFO order (asyncio.Lock
wakes waiters in the order they started waiting).
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import AsyncIterator


class CommandQueue:
    """Per-chat locking for request ordering.

    Example::

        queue = CommandQueue()
        async with queue.lock(chat_id):
            await bridge.run(...)  # Only one request at a time per chat
    """

    def __init__(self) -> None:
        self._locks: dict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

    @asynccontextmanager
    async def lock(self, chat_id: int) -> AsyncIterator[None]:
        """Acquire the chat's lock. Waits if another request is in progress."""
        async with self._locks[chat_id]:
            yield

    @property
    def active_chats(self) -> list[int]:
        """Return chat ids that currently hold locks (for monitoring)."""
        return [key for key, lock in self._locks.items() if lock.locked()]
