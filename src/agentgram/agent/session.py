"""Agent session: one long-lived agent worker bound to a chat.

The session owns an append-only event log. Inputs are queued and processed
strictly one at a time by a worker task; while an input is being handled
the session is not idle. Consumers capture ``event_cursor()`` before
submitting and then pull ``events(cursor, abort)`` to see only what the
agent produced from that point on.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Any, AsyncIterator, Callable

from agentgram.agent.events import AgentEvent, ChatOutput, InputHandled, SystemOutput

if TYPE_CHECKING:
    from agentgram.agent.router import AgentConfig

logger = logging.getLogger(__name__)

# Responder: (conversation messages) -> stream of reply fragments
Responder = Callable[[list[dict[str, Any]]], AsyncIterator[str]]


class AgentSession:
    """Headless agent with an idle state and a cursor-addressable event log."""

    def __init__(self, config: AgentConfig, responder: Responder) -> None:
        self.config = config
        self.created_at = datetime.now()
        self._responder = responder
        self._events: list[AgentEvent] = []
        self._history: list[dict[str, Any]] = []
        self._inputs: asyncio.Queue[tuple[str, str]] = asyncio.Queue()
        self._idle = asyncio.Event()
        self._idle.set()
        self._waiters: set[asyncio.Future[None]] = set()
        self._worker: asyncio.Task | None = None
        self._closed = False

    # ── State ──

    @property
    def is_idle(self) -> bool:
        return self._idle.is_set()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def history(self) -> list[dict[str, Any]]:
        return list(self._history)

    async def wait_idle(self) -> None:
        await self._idle.wait()

    # ── Input ──

    def submit(self, text: str) -> str:
        """Queue ``text`` as input and return its request id."""
        if self._closed:
            raise RuntimeError(f"Agent session '{self.config.name}' is closed")
        request_id = uuid.uuid4().hex
        self._idle.clear()
        self._inputs.put_nowait((request_id, text))
        if self._worker is None:
            self._worker = asyncio.get_running_loop().create_task(
                self._run(), name=f"agent:{self.config.name}"
            )
        return request_id

    async def _run(self) -> None:
        while True:
            request_id, text = await self._inputs.get()
            try:
                await self._handle(text)
            except Exception as e:
                logger.exception("Agent '%s' failed to handle input", self.config.name)
                self.emit(SystemOutput("error", str(e) or e.__class__.__name__))
            # A cancelled input (session closing) is never reported as handled
            self.emit(InputHandled(request_id))
            if self._inputs.empty():
                self._idle.set()

    async def _handle(self, text: str) -> None:
        self._history.append({"role": "user", "content": text})
        parts: list[str] = []
        async for fragment in self._responder(list(self._history)):
            if fragment:
                parts.append(fragment)
                self.emit(ChatOutput(fragment))
        self._history.append({"role": "assistant", "content": "".join(parts)})

    # ── Event log ──

    def event_cursor(self) -> int:
        """Position just past the newest event."""
        return len(self._events)

    def emit(self, event: AgentEvent) -> None:
        self._events.append(event)
        self._wake()

    async def events(self, cursor: int, abort: asyncio.Event) -> AsyncIterator[AgentEvent]:
        """Yield events from ``cursor`` on, waiting for new ones.

        Ends when ``abort`` is set or the session is closed.
        """
        position = cursor
        while not abort.is_set():
            if position < len(self._events):
                event = self._events[position]
                position += 1
                yield event
                continue
            if self._closed:
                return
            await self._wait_for_event(abort)

    async def _wait_for_event(self, abort: asyncio.Event) -> None:
        loop = asyncio.get_running_loop()
        waiter: asyncio.Future[None] = loop.create_future()
        self._waiters.add(waiter)
        aborted = loop.create_task(abort.wait())
        try:
            await asyncio.wait({waiter, aborted}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            aborted.cancel()
            self._waiters.discard(waiter)

    def _wake(self) -> None:
        for waiter in self._waiters:
            if not waiter.done():
                waiter.set_result(None)
        self._waiters.clear()

    # ── Teardown ──

    async def aclose(self) -> None:
        """Stop the worker and end every open event iteration."""
        if self._closed:
            return
        self._closed = True
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
        self._idle.set()
        self._wake()
        logger.debug("Agent session '%s' closed", self.config.name)
