"""Shared test doubles: a recording chat transport and scripted agents."""

import asyncio
from collections import defaultdict
from types import SimpleNamespace

import pytest

from agentgram.agent.router import AgentConfig
from agentgram.agent.session import AgentSession
from agentgram.channels.base import ChatTransport, InboundMessage
from agentgram.errors import TransportError

BOT_USERNAME = "jarvis_bot"


class FakeTransport(ChatTransport):
    """In-memory transport that records every send/edit.

    ``calls`` holds ("send", chat_id, text) and
    ("edit", chat_id, message_id, text) tuples in call order.
    """

    def __init__(self, username: str = BOT_USERNAME, delay: float = 0.0) -> None:
        self.username = username
        self.delay = delay
        self.calls: list[tuple] = []
        self.call_times: list[float] = []
        self.messages: dict[tuple[int, int], str] = {}
        self.fail_sends = 0
        self.fail_edits = 0
        self.overlaps = 0
        self.started = False
        self.stopped = False
        self._in_flight: dict[int, int] = defaultdict(int)
        # Telegram numbers messages per chat
        self._next_id: dict[int, int] = defaultdict(lambda: 100)
        self._queue: asyncio.Queue[InboundMessage | None] = asyncio.Queue()

    @property
    def name(self) -> str:
        return "fake"

    async def start(self) -> None:
        self.started = True

    async def stop(self) -> None:
        self.stopped = True
        self._queue.put_nowait(None)

    async def get_me(self) -> str:
        return self.username

    async def inbound(self):
        while True:
            message = await self._queue.get()
            if message is None:
                return
            yield message

    def push(self, message: InboundMessage) -> None:
        self._queue.put_nowait(message)

    async def send(self, chat_id: int, text: str) -> int:
        await self._enter(chat_id)
        try:
            if self.fail_sends:
                self.fail_sends -= 1
                raise TransportError("send failed")
            message_id = self._next_id[chat_id]
            self._next_id[chat_id] += 1
            self.messages[(chat_id, message_id)] = text
            self.calls.append(("send", chat_id, text))
            return message_id
        finally:
            self._in_flight[chat_id] -= 1

    async def edit(self, chat_id: int, message_id: int, text: str) -> None:
        await self._enter(chat_id)
        try:
            if self.fail_edits:
                self.fail_edits -= 1
                raise TransportError("edit failed")
            self.messages[(chat_id, message_id)] = text
            self.calls.append(("edit", chat_id, message_id, text))
        finally:
            self._in_flight[chat_id] -= 1

    async def _enter(self, chat_id: int) -> None:
        if self._in_flight[chat_id] > 0:
            self.overlaps += 1
        self._in_flight[chat_id] += 1
        self.call_times.append(asyncio.get_running_loop().time())
        if self.delay:
            await asyncio.sleep(self.delay)

    # ── Inspection helpers ──

    def sent_texts(self, chat_id: int | None = None) -> list[str]:
        return [c[2] for c in self.calls if c[0] == "send" and (chat_id is None or c[1] == chat_id)]

    def visible(self, chat_id: int) -> list[str]:
        """Texts currently displayed in a chat, oldest message first."""
        return [text for (cid, _), text in sorted(self.messages.items()) if cid == chat_id]


def scripted(*fragments: str, delay: float = 0.0, hang: bool = False):
    """Responder that yields ``fragments`` (optionally slowly, optionally never finishing)."""

    async def responder(messages):
        for fragment in fragments:
            if delay:
                await asyncio.sleep(delay)
            yield fragment
        if hang:
            await asyncio.sleep(3600)

    return responder


def chunk(content):
    """Build a mock OpenAI-compatible streaming chunk."""
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=content))])


async def fake_stream(*contents):
    for content in contents:
        yield chunk(content)


def make_session(*fragments: str, max_run_time: float = 0, **kwargs) -> AgentSession:
    config = AgentConfig(name="Test", model="test-model", max_run_time=max_run_time)
    return AgentSession(config, scripted(*fragments, **kwargs))


def group_message(
    text: str,
    chat_id: int = -1001,
    sender_id: str = "42",
    message_id: int = 1,
    reply_to: int | None = None,
) -> InboundMessage:
    return InboundMessage(
        sender_id=sender_id,
        chat_id=chat_id,
        message_id=message_id,
        text=text,
        reply_to_message_id=reply_to,
        chat_type="supergroup",
        chat_title="Ops",
    )


def direct_message(text: str, sender_id: str = "42", message_id: int = 1) -> InboundMessage:
    return InboundMessage(
        sender_id=sender_id,
        chat_id=int(sender_id),
        message_id=message_id,
        text=text,
        chat_type="private",
    )


@pytest.fixture
def transport():
    return FakeTransport()
