"""Tests for CommunicationChannel send/receive/close."""

import asyncio

import pytest

from agentgram.errors import ChannelClosedError
from agentgram.relay.channel import CommunicationChannel
from agentgram.relay.correlator import ReplyCorrelator

CHAT = -1001


@pytest.fixture
def correlator():
    return ReplyCorrelator()


@pytest.fixture
def channel(transport, correlator):
    return CommunicationChannel(CHAT, transport, correlator, "jarvis_bot")


async def _collect(channel, count):
    received = []
    async for text in channel.receive():
        received.append(text)
        if len(received) == count:
            break
    return received


class TestSend:
    @pytest.mark.asyncio
    async def test_send_tracks_message(self, channel, transport, correlator):
        message_id = await channel.send("Deploy?")

        assert transport.calls == [("send", CHAT, "Deploy?")]
        assert message_id in channel.tracked_message_ids
        assert correlator.resolve(CHAT, message_id, "jarvis_bot") is channel

    @pytest.mark.asyncio
    async def test_send_after_close_raises(self, channel):
        channel.close()
        with pytest.raises(ChannelClosedError):
            await channel.send("late")


class TestReceive:
    @pytest.mark.asyncio
    async def test_replies_arrive_in_order(self, channel):
        channel.deliver("first")
        channel.deliver("second")
        channel.deliver("third")

        assert await _collect(channel, 3) == ["first", "second", "third"]

    @pytest.mark.asyncio
    async def test_waiting_reader_is_woken(self, channel):
        reader = asyncio.create_task(_collect(channel, 1))
        await asyncio.sleep(0)
        assert channel.deliver("yes")

        assert await asyncio.wait_for(reader, 1) == ["yes"]

    @pytest.mark.asyncio
    async def test_close_ends_receive(self, channel):
        async def read_all():
            return [text async for text in channel.receive()]

        reader = asyncio.create_task(read_all())
        await asyncio.sleep(0)
        channel.deliver("only")
        await asyncio.sleep(0)
        channel.close()

        assert await asyncio.wait_for(reader, 1) == ["only"]

    @pytest.mark.asyncio
    async def test_second_concurrent_reader_rejected(self, channel):
        reader = asyncio.create_task(_collect(channel, 1))
        await asyncio.sleep(0)

        with pytest.raises(RuntimeError):
            await _collect(channel, 1)

        channel.close()
        assert await reader == []

    @pytest.mark.asyncio
    async def test_deliver_after_close_is_refused(self, channel):
        channel.close()
        assert channel.deliver("ignored") is False


class TestClose:
    @pytest.mark.asyncio
    async def test_close_forgets_tracked_messages(self, channel, correlator):
        message_id = await channel.send("question")
        channel.close()

        assert channel.closed
        assert correlator.resolve(CHAT, message_id, "jarvis_bot") is None
        assert len(correlator) == 0

    @pytest.mark.asyncio
    async def test_close_is_idempotent_and_calls_hook_once(self, transport, correlator):
        closed = []
        channel = CommunicationChannel(CHAT, transport, correlator, "jarvis_bot", on_close=closed.append)
        channel.close()
        channel.close()

        assert closed == [channel]

    @pytest.mark.asyncio
    async def test_context_manager_closes(self, channel):
        async with channel as ch:
            await ch.send("hi")
        assert channel.closed
