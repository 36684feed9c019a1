"""Tests for TelegramService and the escalation provider."""

import asyncio
from unittest.mock import MagicMock

import pytest

from agentgram.config import AgentDef, AppConfig, BotDef, EscalationDef, GroupDef
from agentgram.errors import ConfigurationReferenceError
from agentgram.escalation import TelegramEscalationProvider, ask_human
from agentgram.service import TelegramService, build_router
from conftest import FakeTransport, group_message

GROUP = -1001


@pytest.fixture
def config():
    return AppConfig(
        default_model="default-model",
        agents={
            "helper": AgentDef(name="Jarvis", max_run_time=30),
            "research": AgentDef(name="Scout", model="scout-model"),
        },
        bots={
            "main": BotDef(
                name="main",
                bot_token="111:aaa",
                groups={"ops": GroupDef(group_id=GROUP, agent_type="helper")},
            ),
            "side": BotDef(name="side", bot_token="222:bbb"),
        },
        escalation=EscalationDef(bot="main", group="ops"),
    )


@pytest.fixture
def transports():
    return {}


@pytest.fixture
def service(config, transports):
    def make_transport(token):
        transports[token] = FakeTransport(username=f"bot_{token[:3]}")
        return transports[token]

    return TelegramService(config, client_factory=MagicMock, transport_factory=make_transport)


class TestBuildRouter:
    def test_models_resolved_against_default(self, config):
        router = build_router(config, MagicMock)
        assert router.get("helper").model == "default-model"
        assert router.get("research").model == "scout-model"
        assert router.get("helper").max_run_time == 30


class TestTelegramService:
    def test_one_bot_per_definition(self, service, transports):
        assert [b.name for b in service.bots] == ["main", "side"]
        assert sorted(transports) == ["111:aaa", "222:bbb"]

    def test_get_bot(self, service):
        assert service.get_bot("main").name == "main"
        assert service.get_bot("missing") is None

    @pytest.mark.asyncio
    async def test_start_and_stop_all(self, service, transports):
        await service.start()
        assert all(t.started for t in transports.values())
        await service.stop()
        assert all(t.stopped for t in transports.values())

    @pytest.mark.asyncio
    async def test_run_until_stop_event(self, service, transports):
        stop_event = asyncio.Event()
        runner = asyncio.create_task(service.run(stop_event))
        await asyncio.sleep(0.01)
        assert service.get_bot("main").username == "bot_111"

        stop_event.set()
        await asyncio.wait_for(runner, 1)
        assert all(t.stopped for t in transports.values())

    @pytest.mark.asyncio
    async def test_stop_continues_past_failing_bot(self, service, transports):
        await service.start()

        async def broken_stop():
            raise RuntimeError("boom")

        service.get_bot("main").stop = broken_stop
        await service.stop()
        assert transports["222:bbb"].stopped


class TestEscalation:
    @pytest.mark.asyncio
    async def test_unknown_bot_raises(self, service):
        provider = TelegramEscalationProvider(EscalationDef(bot="ghost", group="ops"))
        with pytest.raises(ConfigurationReferenceError, match="Bot ghost not found"):
            provider.create_channel(service)

    @pytest.mark.asyncio
    async def test_unknown_group_raises(self, service):
        await service.start()
        provider = TelegramEscalationProvider(EscalationDef(bot="main", group="nope"))
        with pytest.raises(ConfigurationReferenceError):
            provider.create_channel(service)
        await service.stop()

    @pytest.mark.asyncio
    async def test_ask_human_returns_first_reply(self, service, config, transports):
        await service.start()
        provider = TelegramEscalationProvider(config.escalation)
        transport = transports["111:aaa"]
        bot = service.get_bot("main")

        async with provider.create_channel(service) as channel:
            asking = asyncio.create_task(ask_human(channel, "Ship it?", timeout=1))
            await asyncio.sleep(0.01)
            question_id = next(iter(channel.tracked_message_ids))
            await bot.handle_message(group_message("ship it", sender_id="5", reply_to=question_id))

            assert await asking == "ship it"
        assert transport.sent_texts(GROUP) == ["Ship it?"]
        assert bot.open_channels == []
        await service.stop()

    @pytest.mark.asyncio
    async def test_ask_human_times_out(self, service, config):
        await service.start()
        provider = TelegramEscalationProvider(config.escalation)

        async with provider.create_channel(service) as channel:
            assert await ask_human(channel, "Anyone?", timeout=0.02) is None
        await service.stop()

    @pytest.mark.asyncio
    async def test_channel_reusable_after_ask(self, service, config):
        await service.start()
        provider = TelegramEscalationProvider(config.escalation)
        bot = service.get_bot("main")

        async with provider.create_channel(service) as channel:
            assert await ask_human(channel, "Anyone?", timeout=0.02) is None

            channel.deliver("first answer")
            assert await ask_human(channel, "Still there?", timeout=1) == "first answer"

            # The previous reader was closed, so a new one can wait on the channel
            asking = asyncio.create_task(ask_human(channel, "And now?", timeout=1))
            await asyncio.sleep(0.01)
            await bot.handle_message(
                group_message("second answer", message_id=50, reply_to=max(channel.tracked_message_ids))
            )
            assert await asking == "second answer"
        await service.stop()
