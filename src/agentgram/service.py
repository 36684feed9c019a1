"""TelegramService: all configured bots, started and stopped together."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

from agentgram.agent.router import AgentConfig, AgentRouter
from agentgram.bot import TelegramBot
from agentgram.channels.base import ChatTransport
from agentgram.channels.telegram import TelegramTransport
from agentgram.config import AppConfig, get_portkey_client

logger = logging.getLogger(__name__)


def build_router(config: AppConfig, client_factory: Callable[[], Any]) -> AgentRouter:
    agents = {
        key: AgentConfig(
            name=agent.name,
            model=config.model_for(agent),
            soul_path=agent.soul_path,
            max_run_time=agent.max_run_time,
        )
        for key, agent in config.agents.items()
    }
    return AgentRouter(agents, client_factory=client_factory)


class TelegramService:
    """Provides Telegram bots for interacting with agents.

    Usage::

        service = TelegramService(AppConfig.load())
        await service.run(stop_event)  # returns after stop_event is set
    """

    name = "TelegramService"

    def __init__(
        self,
        config: AppConfig,
        client_factory: Callable[[], Any] = get_portkey_client,
        transport_factory: Callable[[str], ChatTransport] = TelegramTransport,
    ) -> None:
        self.router = build_router(config, client_factory)
        self._bots: dict[str, TelegramBot] = {}
        for key, bot_def in config.bots.items():
            self._bots[key] = TelegramBot(
                bot_def, transport_factory(bot_def.bot_token), self.router.spawn
            )

    def get_bot(self, name: str) -> TelegramBot | None:
        return self._bots.get(name)

    @property
    def bots(self) -> list[TelegramBot]:
        return list(self._bots.values())

    async def start(self) -> None:
        for bot in self._bots.values():
            await bot.start()

    async def stop(self) -> None:
        for bot in self._bots.values():
            try:
                await bot.stop()
            except Exception:
                logger.exception("Error stopping bot '%s'", bot.name)

    async def run(self, stop_event: asyncio.Event) -> None:
        """Start every bot, wait for ``stop_event``, then stop them all."""
        await self.start()
        try:
            await stop_event.wait()
        finally:
            await self.stop()
