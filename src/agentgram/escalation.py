"""Escalation: lets a workflow ask a human in a Telegram group.

The provider resolves the configured ``{bot, group}`` pair to a
CommunicationChannel. Humans answer by replying to the bot's message.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import aclosing

from agentgram.config import EscalationDef
from agentgram.errors import ConfigurationReferenceError
from agentgram.relay.channel import CommunicationChannel
from agentgram.service import TelegramService

logger = logging.getLogger(__name__)


class TelegramEscalationProvider:
    def __init__(self, config: EscalationDef) -> None:
        self.config = config

    def create_channel(self, service: TelegramService) -> CommunicationChannel:
        """Open a channel to the configured escalation group.

        Raises:
            ConfigurationReferenceError: the bot or group is not configured.
        """
        bot = service.get_bot(self.config.bot)
        if bot is None:
            raise ConfigurationReferenceError(f"Bot {self.config.bot} not found")
        return bot.create_channel_with_group(self.config.group)


async def ask_human(
    channel: CommunicationChannel,
    question: str,
    timeout: float | None = None,
) -> str | None:
    """Send ``question`` and return the first reply (None on timeout or close)."""

    async def first_reply() -> str | None:
        async with aclosing(channel.receive()) as replies:
            async for reply in replies:
                return reply
        return None

    await channel.send(question)
    try:
        return await asyncio.wait_for(first_reply(), timeout)
    except asyncio.TimeoutError:
        logger.info("No human reply in chat %s within %ss", channel.chat_id, timeout)
        return None
