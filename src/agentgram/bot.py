"""TelegramBot: one bot identity bridged to its agent sessions.

The bot owns all per-process state for its identity: the reply correlator,
the session registry, the output aggregator, the per-chat command queue and
the open communication channels. Inbound messages are routed as follows:

1. A reply to a message sent through an open CommunicationChannel goes to
   that channel (no allow-list check, no agent).
2. In groups, only messages that start with ``@<bot username>`` are handled.
3. The sender is checked against the chat's allow-list.
4. The chat's agent session is created on first use and the text is run
   through the AgentEventBridge.

Each inbound message is handled in its own task, so a slow agent in one
chat never holds up another.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import Callable

from agentgram.agent.session import AgentSession
from agentgram.channels.base import ChatTransport, InboundMessage
from agentgram.channels.telegram import TG_MAX_LEN, TG_MIN_INTERVAL
from agentgram.config import BotDef
from agentgram.errors import AuthorizationError, ConfigurationReferenceError, TransportError
from agentgram.permissions.policy import AccessPolicy, ChatPolicy
from agentgram.queue.command_queue import CommandQueue
from agentgram.relay.aggregator import OutputAggregator
from agentgram.relay.bridge import AgentEventBridge
from agentgram.relay.channel import CommunicationChannel
from agentgram.relay.correlator import ReplyCorrelator
from agentgram.session.registry import SessionRegistry

logger = logging.getLogger(__name__)

GROUP_REJECTION = "Sorry, you are not authorized."
DIRECT_REJECTION = "Sorry, you are not authorized to use this bot."


def build_policy(config: BotDef) -> AccessPolicy:
    groups = {
        group.group_id: ChatPolicy(group.agent_type, frozenset(group.allowed_users))
        for group in config.groups.values()
    }
    direct = None
    if config.direct:
        direct = ChatPolicy(config.direct.agent_type, frozenset(config.direct.allowed_users))
    return AccessPolicy(groups=groups, direct=direct)


class TelegramBot:
    """Composition root for one Telegram bot identity.

    Usage::

        bot = TelegramBot(bot_def, TelegramTransport(bot_def.bot_token), router.spawn)
        await bot.start()
        ...
        await bot.stop()
    """

    def __init__(
        self,
        config: BotDef,
        transport: ChatTransport,
        spawn: Callable[[str], AgentSession],
        max_length: int = TG_MAX_LEN,
        min_interval: float = TG_MIN_INTERVAL,
    ) -> None:
        self.name = config.name
        self._config = config
        self._transport = transport
        self._policy = build_policy(config)
        self._username: str | None = None

        self.correlator = ReplyCorrelator()
        self.sessions = SessionRegistry(spawn)
        self.aggregator = OutputAggregator(transport, max_length=max_length, min_interval=min_interval)
        self.command_queue = CommandQueue()
        self._bridge = AgentEventBridge(transport, self.aggregator, self.command_queue)

        self._channels: set[CommunicationChannel] = set()
        self._tasks: set[asyncio.Task] = set()
        self._dispatcher: asyncio.Task | None = None

    @property
    def username(self) -> str | None:
        return self._username

    @property
    def open_channels(self) -> list[CommunicationChannel]:
        return list(self._channels)

    # ── Lifecycle ──

    async def start(self) -> None:
        """Start polling, learn the bot username and announce in groups."""
        await self._transport.start()
        self._username = await self._transport.get_me()
        logger.info("Bot @%s started", self._username)

        self._dispatcher = asyncio.get_running_loop().create_task(
            self._dispatch_loop(), name=f"bot:{self.name}"
        )

        if self._config.join_message:
            for group_name, group in self._config.groups.items():
                try:
                    await self._transport.send(group.group_id, self._config.join_message)
                except TransportError as e:
                    logger.error(
                        "Failed to announce to group %s (%s): %s", group_name, group.group_id, e
                    )

    async def stop(self) -> None:
        """Flush pending output, close channels, destroy sessions, stop polling."""
        if self._dispatcher is not None:
            self._dispatcher.cancel()
            with suppress(asyncio.CancelledError):
                await self._dispatcher
            self._dispatcher = None

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        await self.aggregator.drain()

        for channel in list(self._channels):
            channel.close()

        await self.sessions.destroy_all()

        try:
            await self._transport.stop()
        except TransportError as e:
            logger.error("Error stopping polling: %s", e)
        logger.info("Bot @%s stopped", self._username)

    # ── Communication channels ──

    def create_channel_with_group(self, group_name: str) -> CommunicationChannel:
        """Open a channel to a configured group.

        Raises:
            ConfigurationReferenceError: no group with that name is configured.
        """
        group = self._config.groups.get(group_name)
        if group is None:
            raise ConfigurationReferenceError(f'Group "{group_name}" not found in configuration.')
        return self.create_channel_with_user(group.group_id)

    def create_channel_with_user(self, chat_id: int | str) -> CommunicationChannel:
        """Open a channel to any chat id (user or group)."""
        if self._username is None:
            raise TransportError(f"Bot '{self.name}' is not started")
        channel = CommunicationChannel(
            chat_id=int(chat_id),
            transport=self._transport,
            correlator=self.correlator,
            identity=self._username,
            on_close=self._channels.discard,
        )
        self._channels.add(channel)
        return channel

    # ── Inbound ──

    async def _dispatch_loop(self) -> None:
        async for message in self._transport.inbound():
            self.dispatch(message)

    def dispatch(self, message: InboundMessage) -> asyncio.Task:
        """Handle ``message`` in its own task."""
        task = asyncio.get_running_loop().create_task(self._handle_safely(message))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _handle_safely(self, message: InboundMessage) -> None:
        try:
            await self.handle_message(message)
        except Exception:
            logger.exception("Error processing message in chat %s", message.chat_id)

    async def handle_message(self, message: InboundMessage) -> None:
        if not message.sender_id or not message.text.strip():
            return
        logger.debug(
            "Message from %s in chat %s: %r", message.sender_id, message.chat_id, message.text
        )

        if message.reply_to_message_id is not None and self._username:
            channel = self.correlator.resolve(
                message.chat_id, message.reply_to_message_id, self._username
            )
            if channel is not None and channel.deliver(message.text):
                channel.track(message.message_id)
                return

        text = message.text.strip()
        if message.is_group:
            mention = f"@{self._username}"
            if not text.lower().startswith(mention.lower()):
                return
            text = text[len(mention):].strip()
            if not text:
                return
        elif message.chat_type != "private":
            return

        try:
            policy = self._policy.require(message.chat_id, message.sender_id, message.is_group)
        except AuthorizationError as e:
            logger.warning("%s", e)
            rejection = GROUP_REJECTION if message.is_group else DIRECT_REJECTION
            await self._transport.send(message.chat_id, rejection)
            return

        if policy is None:
            logger.debug("Ignoring message from unconfigured chat %s", message.chat_id)
            return

        session = self.sessions.get_or_create(message.chat_id, policy.agent_type)
        outcome = await self._bridge.run(message.chat_id, session.agent, text)
        logger.debug("Request in chat %s finished: %s", message.chat_id, outcome)
