"""Telegram transport built on python-telegram-bot.

Runs long-polling inside the caller's event loop (no webhook / no deploy
needed) and turns every text message into an InboundMessage on a queue.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator

from telegram import Bot, Message, Update
from telegram.error import BadRequest, TelegramError
from telegram.ext import Application, ApplicationBuilder, ContextTypes, MessageHandler, filters

from agentgram.channels.base import ChatTransport, InboundMessage
from agentgram.errors import TransportError

logger = logging.getLogger(__name__)

# Telegram hard limit is 4096 characters; keep some headroom
TG_MAX_LEN = 4090

# Minimum spacing between consecutive sends/edits, in seconds
TG_MIN_INTERVAL = 0.25

_NOT_MODIFIED = "message is not modified"


def to_inbound(message: Message) -> InboundMessage:
    """Normalize a python-telegram-bot Message into an InboundMessage."""
    user = message.from_user
    reply = message.reply_to_message
    chat = message.chat
    return InboundMessage(
        sender_id=str(user.id) if user else None,
        chat_id=chat.id,
        message_id=message.message_id,
        text=message.text or "",
        reply_to_message_id=reply.message_id if reply else None,
        chat_type=str(chat.type),
        chat_title=chat.title,
    )


class TelegramTransport(ChatTransport):
    """Long-polling Telegram transport.

    Usage::

        transport = TelegramTransport(bot_token)
        await transport.start()
        async for message in transport.inbound():
            ...
        await transport.stop()
    """

    def __init__(self, bot_token: str, poll_timeout: int = 30) -> None:
        self._bot_token = bot_token
        self._poll_timeout = poll_timeout
        self._app: Application | None = None
        self._queue: asyncio.Queue[InboundMessage | None] = asyncio.Queue()

    @property
    def name(self) -> str:
        return "telegram"

    @property
    def _bot(self) -> Bot:
        if self._app is None:
            raise TransportError("Telegram transport is not started")
        return self._app.bot

    async def start(self) -> None:
        self._app = ApplicationBuilder().token(self._bot_token).build()
        self._app.add_handler(
            MessageHandler(filters.TEXT & filters.UpdateType.MESSAGE, self._on_update)
        )
        self._app.add_error_handler(self._on_error)

        try:
            await self._app.initialize()
            await self._app.start()
            await self._app.updater.start_polling(
                drop_pending_updates=True, timeout=self._poll_timeout
            )
        except TelegramError as e:
            raise TransportError(f"Failed to start Telegram polling: {e}") from e
        logger.info("Telegram transport polling (timeout=%ds)", self._poll_timeout)

    async def stop(self) -> None:
        self._queue.put_nowait(None)
        if self._app is None:
            return
        app, self._app = self._app, None
        try:
            if app.updater and app.updater.running:
                await app.updater.stop()
            if app.running:
                await app.stop()
            await app.shutdown()
        except TelegramError as e:
            raise TransportError(f"Error stopping polling: {e}") from e
        logger.info("Telegram transport stopped")

    async def get_me(self) -> str:
        try:
            me = await self._bot.get_me()
        except TelegramError as e:
            raise TransportError(f"getMe failed: {e}") from e
        return me.username

    async def inbound(self) -> AsyncIterator[InboundMessage]:
        while True:
            message = await self._queue.get()
            if message is None:
                return
            yield message

    async def send(self, chat_id: int, text: str) -> int:
        try:
            sent = await self._bot.send_message(chat_id=chat_id, text=text)
        except TelegramError as e:
            raise TransportError(f"sendMessage to {chat_id} failed: {e}") from e
        return sent.message_id

    async def edit(self, chat_id: int, message_id: int, text: str) -> None:
        try:
            await self._bot.edit_message_text(text=text, chat_id=chat_id, message_id=message_id)
        except BadRequest as e:
            if _NOT_MODIFIED in str(e).lower():
                logger.debug("Edit of %s/%s was a no-op", chat_id, message_id)
                return
            raise TransportError(f"editMessageText {chat_id}/{message_id} failed: {e}") from e
        except TelegramError as e:
            raise TransportError(f"editMessageText {chat_id}/{message_id} failed: {e}") from e

    # ── python-telegram-bot callbacks ──

    async def _on_update(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        message = update.effective_message
        if message is None:
            return
        await self._queue.put(to_inbound(message))

    async def _on_error(self, update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
        logger.error("Telegram update error: %s", context.error)
