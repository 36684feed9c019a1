"""Reply correlation: remembers which channel sent which message.

When a human replies to a message a CommunicationChannel sent, the reply
must be routed back to that channel instead of starting an agent request.
Each entry also records the bot identity that sent the message, so a reply
addressed to another bot sharing the same chat is never claimed.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from agentgram.relay.channel import CommunicationChannel


@dataclass(frozen=True)
class TrackedMessage:
    chat_id: int
    message_id: int
    origin_identity: str
    channel: CommunicationChannel


class ReplyCorrelator:
    """Maps outbound (chat id, message id) pairs to the channel that produced them.

    Telegram message ids are only unique inside one chat, so every lookup
    is scoped to the chat the reply arrived in.
    """

    def __init__(self) -> None:
        self._tracked: dict[tuple[int, int], TrackedMessage] = {}

    def track(
        self, chat_id: int, message_id: int, origin_identity: str, channel: CommunicationChannel
    ) -> None:
        self._tracked[(chat_id, message_id)] = TrackedMessage(
            chat_id, message_id, origin_identity, channel
        )

    def resolve(
        self, chat_id: int, reply_to_message_id: int, observing_identity: str
    ) -> CommunicationChannel | None:
        """Return the channel a reply in ``chat_id`` belongs to, or None.

        None when the id was never tracked in that chat, or when it was sent
        by a bot identity other than ``observing_identity``.
        """
        entry = self._tracked.get((chat_id, reply_to_message_id))
        if entry is None or entry.origin_identity != observing_identity:
            return None
        return entry.channel

    def forget(self, channel: CommunicationChannel) -> None:
        """Drop every entry that belongs to ``channel``."""
        for message_id in channel.tracked_message_ids:
            key = (channel.chat_id, message_id)
            entry = self._tracked.get(key)
            if entry is not None and entry.channel is channel:
                del self._tracked[key]

    def __len__(self) -> int:
        return len(self._tracked)

    def __contains__(self, key: object) -> bool:
        """``(chat_id, message_id) in correlator``."""
        return key in self._tracked
