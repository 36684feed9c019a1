"""Access policy: who may talk to the bot where.

Three outcomes for any (chat, sender) pair:
- "allowed": the chat is configured and its allow-list is empty or names the sender
- "denied": the chat is configured but the sender is not on its allow-list
- "unknown": the chat is not configured at all (the message is ignored)
"""

from __future__ import annotations

from dataclasses import dataclass

from agentgram.errors import AuthorizationError

ALLOWED = "allowed"
DENIED = "denied"
UNKNOWN = "unknown"


@dataclass(frozen=True)
class ChatPolicy:
    """Allow-list and agent binding for one chat (group or direct)."""

    agent_type: str
    allowed_users: frozenset[str] = frozenset()

    def permits(self, sender_id: str) -> bool:
        return not self.allowed_users or sender_id in self.allowed_users


class AccessPolicy:
    """Allow-list lookups for a bot's groups and its direct chats.

    Args:
        groups: Group chat id → policy. Group ids are negative.
        direct: Policy for private chats, or None to ignore them.
    """

    def __init__(
        self,
        groups: dict[int, ChatPolicy] | None = None,
        direct: ChatPolicy | None = None,
    ) -> None:
        self._groups = dict(groups or {})
        self._direct = direct

    def lookup(self, chat_id: int, is_group: bool) -> ChatPolicy | None:
        if is_group:
            return self._groups.get(chat_id)
        return self._direct

    def check(self, chat_id: int, sender_id: str, is_group: bool) -> str:
        """Classify a sender in a chat as "allowed", "denied" or "unknown"."""
        policy = self.lookup(chat_id, is_group)
        if policy is None:
            return UNKNOWN
        return ALLOWED if policy.permits(sender_id) else DENIED

    def require(self, chat_id: int, sender_id: str, is_group: bool) -> ChatPolicy | None:
        """Return the chat's policy if the sender may use it.

        Returns None for unknown chats.

        Raises:
            AuthorizationError: the chat is configured but the sender is not allowed.
        """
        verdict = self.check(chat_id, sender_id, is_group)
        if verdict == UNKNOWN:
            return None
        if verdict == DENIED:
            raise AuthorizationError(chat_id, sender_id)
        return self.lookup(chat_id, is_group)

    @property
    def group_ids(self) -> list[int]:
        return list(self._groups.keys())
