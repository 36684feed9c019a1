"""Session registry: exactly one live agent session per chat.

Sessions are created lazily on the first message for a chat and live until
the whole bot shuts down. There is no idle eviction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from agentgram.agent.session import AgentSession

logger = logging.getLogger(__name__)


@dataclass
class Session:
    chat_id: int
    agent: AgentSession
    agent_type: str
    created_at: datetime = field(default_factory=datetime.now)


class SessionRegistry:
    """Maps chat ids to their agent sessions.

    ``spawn`` is called with an agent type and must return a new
    AgentSession (usually ``AgentRouter.spawn``).
    """

    def __init__(self, spawn: Callable[[str], AgentSession]) -> None:
        self._spawn = spawn
        self._sessions: dict[int, Session] = {}

    def get_or_create(self, chat_id: int, agent_type: str) -> Session:
        """Return the chat's session, spawning it on first use.

        Raises:
            ConfigurationReferenceError: ``agent_type`` is not configured.
        """
        session = self._sessions.get(chat_id)
        if session is None:
            session = Session(chat_id=chat_id, agent=self._spawn(agent_type), agent_type=agent_type)
            self._sessions[chat_id] = session
            logger.info("Spawned %s agent for chat %s", agent_type, chat_id)
        return session

    def get(self, chat_id: int) -> Session | None:
        return self._sessions.get(chat_id)

    async def destroy_all(self) -> None:
        """Tear down every session and empty the registry."""
        sessions = list(self._sessions.values())
        self._sessions.clear()
        for session in sessions:
            try:
                await session.agent.aclose()
            except Exception:
                logger.exception("Failed to tear down agent for chat %s", session.chat_id)
        if sessions:
            logger.info("Destroyed %d agent session(s)", len(sessions))

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, chat_id: object) -> bool:
        return chat_id in self._sessions

    @property
    def chat_ids(self) -> list[int]:
        return list(self._sessions.keys())
