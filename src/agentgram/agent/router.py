"""Agent types: maps a configured agent type name to a spawnable session.

Each agent type has its own name, model, SOUL and max run time. Telegram
groups and direct chats name the agent type they talk to; the router turns
that name into a running AgentSession.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

from agentgram.agent.loop import make_responder
from agentgram.agent.session import AgentSession
from agentgram.agent.soul import build_system_prompt, load_soul
from agentgram.errors import ConfigurationReferenceError


@dataclass
class AgentConfig:
    """Configuration for a single agent type.

    Attributes:
        name: Human-readable agent name (e.g. "Jarvis").
        model: LLM model identifier.
        soul_path: Path to the agent's SOUL.md file (None → built-in default).
        max_run_time: Seconds a chat waits for one reply before giving up
            (0 = wait forever).
    """

    name: str
    model: str
    soul_path: str | None = None
    max_run_time: float = 0

    def __post_init__(self):
        self._soul: str | None = None

    @property
    def soul(self) -> str:
        if self._soul is None:
            self._soul = load_soul(self.soul_path)
        return self._soul

    @property
    def system_prompt(self) -> str:
        return build_system_prompt(self.soul, agent_name=self.name)


class AgentRouter:
    """Spawns agent sessions by agent type.

    Usage::

        router = AgentRouter(
            agents={"helper": AgentConfig(name="Jarvis", model="claude-sonnet-4-5")},
            client_factory=get_portkey_client,
        )
        session = router.spawn("helper")
    """

    def __init__(
        self,
        agents: dict[str, AgentConfig],
        client_factory: Callable[[], Any],
    ) -> None:
        self._agents = dict(agents)
        self._client_factory = client_factory
        self._client: Any = None

    def get(self, agent_type: str) -> AgentConfig:
        try:
            return self._agents[agent_type]
        except KeyError:
            raise ConfigurationReferenceError(
                f'Agent type "{agent_type}" not found in configuration.'
            ) from None

    def spawn(self, agent_type: str) -> AgentSession:
        """Create a new session for ``agent_type``.

        Raises:
            ConfigurationReferenceError: the agent type is not configured.
        """
        config = self.get(agent_type)
        if self._client is None:
            self._client = self._client_factory()
        responder = make_responder(self._client, config.model, config.system_prompt)
        return AgentSession(config, responder)

    @property
    def agent_types(self) -> list[str]:
        return list(self._agents.keys())

    @property
    def agent_names(self) -> list[str]:
        return [a.name for a in self._agents.values()]
