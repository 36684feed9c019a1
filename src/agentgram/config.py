"""Configuration: centralizes Portkey client setup and bot settings.

Supports two sources:
1. Module-level constants (env-var driven, .env loaded on import)
2. JSON config file at ~/.agentgram/config.json (bots, groups, agent types)

Example config.json::

    {
      "default_model": "@Anthropic/eu.anthropic.claude-sonnet-4-5-20250929-v1:0",
      "agents": {
        "helper": {"name": "Jarvis", "max_run_time": 120}
      },
      "telegram": {
        "bots": {
          "main": {
            "bot_token": "123:abc",
            "join_message": "Jarvis is online.",
            "groups": {
              "ops": {"group_id": -1001234, "allowed_users": ["42"], "agent_type": "helper"}
            },
            "direct": {"allowed_users": ["42"], "agent_type": "helper"}
          }
        }
      },
      "escalation": {"type": "telegram", "bot": "main", "group": "ops"}
    }
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import Any

from dotenv import load_dotenv

# Load .env from project root if present
load_dotenv()

# ── Portkey / LLM Settings ──

PORTKEY_API_KEY = os.getenv("PORTKEY_API_KEY", "")
PORTKEY_BASE_URL = os.getenv("PORTKEY_BASE_URL", "https://api.portkey.ai/v1")
DEFAULT_MODEL = os.getenv(
    "AGENTGRAM_MODEL", "@Anthropic/eu.anthropic.claude-sonnet-4-5-20250929-v1:0"
)

# ── Workspace Settings ──

WORKSPACE_DIR = os.path.expanduser(os.getenv("AGENTGRAM_WORKSPACE", "~/.agentgram"))

# ── Telegram Settings ──

TELEGRAM_BOT_TOKEN = os.getenv("TELEGRAM_BOT_TOKEN", "")
DEFAULT_MAX_RUN_TIME = 300


def get_portkey_client():
    """Create an async Portkey client instance.

    - api_key from PORTKEY_API_KEY env var
    - base_url from PORTKEY_BASE_URL env var
    """
    from portkey_ai import AsyncPortkey

    return AsyncPortkey(
        api_key=PORTKEY_API_KEY,
        base_url=PORTKEY_BASE_URL,
    )


# ── JSON Config File Support ──


@dataclass
class AgentDef:
    """Agent type definition from config file."""

    name: str
    model: str = ""
    soul_path: str | None = None
    max_run_time: float = DEFAULT_MAX_RUN_TIME


@dataclass
class GroupDef:
    """Telegram group a bot serves."""

    group_id: int
    agent_type: str
    allowed_users: list[str] = field(default_factory=list)


@dataclass
class DirectDef:
    """Private-chat settings of a bot."""

    agent_type: str
    allowed_users: list[str] = field(default_factory=list)


@dataclass
class BotDef:
    """One Telegram bot identity."""

    name: str
    bot_token: str = ""
    join_message: str | None = None
    groups: dict[str, GroupDef] = field(default_factory=dict)
    direct: DirectDef | None = None


@dataclass
class EscalationDef:
    """Where human escalations are sent."""

    bot: str
    group: str
    type: str = "telegram"


@dataclass
class AppConfig:
    """Full application configuration loaded from config.json.

    Provides sensible defaults for all settings. Can be constructed
    from a JSON file, from a dict, or with no arguments (all defaults).
    """

    workspace: str = field(default_factory=lambda: WORKSPACE_DIR)
    default_model: str = field(default_factory=lambda: DEFAULT_MODEL)
    agents: dict[str, AgentDef] = field(default_factory=dict)
    bots: dict[str, BotDef] = field(default_factory=dict)
    escalation: EscalationDef | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AppConfig:
        """Build config from a parsed JSON dict."""
        agents = {}
        for key, agent_data in data.get("agents", {}).items():
            agents[key] = AgentDef(
                name=agent_data.get("name", key.capitalize()),
                model=agent_data.get("model", ""),
                soul_path=agent_data.get("soul_path"),
                max_run_time=agent_data.get("max_run_time", DEFAULT_MAX_RUN_TIME),
            )

        bots = {}
        for key, bot_data in data.get("telegram", {}).get("bots", {}).items():
            groups = {}
            for group_name, group_data in bot_data.get("groups", {}).items():
                groups[group_name] = GroupDef(
                    group_id=int(group_data["group_id"]),
                    agent_type=group_data["agent_type"],
                    allowed_users=[str(u) for u in group_data.get("allowed_users", [])],
                )

            direct = None
            if bot_data.get("direct"):
                direct_data = bot_data["direct"]
                direct = DirectDef(
                    agent_type=direct_data["agent_type"],
                    allowed_users=[str(u) for u in direct_data.get("allowed_users", [])],
                )

            bots[key] = BotDef(
                name=bot_data.get("name", key),
                bot_token=bot_data.get("bot_token") or TELEGRAM_BOT_TOKEN,
                join_message=bot_data.get("join_message"),
                groups=groups,
                direct=direct,
            )

        escalation = None
        if data.get("escalation"):
            esc_data = data["escalation"]
            escalation = EscalationDef(
                bot=esc_data["bot"],
                group=esc_data["group"],
                type=esc_data.get("type", "telegram"),
            )

        return cls(
            workspace=os.path.expanduser(data.get("workspace", WORKSPACE_DIR)),
            default_model=data.get("default_model", DEFAULT_MODEL),
            agents=agents,
            bots=bots,
            escalation=escalation,
        )

    @classmethod
    def from_file(cls, path: str) -> AppConfig:
        """Load config from a JSON file. Returns defaults if file doesn't exist."""
        if not os.path.exists(path):
            return cls()

        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return cls.from_dict(data)

    @classmethod
    def load(cls, workspace: str | None = None) -> AppConfig:
        """Load config from the standard location.

        Checks:
        1. AGENTGRAM_CONFIG env var
        2. <workspace>/config.json
        3. Falls back to defaults
        """
        config_path = os.getenv("AGENTGRAM_CONFIG")
        if config_path and os.path.exists(config_path):
            return cls.from_file(config_path)

        ws = workspace or WORKSPACE_DIR
        default_path = os.path.join(ws, "config.json")
        return cls.from_file(default_path)

    def model_for(self, agent: AgentDef) -> str:
        return agent.model or self.default_model

    def validate(self) -> list[str]:
        """Validate the config and return a list of problems (empty = valid)."""
        problems: list[str] = []

        if not self.default_model:
            problems.append("No default_model specified")

        if not self.bots:
            problems.append("No telegram bots configured")

        for name, agent in self.agents.items():
            if agent.soul_path and not os.path.exists(agent.soul_path):
                problems.append(f"Agent '{name}': soul_path '{agent.soul_path}' not found")
            if agent.max_run_time < 0:
                problems.append(f"Agent '{name}': max_run_time must not be negative")

        for name, bot in self.bots.items():
            if not bot.bot_token:
                problems.append(f"Bot '{name}': bot_token is required")
            for group_name, group in bot.groups.items():
                if group.group_id >= 0:
                    problems.append(
                        f"Bot '{name}' group '{group_name}': group_id must be a negative number"
                    )
                if group.agent_type not in self.agents:
                    problems.append(
                        f"Bot '{name}' group '{group_name}': unknown agent type '{group.agent_type}'"
                    )
            if bot.direct and bot.direct.agent_type not in self.agents:
                problems.append(
                    f"Bot '{name}' direct: unknown agent type '{bot.direct.agent_type}'"
                )

        if self.escalation:
            esc = self.escalation
            if esc.type != "telegram":
                problems.append(f"Escalation: unsupported type '{esc.type}'")
            bot = self.bots.get(esc.bot)
            if bot is None:
                problems.append(f"Escalation: bot '{esc.bot}' not found")
            elif esc.group not in bot.groups:
                problems.append(f"Escalation: group '{esc.group}' not found in bot '{esc.bot}'")

        return problems
