"""Agent event types.

Every agent session appends these to its event log. Consumers read the log
from a cursor and dispatch on the event class.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Union

SystemLevel = Literal["info", "warning", "error"]


@dataclass(frozen=True)
class ChatOutput:
    """A fragment of the agent's conversational reply."""

    message: str


@dataclass(frozen=True)
class SystemOutput:
    """An out-of-band notice from the agent runtime (not part of the reply)."""

    level: SystemLevel
    message: str

    def render(self) -> str:
        return f"[{self.level.upper()}]: {self.message}"


@dataclass(frozen=True)
class InputHandled:
    """The agent finished processing the input with this request id."""

    request_id: str


AgentEvent = Union[ChatOutput, SystemOutput, InputHandled]
