"""Exception hierarchy shared by the bridge components."""

from __future__ import annotations


class AgentgramError(Exception):
    """Base class for all agentgram errors."""


class TransportError(AgentgramError):
    """A send/edit/poll call to the chat platform failed."""


class AuthorizationError(AgentgramError):
    """The sender is not on the allow-list of the chat they wrote in."""

    def __init__(self, chat_id: int, sender_id: str) -> None:
        super().__init__(f"User {sender_id} is not authorized in chat {chat_id}")
        self.chat_id = chat_id
        self.sender_id = sender_id


class ConfigurationReferenceError(AgentgramError):
    """Calling code named a bot, group or agent type that is not configured."""


class AgentTimeoutError(AgentgramError):
    """An agent did not finish a request within its max run time."""

    def __init__(self, max_run_time: float) -> None:
        super().__init__(f"Agent timed out after {max_run_time:g} seconds.")
        self.max_run_time = max_run_time


class NoResponseError(AgentgramError):
    """An agent finished a request without producing any chat output."""

    def __init__(self) -> None:
        super().__init__("No response received from agent.")


class ChannelClosedError(AgentgramError):
    """A CommunicationChannel was used after close()."""
