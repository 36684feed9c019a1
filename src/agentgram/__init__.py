"""agentgram: bridges Telegram chats to a pool of agent sessions."""

__version__ = "0.1.0"
