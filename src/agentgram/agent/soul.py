"""SOUL: agent personality loading and system prompt building.

The SOUL is a markdown file that defines how an agent type behaves in chat.
It becomes the system prompt of every request the agent's sessions make.
"""

from __future__ import annotations

import os
from datetime import datetime

DEFAULT_SOUL = """\
# Who You Are

**Role:** Assistant answering messages in a Telegram chat

## Style
- Plain text only: Telegram shows your reply verbatim, no markdown rendering
- Be concise; long answers get split across several messages
- Several people may talk to you in a group, so address the question asked

## Boundaries
- Private things stay private
- If you are unsure, say so instead of guessing
"""


def load_soul(path: str | None = None) -> str:
    """Load a SOUL from a markdown file. Falls back to the built-in default."""
    if path and os.path.exists(path):
        with open(path, "r", encoding="utf-8") as f:
            content = f.read().strip()
        if content:
            return content
    return DEFAULT_SOUL


def build_system_prompt(soul: str, agent_name: str | None = None) -> str:
    """Combine the SOUL with dynamic context (agent name, current date)."""
    context_lines = ["## Context"]
    if agent_name:
        context_lines.append(f"- Your name: {agent_name}")
    context_lines.append(f"- Current date: {datetime.now().strftime('%Y-%m-%d %H:%M')}")
    return soul + "\n\n" + "\n".join(context_lines)
