"""Streaming LLM reply: the responder behind every agent session.

Calls the LLM via Portkey (OpenAI-compatible) with ``stream=True`` and
yields content deltas as they arrive, so the bridge can show the reply
growing in the chat.
"""

from __future__ import annotations

import json
from typing import Any, AsyncIterator

from agentgram.agent.session import Responder

# Rough budget for the conversation sent with each request
HISTORY_TOKEN_BUDGET = 100_000


def estimate_tokens(messages: list[dict]) -> int:
    """Rough token estimate: serialize to JSON and divide char count by 4."""
    return len(json.dumps(messages, ensure_ascii=False)) // 4


def trim_history(messages: list[dict], budget: int = HISTORY_TOKEN_BUDGET) -> list[dict]:
    """Drop the oldest messages until the estimate fits ``budget``.

    Always keeps the newest message, and never starts the window on an
    assistant turn.
    """
    trimmed = list(messages)
    while len(trimmed) > 1 and estimate_tokens(trimmed) > budget:
        trimmed.pop(0)
        while len(trimmed) > 1 and trimmed[0].get("role") != "user":
            trimmed.pop(0)
    return trimmed


async def stream_reply(
    client: Any,
    model: str,
    system_prompt: str,
    messages: list[dict[str, Any]],
    max_tokens: int = 4096,
    history_budget: int = HISTORY_TOKEN_BUDGET,
) -> AsyncIterator[str]:
    """Stream one assistant reply for ``messages``.

    Args:
        client: AsyncPortkey client instance.
        model: Model identifier (e.g. "@Anthropic/eu.anthropic.claude-sonnet-4-5-20250929-v1:0").
        system_prompt: The system prompt (SOUL + context).
        messages: Conversation so far, ending with the user's message.
        max_tokens: Completion limit.
        history_budget: Token budget for the conversation window.

    Yields:
        Reply text fragments in order.
    """
    api_messages = [{"role": "system", "content": system_prompt}]
    api_messages.extend(trim_history(messages, history_budget))

    stream = await client.chat.completions.create(
        model=model,
        messages=api_messages,
        max_tokens=max_tokens,
        stream=True,
    )
    async for chunk in stream:
        if not chunk.choices:
            continue
        content = getattr(chunk.choices[0].delta, "content", None)
        if content:
            yield content


def make_responder(client: Any, model: str, system_prompt: str) -> Responder:
    """Bind a client and model into a session Responder."""

    def responder(messages: list[dict[str, Any]]) -> AsyncIterator[str]:
        return stream_reply(client, model, system_prompt, messages)

    return responder
