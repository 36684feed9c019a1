"""Agent event bridge: drives one chat request through an agent session.

For each request the bridge waits for the agent to be idle, submits the
text, then pulls the agent's events from the position it had before the
submit: chat fragments go to the OutputAggregator, system notices are sent
straight away, and the matching InputHandled ends the request. A max run
time turns into an abort token that stops the pull; the agent itself keeps
running.
"""

from __future__ import annotations

import asyncio
import logging
import re
from contextlib import aclosing

from agentgram.agent.events import ChatOutput, InputHandled, SystemOutput
from agentgram.agent.session import AgentSession
from agentgram.channels.base import ChatTransport
from agentgram.errors import AgentTimeoutError, NoResponseError, TransportError
from agentgram.queue.command_queue import CommandQueue
from agentgram.relay.aggregator import OutputAggregator

logger = logging.getLogger(__name__)

_ANSI_RE = re.compile(r"[\u001b\u009b][\[()#;?]*(?:[0-9]{1,4}(?:;[0-9]{0,4})*)?[0-9A-ORZcf-nqry=><]")

# Request outcomes
COMPLETED = "completed"
NO_RESPONSE = "no_response"
TIMED_OUT = "timed_out"
DETACHED = "detached"


def strip_ansi(text: str) -> str:
    """Remove terminal escape sequences agents sometimes emit."""
    return _ANSI_RE.sub("", text)


class AgentEventBridge:
    """Connects agent sessions to a chat through the aggregator."""

    def __init__(
        self,
        transport: ChatTransport,
        aggregator: OutputAggregator,
        command_queue: CommandQueue,
    ) -> None:
        self._transport = transport
        self._aggregator = aggregator
        self._command_queue = command_queue

    async def run(self, chat_id: int, agent: AgentSession, text: str) -> str:
        """Submit ``text`` to ``agent`` and relay its reply into the chat.

        Returns:
            One of "completed", "no_response", "timed_out" or "detached"
            (the session closed before answering).
        """
        async with self._command_queue.lock(chat_id):
            await agent.wait_idle()

            cursor = agent.event_cursor()
            request_id = agent.submit(text)
            max_run_time = agent.config.max_run_time

            abort = asyncio.Event()
            timer = None
            if max_run_time > 0:
                timer = asyncio.get_running_loop().call_later(max_run_time, abort.set)

            produced = False
            completed = False
            try:
                async with aclosing(agent.events(cursor, abort)) as events:
                    async for event in events:
                        match event:
                            case ChatOutput(message=message):
                                produced = True
                                self._aggregator.append(chat_id, strip_ansi(message))
                            case SystemOutput():
                                await self._send(chat_id, strip_ansi(event.render()))
                            case InputHandled(request_id=handled_id):
                                if handled_id == request_id:
                                    completed = True
                                    break
            finally:
                if timer is not None:
                    timer.cancel()

            # Whatever was buffered is shown before any notice
            await self._aggregator.finish(chat_id)

            if completed:
                if produced:
                    return COMPLETED
                await self._send(chat_id, str(NoResponseError()))
                return NO_RESPONSE

            if abort.is_set():
                logger.warning("Agent for chat %s timed out after %ss", chat_id, max_run_time)
                await self._send(chat_id, str(AgentTimeoutError(max_run_time)))
                return TIMED_OUT

            logger.info("Agent for chat %s closed before answering", chat_id)
            return DETACHED

    async def _send(self, chat_id: int, text: str) -> None:
        try:
            await self._transport.send(chat_id, text)
        except TransportError as e:
            logger.error("Failed to send to chat %s: %s", chat_id, e)
