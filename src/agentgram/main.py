"""Entry point for agentgram.

Supports two modes:
  1. `agentgram`: runs every configured bot until Ctrl+C (default)
  2. `agentgram --ask "question"`: asks the escalation group, prints the
     first human reply, and exits

Config is read from --config, or AGENTGRAM_CONFIG, or ~/.agentgram/config.json.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys

from agentgram.config import AppConfig
from agentgram.service import TelegramService


def main():
    parser = argparse.ArgumentParser(description="agentgram: Telegram to agent bridge")
    parser.add_argument("--config", "-c", help="Path to config.json file")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level (default: INFO)",
    )
    parser.add_argument("--ask", metavar="TEXT", help="Ask the escalation group and print the reply")
    parser.add_argument(
        "--ask-timeout",
        type=float,
        default=600.0,
        help="Seconds to wait for a reply to --ask (default: 600)",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.config:
        config = AppConfig.from_file(args.config)
    else:
        # Auto-discover ~/.agentgram/config.json (or AGENTGRAM_CONFIG env)
        config = AppConfig.load()

    errors = config.validate()
    if errors:
        print("Config errors:")
        for e in errors:
            print(f"  - {e}")
        sys.exit(1)

    try:
        if args.ask:
            reply = asyncio.run(_ask(config, args.ask, args.ask_timeout))
            if reply is None:
                print("(no reply)")
                sys.exit(2)
            print(reply)
        else:
            asyncio.run(_serve(config))
    except KeyboardInterrupt:
        pass


async def _serve(config: AppConfig) -> None:
    """Run all bots until SIGINT/SIGTERM."""
    service = TelegramService(config)

    print("agentgram: Telegram")
    print(f"  Bots: {', '.join(b.name for b in service.bots)}")
    print(f"  Agents: {', '.join(service.router.agent_names) or 'none'}")
    print("  Press Ctrl+C to stop.\n")

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            pass  # Windows: KeyboardInterrupt ends asyncio.run instead

    await service.run(stop_event)


async def _ask(config: AppConfig, question: str, timeout: float) -> str | None:
    """Send one escalation question and wait for the first reply."""
    from agentgram.escalation import TelegramEscalationProvider, ask_human

    if config.escalation is None:
        print("No escalation configured in config.json")
        sys.exit(1)

    service = TelegramService(config)
    provider = TelegramEscalationProvider(config.escalation)
    await service.start()
    try:
        async with provider.create_channel(service) as channel:
            return await ask_human(channel, question, timeout=timeout)
    finally:
        await service.stop()


if __name__ == "__main__":
    main()
