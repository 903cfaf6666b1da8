"""
GovConnect assistant entry point.

Runs the conversation core against the configured services: Gemini for the
model, and the case, channel and knowledge services over HTTP. Supports a
live chat mode (real collaborators) and the offline console demo.

Usage:
    Live chat:    python main.py chat [user_id] [whatsapp|webchat]
    Console mode: python main.py console
"""

import asyncio
import logging
import sys

from src.config import settings

logger = logging.getLogger(__name__)


async def _chat_loop(user_id: str, channel: str) -> None:
    """Read citizen messages from stdin and answer through the real pipeline."""
    from src.conversation.orchestrator import build_orchestrator
    from src.schemas.conversation_schema import Channel, TurnInput

    orchestrator = build_orchestrator()
    logger.info(
        "Chat session started for %s via %s (assistant '%s')",
        user_id, channel, settings.assistant_name,
    )
    try:
        while True:
            line = await asyncio.to_thread(input, "> ")
            text = line.strip()
            if text.lower() in ("quit", "exit", "q"):
                break
            if not text:
                continue
            result = await orchestrator.process(
                TurnInput(user_id=user_id, channel=Channel(channel), message=text)
            )
            if result.response_text:
                print(result.response_text)
            if result.guidance_text:
                print(result.guidance_text)
    except (EOFError, KeyboardInterrupt):
        pass
    finally:
        drained = await orchestrator.close()
        logger.info("Chat session ended (drained=%s)", drained)


def _run_chat_mode(args: list[str]) -> None:
    """Start a live chat against the configured services (requires API keys)."""
    user_id = args[0] if args else "console-user"
    channel = args[1] if len(args) > 1 else "webchat"
    if channel not in ("whatsapp", "webchat"):
        print(f"Unknown channel: {channel}")
        sys.exit(2)
    asyncio.run(_chat_loop(user_id, channel))


def _run_console_mode(args: list[str]) -> None:
    """Start the offline console demo (no API keys required)."""
    from console_demo import main as console_main

    console_main(args)


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] == "console":
        _run_console_mode(sys.argv[2:])
    elif len(sys.argv) > 1 and sys.argv[1] == "chat":
        _run_chat_mode(sys.argv[2:])
    else:
        print(__doc__)
