"""
Console runner for one realtime voice session.

Usage:
    OPENAI_API_KEY=sk-... python -m voice_session

Talks through the default microphone until Ctrl+C (or until the provider
drops the channel), then prints the session summary and progress cards.
Configuration comes from the environment (see voice_session.config).
"""
import asyncio
import os
import signal
import sys

from logging_setup import get_logger, Component, setup_logging
from .config import RealtimeConfig, load_env_files
from .errors import RealtimeSessionError, get_user_message
from .instructions import build_instructions
from .orchestrator import RealtimeOrchestrator
from .persistence import SessionHistoryWriter


logger = get_logger(Component.VOICE_SESSION)


class ConsoleListener:
    """Prints finished turns and wakes the runner when the session ends."""

    def __init__(self, ended: asyncio.Event):
        self._ended = ended

    def on_transcript_entry(self, entry):
        if entry.speaker == "user":
            print(f"you: {entry.content}", file=sys.stderr)

    def on_session_error(self, error):
        print(get_user_message(error), file=sys.stderr)

    def on_session_ended(self, session):
        self._ended.set()


async def run(config: RealtimeConfig, secret: str) -> int:
    ended = asyncio.Event()
    orchestrator = RealtimeOrchestrator(config)
    orchestrator.subscribe(ConsoleListener(ended))
    if config.session_history_path:
        orchestrator.subscribe(SessionHistoryWriter(config.session_history_path))

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, ended.set)

    instructions = build_instructions(config.therapist_preset, custom_instructions=config.custom_instructions)
    try:
        await orchestrator.connect(secret, config.voice, instructions)
    except RealtimeSessionError as e:
        logger.error("Could not start session", category=e.category, error=str(e))
        print(get_user_message(e), file=sys.stderr)
        return 1

    print("Connected - speak now (Ctrl+C to end).", file=sys.stderr)
    await ended.wait()

    session = await orchestrator.disconnect()
    print(f"\n{session.summary}", file=sys.stderr)
    for card in session.progress_cards:
        print(f"  {card.title}: {card.description} ({card.milestone.severity})", file=sys.stderr)
    return 0


if __name__ == "__main__":
    setup_logging(level=os.environ.get("LOG_LEVEL", "INFO"), use_json=True)
    load_env_files()
    sys.exit(asyncio.run(run(RealtimeConfig.from_env(), os.environ.get("OPENAI_API_KEY", ""))))
