"""Terminal front end for the Linear weather agent.

Runs the session loop locally and prints each activity instead of
publishing it to Linear.  Every line typed is one turn under a fresh
session id.  The Linear integration itself lives in ``src/server.py``.

Usage:
    python -m src.main
    python -m src.main --debug              # our DEBUG logs plus HTTP traffic
    python -m src.main --max-iterations 5
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import uuid

from src.activities import SessionStatus
from src.agent import SessionLoop
from src.config import MAX_ITERATIONS, configure_logging
from src.services.open_data_client import close_open_data_client
from src.sinks import ConsoleActivitySink

logger = logging.getLogger(__name__)

QUIT_WORDS = frozenset({"exit", "quit", "q"})

_STATUS_NOTES = {
    SessionStatus.AWAITING_INPUT: "(the agent is waiting for more details)",
    SessionStatus.FAILED: "(the turn failed)",
    SessionStatus.EXHAUSTED: "(the iteration limit was reached)",
}

BANNER = """
============================================================
  Linear Weather Agent - CLI
============================================================
  Ask about the weather or local time anywhere.
  Type 'quit' to exit.
============================================================
"""


async def _read_prompt() -> str | None:
    """Next non-empty line from stdin, or ``None`` when the user is done."""
    while True:
        try:
            line = (await asyncio.to_thread(input, "You: ")).strip()
        except EOFError:
            print()
            return None
        if line.lower() in QUIT_WORDS:
            return None
        if line:
            return line


async def _chat(loop: SessionLoop) -> None:
    try:
        while (prompt := await _read_prompt()) is not None:
            session_id = str(uuid.uuid4())
            logger.info("Turn in session %s", session_id)
            result = await loop.handle_prompt(session_id, prompt)
            if note := _STATUS_NOTES.get(result.status):
                print(f"   {note}")
            print()
    finally:
        await close_open_data_client()
    print("Goodbye!")


def main():
    parser = argparse.ArgumentParser(description="Linear Weather Agent CLI")
    parser.add_argument(
        "--debug", action="store_true",
        help="Log debug output, including every HTTP request",
    )
    parser.add_argument(
        "--max-iterations", type=int, default=MAX_ITERATIONS,
        help=f"Model cycles allowed per turn (default: {MAX_ITERATIONS})",
    )
    args = parser.parse_args()
    if args.max_iterations < 1:
        parser.error("--max-iterations must be at least 1")

    if args.debug:
        configure_logging(app_level=logging.DEBUG, root_level=logging.DEBUG)
    else:
        configure_logging()

    print(BANNER)
    loop = SessionLoop(ConsoleActivitySink(), max_iterations=args.max_iterations)
    try:
        asyncio.run(_chat(loop))
    except KeyboardInterrupt:
        print("\nGoodbye!")


if __name__ == "__main__":
    main()
