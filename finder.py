#!/usr/bin/env python3
"""Book Finder CLI - search the Open Library catalog by title."""
import argparse
import asyncio
import sys
import threading
import json
from typing import List
from tabulate import tabulate
from bookfinder.client import CatalogClient
from bookfinder.config import Config
from bookfinder.controller import SearchController
from bookfinder.models import ResultItem
from bookfinder.session import SearchSession
from bookfinder.state import Empty, Failed, Idle, Loading, SessionState, Success
import logging

logger = logging.getLogger(__name__)

NO_RESULTS_MESSAGE = "No books found. Try a different title."


def log_level(config: Config, verbose: bool = False) -> str:
    """Logging level name for the CLI; unknown names fall back to INFO."""
    if verbose:
        return "DEBUG"
    level = (config.LOG_LEVEL or "").strip().upper()
    if not isinstance(logging.getLevelName(level), int):
        return "INFO"
    return level


def setup_logging(config: Config, verbose: bool = False):
    """Configure root logging for the CLI."""
    logging.basicConfig(
        level=log_level(config, verbose),
        format='%(asctime)s - %(levelname)s - %(message)s'
    )


def _truncate(text: str, width: int) -> str:
    return text[:width] + "..." if len(text) > width else text


def format_results(results: List[ResultItem], format_type: str) -> str:
    """Format result items in the requested output format."""
    if format_type == "table":
        headers = ["Title", "Authors", "First published", "Cover"]
        rows = [
            [
                _truncate(item.title, 50),
                _truncate(item.authors, 30),
                item.year or "Unknown",
                item.cover_url or "N/A"
            ]
            for item in results
        ]
        return tabulate(rows, headers=headers, tablefmt="grid")

    elif format_type == "json":
        items = [
            {
                "key": item.key,
                "title": item.title,
                "authors": item.authors,
                "year": item.year,
                "cover_url": item.cover_url,
                "work_url": item.work_url
            }
            for item in results
        ]
        return json.dumps(items, indent=2)

    elif format_type == "compact":
        return "\n".join(
            f"{i}. {item.title} - {item.authors}" for i, item in enumerate(results, 1)
        )

    raise ValueError(f"Unknown format: {format_type}")


def render_state(state: SessionState, format_type: str) -> str:
    """Describe a session state the way a results page would show it."""
    if isinstance(state, Idle):
        return "Type a title to search."
    if isinstance(state, Loading):
        return f"Searching for {state.query!r}..."
    if isinstance(state, Empty):
        return NO_RESULTS_MESSAGE
    if isinstance(state, Failed):
        return state.message
    if isinstance(state, Success):
        output = format_results(list(state.results), format_type)
        if state.truncated:
            output += f"\n(showing the first {len(state.results)} matches; refine the title to see others)"
        return output
    raise TypeError(f"Unknown session state: {state!r}")


async def search_once(args, config: Config) -> int:
    """Run one search through the controller and print the final state."""
    async with CatalogClient(
        search_url=config.OPENLIBRARY_SEARCH_URL,
        limit=args.limit,
        timeout=config.DEFAULT_TIMEOUT
    ) as client:
        controller = SearchController(SearchSession(client))
        controller.on_query_change(args.query)

        task = controller.on_submit()
        if task is None:
            logger.error("Query must not be empty")
            return 1
        await task

        state = controller.get_state()
        print(render_state(state, args.format))
        return 1 if isinstance(state, Failed) else 0


def start_line_reader(stream, loop: asyncio.AbstractEventLoop) -> asyncio.Queue:
    """
    Read ``stream`` line by line on a daemon thread.

    Lines are handed to the event loop through a queue; "" marks end of
    input. The thread never blocks interpreter shutdown, so Ctrl-C exits
    even while a read is pending.
    """
    queue: asyncio.Queue = asyncio.Queue()

    def pump():
        try:
            for line in iter(stream.readline, ""):
                loop.call_soon_threadsafe(queue.put_nowait, line)
            loop.call_soon_threadsafe(queue.put_nowait, "")
        except RuntimeError:
            # Event loop already closed
            return

    threading.Thread(target=pump, name="stdin-reader", daemon=True).start()
    return queue


async def interactive(args, config: Config, stream=None) -> int:
    """
    Read titles from stdin until ``:quit``.

    Each line submits a new search, superseding one still in flight;
    ``:clear`` resets the session. Every state change is printed.
    """
    lines = start_line_reader(stream or sys.stdin, asyncio.get_running_loop())

    async with CatalogClient(
        search_url=config.OPENLIBRARY_SEARCH_URL,
        limit=args.limit,
        timeout=config.DEFAULT_TIMEOUT
    ) as client:
        controller = SearchController(SearchSession(client))
        controller.subscribe(lambda state: print(render_state(state, args.format), flush=True))

        print("Enter a title to search, :clear to reset, :quit to exit.", flush=True)
        while True:
            line = await lines.get()
            if not line:
                # End of input: let the last search finish
                break
            text = line.strip()
            if text == ":quit":
                controller.close()
                break
            if text == ":clear":
                controller.on_clear()
                continue
            controller.on_query_change(text)
            controller.on_submit()

        await controller.wait_idle()

    return 0


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Book Finder - search books by title using the Open Library catalog",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Search with defaults
  %(prog)s search "the alchemist"

  # Compact output, fewer results
  %(prog)s search "dune" --limit 5 --format compact

  # Type titles one per line
  %(prog)s interactive
        """
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    config = Config()

    # Search command
    search_parser = subparsers.add_parser("search", help="Search for books by title")
    search_parser.add_argument("query", help="Title to search for")
    search_parser.add_argument("--limit", type=int, default=config.RESULT_LIMIT, help=f"Max results (default: {config.RESULT_LIMIT})")
    search_parser.add_argument("--format", choices=["table", "json", "compact"], default="table", help="Output format")

    # Interactive command
    interactive_parser = subparsers.add_parser("interactive", help="Search titles typed on stdin")
    interactive_parser.add_argument("--limit", type=int, default=config.RESULT_LIMIT, help=f"Max results (default: {config.RESULT_LIMIT})")
    interactive_parser.add_argument("--format", choices=["table", "json", "compact"], default="compact", help="Output format")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    setup_logging(config, args.verbose)

    if args.limit < 1:
        parser.error("--limit must be at least 1")

    try:
        if args.command == "search":
            sys.exit(asyncio.run(search_once(args, config)))

        elif args.command == "interactive":
            sys.exit(asyncio.run(interactive(args, config)))

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(0)
    except Exception as e:
        logger.error(f"Error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
