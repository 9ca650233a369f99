import argparse
import asyncio
import logging
import os
import sys
from datetime import datetime
from pathlib import Path

from codeindex.commands import COMMANDS, index_command
from codeindex.session import CodebaseIndex
from codeindex.tools import format_search_results, format_similar_results

logger = logging.getLogger(__name__)

# CLI subcommand -> host command name
_SUBCOMMANDS = {
    "index": "index",
    "status": "index-status",
    "clear": "index-clear",
}


class ConsoleNotifier:
    """Prints notifications to the terminal."""

    def __init__(self) -> None:
        self.errors = 0

    def notify(self, message: str, level: str = "info") -> None:
        if level == "error":
            self.errors += 1
            print(message, file=sys.stderr)
        elif level == "warning":
            print(f"Warning: {message}", file=sys.stderr)
        else:
            print(message)

    def set_status(self, key: str, text: str | None) -> None:
        if text:
            logger.debug("[%s] %s", key, text)


def setup_logging() -> str:
    """Configure file logging. Returns the log file path."""
    log_dir = Path("log")
    log_dir.mkdir(exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_file = log_dir / f"codeindex-{timestamp}.log"
    logging.basicConfig(
        filename=str(log_file),
        level=logging.DEBUG,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    return str(log_file)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="codeindex", description="Semantic index of a codebase"
    )
    parser.add_argument(
        "--log",
        action="store_true",
        help="Enable logging to log/codeindex-{datetime}.log",
    )
    parser.add_argument(
        "--root",
        default=os.getcwd(),
        help="Project directory to operate on (default: current directory)",
    )
    sub = parser.add_subparsers(dest="command", required=True)
    for name, command in _SUBCOMMANDS.items():
        sub.add_parser(name, help=COMMANDS[command][0])

    search = sub.add_parser("search", help="Search the index with natural language")
    search.add_argument("query")
    search.add_argument("--limit", type=int, default=10)

    similar = sub.add_parser("similar", help="Find code similar to a file or snippet")
    source = similar.add_mutually_exclusive_group(required=True)
    source.add_argument("--file")
    source.add_argument("--code")
    similar.add_argument("--limit", type=int, default=5)
    return parser


async def run(args: argparse.Namespace, notifier: ConsoleNotifier) -> int:
    """Execute one CLI command. Returns the process exit status."""
    async with CodebaseIndex(args.root) as session:
        if args.command == "index":
            summary = await index_command(session, notifier)
            return 0 if summary is not None else 1

        if args.command in _SUBCOMMANDS:
            _, handler = COMMANDS[_SUBCOMMANDS[args.command]]
            await handler(session, notifier)
            return 1 if notifier.errors else 0

        try:
            if args.command == "search":
                results = await session.search(args.query, args.limit)
                output = results and format_search_results(results)
            else:
                results = await session.find_similar(
                    file=args.file, code=args.code, limit=args.limit
                )
                output = results and format_similar_results(results)
        except Exception as e:
            logger.error("%s failed: %s", args.command, e)
            notifier.notify(f"Error: {e}", "error")
            return 1

        if results is None:
            notifier.notify("No indexed content found. Run `codeindex index` first.")
        else:
            notifier.notify(output or "No results found.")
        return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    if args.log:
        log_file = setup_logging()
        print(f"📝 Logging to: {log_file}")

    return asyncio.run(run(args, ConsoleNotifier()))


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
