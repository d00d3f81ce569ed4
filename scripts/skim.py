#!/usr/bin/env python3
"""Command-line interface for skimmer."""

import sys
import asyncio
import argparse
import logging
from pathlib import Path

import structlog

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from skimmer.commands import Commands
from skimmer.errors import SkimmerError, FeedAlreadyExistsError
from skimmer.session import messages as msg
from skimmer.session.loop import SessionLoop
from skimmer.session.state import Mode

BROWSE_HELP = """keys: j/k move  o N open  n/p next/prev  b back  r read  f favourite
      a show read  F favourites  m mark all read  / QUERY search  R refresh
      x open link  q quit"""


def configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(level))


def print_header(title):
    print(f"\n{'='*60}")
    print(f" {title}")
    print('='*60)


def cmd_list(commands, args):
    """Print visible items."""
    print(commands.list_items(), end="")


def cmd_add(commands, args):
    """Add a feed to the config file."""
    try:
        feed = commands.add_feed(args.url, args.name, args.tag)
    except FeedAlreadyExistsError:
        print(f"Feed already exists: {args.url}")
        return 1
    print(f"Added {feed.display_name}")


def cmd_refresh(commands, args):
    """Fetch every feed."""
    errors = asyncio.run(commands.refresh())
    for error in errors:
        print(error)
    print(f"Unread: {commands.count_unread()}")


def cmd_unread(commands, args):
    """Print the unread count."""
    print(commands.count_unread())


def cmd_config(commands, args):
    """Print the effective configuration."""
    print(commands.show_config(), end="")


def cmd_monitor(commands, args):
    """Refresh on the configured interval until interrupted."""
    try:
        asyncio.run(commands.monitor())
    except KeyboardInterrupt:
        pass


def render(state):
    print_header(state.status or "skimmer")
    for error in state.errors:
        print(f"  ! {error}")
    for index, item in enumerate(state.items):
        marker = ">" if index == state.cursor else " "
        flags = ("*" if item.favourite else " ") + ("r" if item.read else " ")
        print(f"{marker} {index:3} {flags} {item.title}  [{item.feed_name}]")
    if state.mode == Mode.ARTICLE:
        print(f"\n  open article: {state.selected}")


def parse_key(line):
    """Translate one input line into a message."""
    key, _, arg = line.strip().partition(" ")
    simple = {
        "j": msg.MoveCursor(1), "k": msg.MoveCursor(-1),
        "n": msg.Next(), "p": msg.Prev(), "b": msg.Back(),
        "r": msg.ToggleRead(), "f": msg.ToggleFavourite(),
        "a": msg.ToggleShowRead(), "F": msg.ToggleShowFavourites(),
        "m": msg.MarkAllRead(), "R": msg.RequestRefresh(),
        "x": msg.OpenLink(), "q": msg.Quit(),
    }
    if key in simple:
        return simple[key]
    if key == "o" and arg.isdigit():
        return msg.Open(int(arg))
    if key == "/":
        return msg.SetQuery(arg) if arg else msg.ClearQuery()
    return None


async def browse(commands):
    loop = SessionLoop(commands.navigator(), on_change=render)

    async def read_input():
        while True:
            line = await asyncio.to_thread(sys.stdin.readline)
            if not line:
                loop.post(msg.Quit())
                return
            message = parse_key(line)
            if message is None:
                print(BROWSE_HELP)
                continue
            loop.post(message)
            if isinstance(message, msg.Quit):
                return

    reader = asyncio.create_task(read_input())
    try:
        await loop.run()
    finally:
        reader.cancel()


def cmd_browse(commands, args):
    """Interactive line-based session."""
    print(BROWSE_HELP)
    asyncio.run(browse(commands))


def main():
    parser = argparse.ArgumentParser(description="Aggregate and triage RSS/Atom feeds")
    parser.add_argument("--config", "-c", type=Path, help="Path to config.yml")
    parser.add_argument("--preview", "-p", action="append", metavar="URL",
                        help="Preview a feed without touching the config or database")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    subparsers.add_parser("list", help="List visible items")

    p = subparsers.add_parser("add", help="Add a feed")
    p.add_argument("url", help="Feed URL")
    p.add_argument("name", nargs="?", default="", help="Display name")
    p.add_argument("--tag", "-t", action="append", default=[], help="Tag (repeatable)")

    subparsers.add_parser("refresh", help="Fetch all feeds")
    subparsers.add_parser("unread", help="Show unread count")
    subparsers.add_parser("config", help="Show effective configuration")
    subparsers.add_parser("monitor", help="Refresh on an interval")
    subparsers.add_parser("browse", help="Browse items interactively")

    args = parser.parse_args()
    configure_logging(args.verbose)

    handlers = {
        "list": cmd_list,
        "add": cmd_add,
        "refresh": cmd_refresh,
        "unread": cmd_unread,
        "config": cmd_config,
        "monitor": cmd_monitor,
        "browse": cmd_browse,
    }
    handler = handlers.get(args.command or "browse")

    try:
        commands = Commands.from_config(args.config, args.preview)
    except SkimmerError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        return handler(commands, args) or 0
    except SkimmerError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        commands.close()


if __name__ == "__main__":
    sys.exit(main())
