#!/usr/bin/env python
"""Command line entry point for the Scribe note store."""
import argparse
import logging
import os
import sys
from pathlib import Path

from scribe_store import __version__
from scribe_store.config import BACKENDS, LOG_LEVELS, config
from scribe_store.exceptions import NotFoundError, ScribeError
from scribe_store.observability import configure_logging
from scribe_store.store import open_store


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Scribe note store")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--backend",
        help="Storage backend",
        choices=BACKENDS,
        default=os.environ.get("SCRIBE_BACKEND")
    )
    parser.add_argument(
        "--data-dir",
        help="Directory for the file-tree backend",
        type=str,
        default=os.environ.get("SCRIBE_DATA_DIR")
    )
    parser.add_argument(
        "--database-path",
        help="SQLite database file path",
        type=str,
        default=os.environ.get("SCRIBE_DATABASE_PATH")
    )
    parser.add_argument(
        "--log-level",
        help="Logging level (default: SCRIBE_LOG_LEVEL or INFO)",
        choices=LOG_LEVELS,
        type=str.upper,
    )

    commands = parser.add_subparsers(dest="command", required=True)

    list_cmd = commands.add_parser("list", help="List notes, pinned first")
    list_cmd.add_argument("--query", help="Case-insensitive text in title or content")
    list_cmd.add_argument("--tag", action="append", dest="tags", help="Match any of these tags")
    list_cmd.add_argument("--pinned", action="store_true", default=None, help="Only pinned notes")

    add_cmd = commands.add_parser("add", help="Create a note")
    add_cmd.add_argument("--title", required=True)
    add_cmd.add_argument("--content", required=True)
    add_cmd.add_argument("--tag", action="append", dest="tags", default=[])

    show_cmd = commands.add_parser("show", help="Print one note")
    show_cmd.add_argument("note_id", type=int)

    commands.add_parser("tags", help="List tags by usage")
    commands.add_parser("stats", help="Show store counts")

    return parser.parse_args(argv)


def update_config(args):
    """Update the global config with command line arguments."""
    if args.backend:
        config.backend = args.backend
    if args.data_dir:
        config.data_dir = Path(args.data_dir)
    if args.database_path:
        config.database_path = Path(args.database_path)
    if args.log_level:
        config.log_level = args.log_level


def run_command(store, args) -> None:
    """Run one subcommand against an open store and print the result."""
    if args.command == "list":
        for note in store.list_notes(query=args.query, tags=args.tags, pinned=args.pinned):
            marker = "*" if note.pinned else " "
            tags = f" [{', '.join(note.tags)}]" if note.tags else ""
            print(f"{marker} {note.id}  {note.title}{tags}")
    elif args.command == "add":
        note = store.create_note(title=args.title, content=args.content, tags=args.tags)
        print(note.id)
    elif args.command == "show":
        note = store.get_note(args.note_id)
        if note is None:
            raise NotFoundError(args.note_id)
        print(note.title)
        print(note.content)
    elif args.command == "tags":
        for tag in store.list_tags():
            print(f"{tag.usage_count:5d}  {tag.name}")
    elif args.command == "stats":
        for name, value in store.get_stats().model_dump().items():
            print(f"{name}: {value}")


def main(argv=None):
    """Run the scribe-store command line tool."""
    args = parse_args(argv)
    update_config(args)

    log_level = getattr(logging, config.log_level)
    try:
        configure_logging(level=log_level, console=True)
    except OSError as e:
        # Fall back to basic console logging if file logging fails
        logging.basicConfig(level=log_level)
        logging.getLogger(__name__).warning(f"Failed to configure file logging: {e}")

    logger = logging.getLogger(__name__)
    logger.info(f"Using {config.backend} backend")

    try:
        with open_store(config) as store:
            run_command(store, args)
    except ScribeError as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
