"""Command line entry point: the TUI plus quick-add subcommands."""

from __future__ import annotations

import argparse
import logging
import os
import signal
import sys
from pathlib import Path

from jotdeck import __version__, ui
from jotdeck.config import Config, load_config, log_path
from jotdeck.controller import Controller
from jotdeck.errors import JotdeckError, ValidationError
from jotdeck.models import (
    JournalEntry, Note, Record, Task, is_valid_date, parse_tags, today,
)
from jotdeck.storage import SqliteStorage

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="jotdeck",
        description="Tasks, notes and a journal in one keyboard-driven terminal app.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--dev", action="store_true",
                        help="Use the separate development profile directories")
    parser.add_argument("--config", type=Path, help="Path to config.toml")
    parser.add_argument("--log-level", default=None,
                        help="DEBUG, INFO, WARNING or ERROR (default: $JOTDECK_LOG_LEVEL or WARNING)")

    sub = parser.add_subparsers(dest="cmd", required=False)

    sub.add_parser("tui", help="Start the interactive terminal app (default).")

    task = sub.add_parser("add-task", help="Create a task without opening the app.")
    task.add_argument("title")
    task.add_argument("--due", help="Due date, YYYY-MM-DD")
    task.add_argument("--tags", default="", help="Comma-separated tags")

    note = sub.add_parser("add-note", help="Create a note without opening the app.")
    note.add_argument("title")
    note.add_argument("--content", default="")
    note.add_argument("--tags", default="", help="Comma-separated tags")

    journal = sub.add_parser("add-journal", help="Create a journal entry without opening the app.")
    journal.add_argument("content")
    journal.add_argument("--title", default="")
    journal.add_argument("--date", help="Entry date, YYYY-MM-DD (default: today)")
    journal.add_argument("--tags", default="", help="Comma-separated tags")

    return parser


def setup_logging(level_name: str | None, *, to_file: bool, dev: bool) -> None:
    level_name = (level_name or os.environ.get("JOTDECK_LOG_LEVEL") or "WARNING").upper()
    level = getattr(logging, level_name, None)
    if not isinstance(level, int):
        level = logging.WARNING
    if to_file:
        # stderr belongs to the full-screen app while it runs.
        path = log_path(dev)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError:
            logging.basicConfig(level=logging.CRITICAL, handlers=[logging.NullHandler()])
            return
        logging.basicConfig(filename=str(path), level=level, format=LOG_FORMAT)
    else:
        logging.basicConfig(stream=sys.stderr, level=level, format=LOG_FORMAT)


def _sigterm(signum, frame):
    raise SystemExit(128 + signum)


# ════════════════════════════════════════════════════════════════════════
#  Commands
# ════════════════════════════════════════════════════════════════════════


def cmd_tui(config: Config) -> int:
    storage = SqliteStorage(config.database_path)
    logger.info("starting tui (config %s, database %s)", config.path, config.database_path)
    try:
        controller = Controller(storage, config)
        controller.load()
        signal.signal(signal.SIGTERM, _sigterm)
        ui.run(controller)
    finally:
        storage.close()
        logger.info("tui stopped")
    return 0


def _quick_record(args: argparse.Namespace) -> Record:
    tags = parse_tags(args.tags)
    if args.cmd == "add-task":
        if not args.title.strip():
            raise ValidationError("title cannot be empty", "title")
        if args.due and not is_valid_date(args.due):
            raise ValidationError(f"invalid due date {args.due!r}, expected YYYY-MM-DD", "due_date")
        return Task(title=args.title.strip(), due_date=args.due or None, tags=tags)
    if args.cmd == "add-note":
        if not args.title.strip():
            raise ValidationError("title cannot be empty", "title")
        return Note(title=args.title.strip(), body=args.content, tags=tags)
    entry_date = args.date or today()
    if not is_valid_date(entry_date):
        raise ValidationError(f"invalid date {entry_date!r}, expected YYYY-MM-DD", "entry_date")
    return JournalEntry(title=args.title.strip(), body=args.content, tags=tags,
                        entry_date=entry_date)


def cmd_add(args: argparse.Namespace, config: Config) -> int:
    record = _quick_record(args)
    storage = SqliteStorage(config.database_path)
    try:
        existing = storage.list(record.tab)
        record.order = max((r.order for r in existing), default=-1) + 1
        created = storage.create(record)
    finally:
        storage.close()
    kind = {"add-task": "task", "add-note": "note", "add-journal": "journal entry"}[args.cmd]
    logger.info("created %s %s", kind, created.id)
    print(f"Created {kind} #{created.id}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    argv = list(argv) if argv is not None else list(sys.argv[1:])
    args = parser.parse_args(argv)
    if args.cmd is None:
        args.cmd = "tui"

    setup_logging(args.log_level, to_file=args.cmd == "tui", dev=args.dev)

    try:
        config, _warnings = load_config(args.config, dev=args.dev,
                                        required=args.config is not None)
        if args.cmd == "tui":
            return cmd_tui(config)
        if args.cmd in ("add-task", "add-note", "add-journal"):
            return cmd_add(args, config)
    except KeyboardInterrupt:
        return 130
    except JotdeckError as exc:
        logger.error("%s", exc)
        print(f"jotdeck: {exc}", file=sys.stderr)
        return 1
    except Exception:
        logger.exception("unexpected error")
        raise

    parser.error(f"Unknown command: {args.cmd}")
    return 2
