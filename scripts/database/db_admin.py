#!/usr/bin/env python3
"""
Database Administration Commands

Command line entry point for maintaining Tobira's PostgreSQL database.

Usage:
    # Remove everything from the database and the search index
    tobira-db clear

    # Same, without the "are you sure?" question (for automation)
    tobira-db clear --yes

    # Run an SQL script, apply migrations, open a psql prompt
    tobira-db script fix.sql
    tobira-db migrate
    tobira-db console

    # Backup and restore
    tobira-db dump backup.dump
    tobira-db restore backup.dump

    # Clear followed by migrate
    tobira-db reset

Connection parameters are read from the environment (or a .env file), see
config/settings.py.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

sys.path.append(os.path.join(os.path.dirname(__file__), "..", ".."))

from config.settings import get_config
from scripts.database.commands import (
    ClearCommand,
    ClearOptions,
    Command,
    CommandDispatcher,
    CommandResult,
    ConsoleCommand,
    DumpCommand,
    MigrateCommand,
    ResetCommand,
    RestoreCommand,
    ScriptCommand,
    UnsafeOverwriteMigrationsCommand,
)
from scripts.database.errors import DbCommandError, cause_chain
from utils.logging import LOG_LEVELS, setup_logging

logger = logging.getLogger("db_admin")

SUCCESS_MESSAGES = {
    ClearCommand: "Database and search index cleared.",
    ScriptCommand: "SQL script executed.",
    MigrateCommand: "Migrations applied.",
    ResetCommand: "Database reset and migrated.",
    UnsafeOverwriteMigrationsCommand: "Migrations table overwritten.",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tobira-db",
        description="Tobira database administration",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Notes:
  - console, dump and restore need psql, pg_dump and pg_restore in your PATH,
    compatible with the version of the database server
  - restore drops the whole database first and fails while anything
    (e.g. a running Tobira) is connected to it
        """,
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=LOG_LEVELS,
        metavar="LEVEL",
        help="Logging level: DEBUG, INFO, WARNING, ERROR or CRITICAL (default: LOG_LEVEL from the environment, or INFO)",
    )

    subcommands = parser.add_subparsers(dest="command", metavar="COMMAND", required=True)

    def add_clear_options(subparser: argparse.ArgumentParser) -> None:
        subparser.add_argument(
            "--yes",
            "--yes-absolutely-clear-db",
            dest="yes",
            action="store_true",
            help='Skip the "Are you sure?" question',
        )

    clear = subcommands.add_parser(
        "clear",
        help="Remove all data and tables from the database; also clears the search index",
    )
    add_clear_options(clear)

    script = subcommands.add_parser(
        "script", help="Run an .sql script with the configured database connection"
    )
    script.add_argument("script", type=Path, help="Path to a file containing an SQL script")

    subcommands.add_parser(
        "migrate", help="Run the database migrations that also run when starting the server"
    )
    subcommands.add_parser("console", help="Open a psql prompt on the database")

    dump = subcommands.add_parser(
        "dump",
        help="Dump the database with pg_dump; safe to run while Tobira is running",
    )
    dump.add_argument("path", type=Path, help="File to write the dump to")

    restore = subcommands.add_parser(
        "restore",
        help="Drop the database and restore it from a dump created by 'dump'",
    )
    restore.add_argument("dump", type=Path, help="Dump file created by 'dump'")

    reset = subcommands.add_parser("reset", help="Equivalent to 'clear' followed by 'migrate'")
    add_clear_options(reset)

    subcommands.add_parser(
        "unsafe-overwrite-migrations",
        help="Make the migrations table match this version (developers only!)",
    )

    return parser


def parse_command(args: argparse.Namespace) -> Command:
    """Turn parsed command line arguments into a command."""
    if args.command == "clear":
        return ClearCommand(options=ClearOptions(skip_confirmation=args.yes))
    if args.command == "script":
        return ScriptCommand(path=args.script)
    if args.command == "migrate":
        return MigrateCommand()
    if args.command == "console":
        return ConsoleCommand()
    if args.command == "dump":
        return DumpCommand(path=args.path)
    if args.command == "restore":
        return RestoreCommand(path=args.dump)
    if args.command == "reset":
        return ResetCommand(options=ClearOptions(skip_confirmation=args.yes))
    if args.command == "unsafe-overwrite-migrations":
        return UnsafeOverwriteMigrationsCommand()
    raise ValueError(f"unknown command '{args.command}'")


def main(argv: list[str] | None = None) -> int:
    """
    Main function for the database commands.

    Returns:
        int: Exit code (0 for success or a declined confirmation, 1 for failure)
    """
    args = build_parser().parse_args(argv)
    command = parse_command(args)

    try:
        config = get_config()
    except ValueError as e:
        print(f"error: invalid configuration: {e}", file=sys.stderr)
        return 1

    setup_logging(
        log_level=args.log_level or config.LOG_LEVEL,
        log_file=config.LOG_FILE,
        max_bytes=config.LOG_MAX_BYTES,
        backup_count=config.LOG_BACKUP_COUNT,
    )

    try:
        result = CommandDispatcher(config).run(command)
    except DbCommandError as e:
        messages = cause_chain(e)
        logger.error(f"error: {messages[0]}")
        for message in messages[1:]:
            logger.error(f"  caused by: {message}")
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 130

    if result is CommandResult.COMPLETED:
        print(SUCCESS_MESSAGES[type(command)])
    return 0


if __name__ == "__main__":
    sys.exit(main())
