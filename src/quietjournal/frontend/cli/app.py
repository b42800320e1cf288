"""Command-line front end for Quiet Journal.

Start here with `python -m quietjournal.frontend.cli.app` or `python main.py`.
"""

from __future__ import annotations

import argparse
import getpass
import logging
import os
import sys
from pathlib import Path
from typing import Optional, Sequence

from quietjournal.core.backup import (
    ImportMode,
    backup_filename,
    build_preview,
    create_backup,
    dump_backup,
    import_backup,
    parse_backup_json,
)
from quietjournal.core.exceptions import JournalError
from quietjournal.frontend.cli.context import ENV_PASSPHRASE, AppContext, build_context
from quietjournal.frontend.cli.logging_config import configure_logging

logger = logging.getLogger(__name__)


def _read_passphrase() -> str:
    passphrase = os.getenv(ENV_PASSPHRASE)
    if passphrase is None:
        passphrase = getpass.getpass("Passphrase: ")
    if not passphrase.strip():
        # empty passphrases are rejected here, before derivation
        raise JournalError("Enter a passphrase.")
    return passphrase


def _unlock(ctx: AppContext) -> None:
    ctx.session.unlock(_read_passphrase())


def cmd_export(ctx: AppContext, args) -> int:
    _unlock(ctx)
    document = create_backup(ctx.store, ctx.session)
    text = dump_backup(document)
    if args.path == "-":
        sys.stdout.write(text + "\n")
        return 0
    target = Path(args.path or backup_filename(document)).expanduser()
    target.write_text(text, encoding="utf-8")
    print(f"Backup written to {target} ({len(document.entries)} entries, {len(document.memory)} memory items).")
    return 0


def cmd_preview(ctx: AppContext, args) -> int:
    document = parse_backup_json(Path(args.path).expanduser().read_text(encoding="utf-8"))
    key = None
    if args.check:
        _unlock(ctx)
        key = ctx.session.require_key()
    preview = build_preview(document, key)
    print(f"Exported at:  {preview.exported_at}")
    print(f"Entries:      {preview.entry_count}")
    print(f"Memory items: {preview.memory_count}")
    if preview.oldest_entry_at:
        print(f"Entry range:  {preview.oldest_entry_at} -> {preview.newest_entry_at}")
    else:
        print("No entries in this backup.")
    if preview.decryptable is not None:
        print(f"Readable with this passphrase: {preview.decryptable}, locked: {preview.undecryptable}")
    return 0


def cmd_import(ctx: AppContext, args) -> int:
    text = Path(args.path).expanduser().read_text(encoding="utf-8")
    document = parse_backup_json(text)
    if args.mode == ImportMode.REPLACE.value and not args.yes:
        answer = input("Replace ALL entries and memory on this device? [y/N] ")
        if answer.strip().lower() not in ("y", "yes"):
            print("Aborted.")
            return 1
    report = import_backup(ctx.store, document, mode=args.mode)
    print(
        f"Entries: {report.entries.imported} imported, {report.entries.skipped} skipped. "
        f"Memory: {report.memory.imported} imported, {report.memory.skipped} skipped."
    )
    return 0


def cmd_entries(ctx: AppContext, args) -> int:
    _unlock(ctx)
    result = ctx.journal.list_entries(start=args.since, end=args.until)
    for entry in result.values:
        print(f"{entry.created_at}  {entry.ritual_name or '-':<24} {len(entry.steps)} step(s)  {entry.id}")
    if result.skipped:
        # wrong passphrase and damaged records look the same from here
        print(f"{result.skipped} entr{'y' if result.skipped == 1 else 'ies'} could not be unlocked with this passphrase.")
    return 0


def cmd_memory(ctx: AppContext, args) -> int:
    _unlock(ctx)
    result = ctx.journal.list_memory()
    for item in result.values:
        print(f"{item.created_at}  {item.text}")
    if result.skipped:
        print(f"{result.skipped} memory item(s) could not be unlocked with this passphrase.")
    return 0


def cmd_wipe(ctx: AppContext, args) -> int:
    if not args.yes:
        answer = input("Delete all entries and memory on this device? This cannot be undone. [y/N] ")
        if answer.strip().lower() not in ("y", "yes"):
            print("Aborted.")
            return 1
    entries = ctx.journal.delete_all_entries()
    memory = ctx.journal.delete_all_memory()
    print(f"Deleted {entries} entries and {memory} memory items.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="quietjournal",
        description="Quiet Journal - local, passphrase-encrypted journal storage",
    )
    parser.add_argument("--db", help="Database file (default: $QUIETJOURNAL_DB_PATH or ~/.quietjournal/journal.db)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    p_export = subparsers.add_parser("export", help="Write an encrypted backup")
    p_export.add_argument("path", nargs="?", help="Output file, '-' for stdout")
    p_export.set_defaults(func=cmd_export)

    p_preview = subparsers.add_parser("preview", help="Validate and summarize a backup file")
    p_preview.add_argument("path")
    p_preview.add_argument("--check", action="store_true", help="Count records readable with your passphrase")
    p_preview.set_defaults(func=cmd_preview)

    p_import = subparsers.add_parser("import", help="Import a backup file")
    p_import.add_argument("path")
    p_import.add_argument("--mode", default=ImportMode.MERGE.value, choices=[m.value for m in ImportMode])
    p_import.add_argument("--yes", action="store_true", help="Do not ask before replacing")
    p_import.set_defaults(func=cmd_import)

    p_entries = subparsers.add_parser("entries", help="List decrypted entries")
    p_entries.add_argument("--since", help="ISO timestamp, inclusive")
    p_entries.add_argument("--until", help="ISO timestamp, inclusive")
    p_entries.set_defaults(func=cmd_entries)

    p_memory = subparsers.add_parser("memory", help="List decrypted memory items")
    p_memory.set_defaults(func=cmd_memory)

    p_wipe = subparsers.add_parser("wipe", help="Delete all entries and memory")
    p_wipe.add_argument("--yes", action="store_true")
    p_wipe.set_defaults(func=cmd_wipe)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(logging.DEBUG if args.verbose else logging.WARNING)

    try:
        ctx = build_context(args.db)
    except JournalError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    try:
        return args.func(ctx, args)
    except JournalError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    finally:
        ctx.close()


if __name__ == "__main__":
    sys.exit(main())
