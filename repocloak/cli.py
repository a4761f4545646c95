"""
Command-line interface for repo-cloak.

This module orchestrates all other components and provides
the user-facing CLI commands:
- pull
- push
- status
- replacements
- help

It is the only place that talks to the user; the modules it calls
never prompt.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from .anonymizer import Replacement, create_anonymizer, create_deanonymizer, invert_replacements
from .config import ENV_LOG_LEVEL, TOOL_NAME, TOOL_VERSION, Settings
from .copier import CopyResult, SourceFile, copy_files, iter_copy_files
from .crypto import KeyStore, decrypt_replacements
from .errors import DecryptionError, RepoCloakError
from .git import get_changed_files, is_git_repo
from .mapping import (
    FileEntry,
    MappingRecord,
    add_replacements,
    create_mapping,
    decrypt_mapping,
    get_files,
    get_original_source,
    get_replacements,
    has_mapping,
    load_mapping,
    merge_mapping,
    save_mapping,
)
from .scanner import FileScanner
from .utils import split_pair


# ---------------------------------------------------------------------------
# Color output helpers
# ---------------------------------------------------------------------------


class Colors:
    """ANSI color codes for terminal output."""
    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    BLUE = "\033[94m"
    CYAN = "\033[96m"
    DIM = "\033[2m"
    RESET = "\033[0m"
    BOLD = "\033[1m"


def colored(text: str, color: str) -> str:
    """Return colored text for terminal output."""
    return f"{color}{text}{Colors.RESET}"


def print_error(msg: str) -> None:
    """Print error message to stderr."""
    print(colored(f"✗ Error: {msg}", Colors.RED), file=sys.stderr)


def print_success(msg: str) -> None:
    print(colored(f"✓ {msg}", Colors.GREEN))


def print_warning(msg: str) -> None:
    print(colored(f"⚠ Warning: {msg}", Colors.YELLOW))


def print_info(msg: str) -> None:
    print(colored(f"ℹ {msg}", Colors.CYAN))


def setup_logging(verbose: bool) -> None:
    """Configure the root logger from ``-v`` or ``$LOG_LEVEL``."""
    default = "DEBUG" if verbose else "WARNING"
    level = getattr(logging, os.getenv(ENV_LOG_LEVEL, default).upper(), logging.WARNING)
    logging.basicConfig(level=level, format="%(levelname)s: %(name)s: %(message)s", force=True)


# ---------------------------------------------------------------------------
# CLI context
# ---------------------------------------------------------------------------


class CLIContext:
    """Shared context for CLI commands."""

    def __init__(
        self,
        verbose: bool,
        quiet: bool,
        dry_run: bool,
        assume_yes: bool = False,
        settings_path: Optional[str] = None,
    ):
        self.verbose = verbose
        self.quiet = quiet
        self.dry_run = dry_run
        self.assume_yes = assume_yes
        self.settings_path = settings_path

        # Lazy-loaded
        self._settings: Optional[Settings] = None
        self._key_store: Optional[KeyStore] = None

    @property
    def settings(self) -> Settings:
        if self._settings is None:
            self._settings = Settings.load(self.settings_path)
        return self._settings

    @property
    def key_store(self) -> KeyStore:
        if self._key_store is None:
            self._key_store = KeyStore()
        return self._key_store

    def log(self, msg: str) -> None:
        """Log message if not quiet."""
        if not self.quiet:
            print(msg)

    def log_verbose(self, msg: str) -> None:
        """Log message if verbose."""
        if self.verbose:
            print(colored(f"  → {msg}", Colors.BLUE))

    def confirm(self, question: str) -> bool:
        if self.assume_yes:
            return True
        response = input(colored(f"{question} [y/N] ", Colors.YELLOW))
        return response.strip().lower() in ("y", "yes")


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def _parse_pairs(values: Optional[Sequence[str]], what: str) -> List[Replacement]:
    pairs = []
    for value in values or []:
        try:
            pairs.append(Replacement.parse(value))
        except ValueError:
            raise RepoCloakError(f"Invalid {what} {value!r}, expected LEFT=RIGHT")
    return pairs


def _report_copy(ctx: CLIContext, result: CopyResult, verb: str) -> None:
    print_success(f"{verb} {result.copied} of {result.total} file(s)")
    if result.paths_renamed:
        ctx.log(colored(f"   {result.paths_renamed} path(s) renamed", Colors.CYAN))
    if result.transformed:
        ctx.log(colored(f"   {result.transformed} file(s) had content rewritten", Colors.CYAN))
    if result.errors:
        print_warning(f"{len(result.errors)} file(s) had errors")
        for err in result.errors:
            ctx.log(colored(f"      - {err['file']}: {err['error']}", Colors.DIM))


def _show_record(ctx: CLIContext, record: MappingRecord) -> None:
    ctx.log(colored(f"   Created:      {record.timestamp}", Colors.DIM))
    ctx.log(colored(f"   Files:        {record.stats.total_files}", Colors.DIM))
    ctx.log(colored(f"   Replacements: {len(record.replacements)}", Colors.DIM))
    ctx.log(colored(f"   Encrypted:    {'yes' if record.encrypted else 'no'}", Colors.DIM))


def _select_files(ctx: CLIContext, source_dir: Path, args: argparse.Namespace) -> List[SourceFile]:
    if args.files:
        names = args.files
    elif args.git:
        if not is_git_repo(source_dir):
            raise RepoCloakError(f"Not a git repository: {source_dir}")
        names = get_changed_files(source_dir)
        ctx.log_verbose(f"git reports {len(names)} changed file(s)")
    else:
        scanner = FileScanner(source_dir, ctx.settings.ignore)
        return [SourceFile(f.absolute_path, f.relative_path) for f in scanner.scan()]

    selected = []
    for name in names:
        path = (source_dir / name).resolve()
        if not path.is_file():
            print_warning(f"Skipping missing file: {name}")
            continue
        try:
            relative = path.relative_to(source_dir)
        except ValueError:
            print_warning(f"Skipping file outside the source directory: {name}")
            continue
        selected.append(SourceFile(path, relative.as_posix()))
    return selected


# ---------------------------------------------------------------------------
# Command implementations
# ---------------------------------------------------------------------------


def cmd_pull(ctx: CLIContext, args: argparse.Namespace) -> int:
    """
    Copy selected files into a destination, replacing keywords in content
    and names. Pulling into a destination that already has a mapping adds
    files to it.
    """

    cwd = Path.cwd()
    if args.dest:
        dest_dir = Path(args.dest).resolve()
    elif has_mapping(cwd):
        dest_dir = cwd
    else:
        print_error("No destination given (use --dest)")
        return 1

    existing: Optional[MappingRecord] = None
    replacements: List[Replacement] = []
    source_dir: Optional[Path] = Path(args.source).resolve() if args.source else None

    if has_mapping(dest_dir):
        existing = load_mapping(dest_dir)
        ctx.log(colored("Existing cloaked directory detected", Colors.CYAN))
        _show_record(ctx, existing)

        view = existing
        if existing.encrypted:
            # Files added later must be encrypted with the same secret.
            if not ctx.key_store.has_secret():
                print_error("Mapping is encrypted and no secret is available on this machine")
                return 1
            try:
                view = decrypt_mapping(existing, ctx.key_store.get_secret())
            except DecryptionError as e:
                print_error(f"Cannot add to this mapping: {e}")
                return 1

        replacements = get_replacements(view)
        recorded = get_original_source(view)
        if source_dir is None and recorded and Path(recorded).is_dir():
            source_dir = Path(recorded)

    source_dir = (source_dir or cwd).resolve()
    if not source_dir.is_dir():
        print_error(f"Source directory does not exist: {source_dir}")
        return 1

    new_replacements = _parse_pairs(args.replace, "replacement")
    replacements = replacements + new_replacements

    ctx.log_verbose(f"Source: {source_dir}")
    ctx.log_verbose(f"Destination: {dest_dir}")

    files = _select_files(ctx, source_dir, args)
    if not files:
        print_error("No files selected")
        return 1

    ctx.log(f"Selected {len(files)} file(s)")
    for r in replacements:
        ctx.log(colored(f'   "{r.original}" → "{r.replacement}"', Colors.DIM))

    simultaneous = args.simultaneous or ctx.settings.simultaneous
    transform = create_anonymizer(
        replacements,
        case_sensitive=ctx.settings.case_sensitive,
        simultaneous=simultaneous,
    )

    if ctx.dry_run:
        ctx.log(colored("\n[DRY RUN] Preview of changes:", Colors.YELLOW))
        for f in files:
            ctx.log(f"  {colored('→', Colors.CYAN)} {f.relative_path}")
        return 0

    if not ctx.confirm(f"Extract {len(files)} file(s) to {dest_dir}?"):
        print_info("Operation cancelled")
        return 0

    dest_dir.mkdir(parents=True, exist_ok=True)

    result = CopyResult(total=len(files))
    new_entries: List[FileEntry] = []
    outcomes = iter_copy_files(
        files,
        dest_dir,
        transform=transform,
        replacements=replacements,
        simultaneous=simultaneous,
    )
    for done, outcome in enumerate(outcomes, start=1):
        result.add(outcome)
        ctx.log_verbose(f"[{done}/{result.total}] {outcome.cloaked_path}")
        if outcome.copied:
            new_entries.append(FileEntry(original=outcome.relative_path, cloaked=outcome.cloaked_path))

    _report_copy(ctx, result, "Copied")

    key_store = ctx.key_store if ctx.settings.encrypt and not args.no_encrypt else None

    if existing is not None:
        store = ctx.key_store if existing.encrypted else None
        record = existing
        if new_replacements:
            record = add_replacements(record, new_replacements, store)
        record = merge_mapping(record, new_entries, store)
        save_mapping(dest_dir, record)
        added = record.pull_history[-1].files_added
        ctx.log(colored(f"   Mapping updated: {added} new file(s) (total: {record.stats.total_files})", Colors.DIM))
    else:
        record = create_mapping(source_dir, dest_dir, replacements, new_entries, key_store=key_store)
        path = save_mapping(dest_dir, record)
        ctx.log(colored(f"   Mapping saved: {path}", Colors.DIM))

    print_success(f"Files extracted to {dest_dir}")
    ctx.log(colored(f"   To restore later, run: {TOOL_NAME} push -s {dest_dir}", Colors.DIM))
    return 1 if result.errors else 0


def _manual_recovery(ctx: CLIContext, record: MappingRecord, args: argparse.Namespace) -> List[Replacement]:
    """
    Rebuild the rules when the mapping cannot be decrypted.

    Originals come from ``--keyword CLOAKED=ORIGINAL`` or are asked for.
    """

    given = {}
    for value in args.keyword or []:
        try:
            cloaked, original = split_pair(value)
        except ValueError:
            raise RepoCloakError(f"Invalid keyword {value!r}, expected CLOAKED=ORIGINAL")
        given[cloaked] = original

    recovered = []
    for r in get_replacements(record):
        original = given.get(r.replacement)
        if original is None and not ctx.assume_yes:
            original = input(colored(f'Original keyword for "{r.replacement}" (blank to skip): ', Colors.YELLOW))
        if original:
            recovered.append(Replacement(original=original, replacement=r.replacement))
        else:
            print_warning(f'"{r.replacement}" will not be restored')
    return recovered


def cmd_push(ctx: CLIContext, args: argparse.Namespace) -> int:
    """
    Restore a cloaked directory: reverse keyword replacements in content
    and names and copy the result to the original (or given) location.
    """

    cloaked_dir = Path(args.source).resolve() if args.source else Path.cwd()
    if not cloaked_dir.is_dir():
        print_error(f"Directory does not exist: {cloaked_dir}")
        return 1

    record = load_mapping(cloaked_dir)
    original_source: Optional[str] = None

    if record.encrypted:
        try:
            record = decrypt_mapping(record, ctx.key_store.get_secret())
            replacements = get_replacements(record)
            original_source = get_original_source(record)
        except DecryptionError as e:
            print_warning(f"Could not decrypt mapping ({e}); falling back to manual recovery")
            replacements = _manual_recovery(ctx, record, args)
    else:
        replacements = get_replacements(record)
        original_source = get_original_source(record)

    ctx.log(colored("Cloaked directory", Colors.CYAN))
    _show_record(ctx, record)
    if original_source:
        ctx.log(colored(f"   Original source: {original_source}", Colors.DIM))
    for r in replacements:
        ctx.log(colored(f'   "{r.replacement}" → "{r.original}"', Colors.DIM))

    if args.dest:
        dest_dir = Path(args.dest).resolve()
    elif original_source and Path(original_source).is_dir() and ctx.confirm(
        f"Restore to original location? ({original_source})"
    ):
        dest_dir = Path(original_source)
    else:
        print_error("No destination given (use --dest)")
        return 1

    files = FileScanner(cloaked_dir, ctx.settings.ignore).get_all_files()
    if not files:
        print_warning("No files found in the cloaked directory")
        return 0

    if ctx.dry_run:
        ctx.log(colored("\n[DRY RUN] Preview of changes:", Colors.YELLOW))
        for f in files:
            ctx.log(f"  {colored('→', Colors.CYAN)} {f.relative_path}")
        return 0

    if not ctx.confirm(f"Restore {len(files)} file(s) to {dest_dir}?"):
        print_info("Operation cancelled")
        return 0

    dest_dir.mkdir(parents=True, exist_ok=True)

    simultaneous = args.simultaneous or ctx.settings.simultaneous
    result = copy_files(
        files,
        dest_dir,
        transform=create_deanonymizer(
            replacements,
            case_sensitive=ctx.settings.case_sensitive,
            simultaneous=simultaneous,
        ),
        on_progress=lambda done, total, path: ctx.log_verbose(f"[{done}/{total}] {path}"),
        replacements=invert_replacements(replacements),
        simultaneous=simultaneous,
    )

    _report_copy(ctx, result, "Restored")
    print_success(f"Files restored to {dest_dir}")
    return 1 if result.errors else 0


def cmd_status(ctx: CLIContext, args: argparse.Namespace) -> int:
    """
    Show what a cloaked directory contains.
    """

    directory = Path(args.path or ".").resolve()
    record = load_mapping(directory)

    if args.json:
        output = record.to_dict()
        output.pop("files", None)
        output["totalFiles"] = record.stats.total_files
        print(json.dumps(output, indent=2))
        return 0

    ctx.log(colored("Cloaked Directory Status", Colors.BOLD))
    ctx.log("")
    ctx.log(f"  Mapping version:  {record.version}")
    ctx.log(f"  Created:          {record.timestamp}")
    ctx.log(f"  Encrypted:        {'yes' if record.encrypted else 'no'}")
    ctx.log(f"  Files:            {record.stats.total_files}")
    ctx.log(f"  Replacements:     {record.stats.replacements_count}")

    history = record.pull_history or []
    if history:
        ctx.log(f"  Incremental pulls: {len(history)}")
        for entry in history[-5:]:
            ctx.log(f"    - {entry.timestamp}: +{entry.files_added} (total {entry.total_files})")

    if ctx.verbose:
        ctx.log("")
        for f in get_files(record)[:20]:
            ctx.log(f"    {f.cloaked}")
        if record.stats.total_files > 20:
            ctx.log(f"    ... and {record.stats.total_files - 20} more")

    ctx.log("")
    return 0


def cmd_replacements(ctx: CLIContext, args: argparse.Namespace) -> int:
    """
    List replacement rules, decrypting what can be decrypted.
    """

    directory = Path(args.path or ".").resolve()
    record = load_mapping(directory)
    replacements = get_replacements(record)

    if record.encrypted and ctx.key_store.has_secret():
        replacements = decrypt_replacements(replacements, ctx.key_store.get_secret())

    ctx.log(colored(f"Replacements ({len(replacements)})", Colors.BOLD))
    for r in replacements:
        if r.decrypt_failed:
            ctx.log(f"  {colored('[encrypted]', Colors.RED)} → {r.replacement}")
        elif r.encrypted:
            ctx.log(f"  {colored('[no secret]', Colors.YELLOW)} → {r.replacement}")
        else:
            ctx.log(f'  "{r.original}" → "{r.replacement}"')
    return 0


def cmd_help(ctx: Optional[CLIContext], args: argparse.Namespace) -> int:
    """
    Show help message.
    """
    help_text = f"""
{colored(TOOL_NAME, Colors.BOLD)} - extract and anonymize files from a repository

{colored('USAGE:', Colors.CYAN)}
  {TOOL_NAME} <command> [options]

{colored('DESCRIPTION:', Colors.CYAN)}
  Copies selected files into a separate directory, replacing sensitive
  keywords (company names, project identifiers) in file contents and in
  file and folder names. A mapping file in the destination records how
  to reverse the process; sensitive parts of it are encrypted with a
  per-user secret.

{colored('COMMANDS:', Colors.CYAN)}
  pull          Extract and anonymize files
  push          Restore files with original names and content
  status        Show what a cloaked directory contains
  replacements  List the replacement rules of a cloaked directory
  help          Show this help message

{colored('GLOBAL OPTIONS:', Colors.CYAN)}
  -c, --config PATH         Settings file (default: ~/.repo-cloak/config.yml)
  -n, --dry-run             Show what would happen without writing files
  -y, --yes                 Answer yes to every confirmation
  -v, --verbose             Enable verbose output
  -q, --quiet               Suppress non-error output
  -h, --help                Show this help message and exit

{colored('ENVIRONMENT:', Colors.CYAN)}
  REPOCLOAK_HOME            Directory holding the secret and settings
  REPOCLOAK_ENCRYPT         Set to 0 to store new mappings unencrypted
  LOG_LEVEL                 Logging level (DEBUG, INFO, WARNING, ...)

{colored('EXAMPLES:', Colors.CYAN)}
  {TOOL_NAME} pull -s ~/work/app -d ~/share/app -r Acme=Example
  {TOOL_NAME} pull -s ~/work/app -d ~/share/app --git
  {TOOL_NAME} push -s ~/share/app -d ~/work/app
  {TOOL_NAME} status ~/share/app

{colored('VERSION:', Colors.CYAN)}
  {TOOL_VERSION}
"""
    print(help_text)
    return 0


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog=TOOL_NAME,
        description="Extract and anonymize files from a repository",
        add_help=False,
    )

    # Global options
    parser.add_argument("-c", "--config", default=None, help="Path to settings file")
    parser.add_argument("-n", "--dry-run", action="store_true", help="Show what would happen without writing files")
    parser.add_argument("-y", "--yes", action="store_true", help="Answer yes to every confirmation")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output")
    parser.add_argument("-q", "--quiet", action="store_true", help="Suppress non-error output")
    parser.add_argument("-h", "--help", action="store_true", help="Show help message")

    # Subcommands
    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    # pull command
    pull_parser = subparsers.add_parser("pull", help="Extract and anonymize files")
    pull_parser.add_argument("files", nargs="*", help="Files to extract, relative to the source")
    pull_parser.add_argument("-s", "--source", help="Source directory (default: current directory)")
    pull_parser.add_argument("-d", "--dest", help="Destination directory")
    pull_parser.add_argument(
        "-r", "--replace", action="append", metavar="ORIGINAL=REPLACEMENT",
        help="Keyword replacement (repeatable)",
    )
    pull_parser.add_argument("--git", action="store_true", help="Extract files changed in the git working tree")
    pull_parser.add_argument("--simultaneous", action="store_true", help="Apply all replacements in a single pass")
    pull_parser.add_argument("--no-encrypt", action="store_true", help="Store a new mapping unencrypted")

    # push command
    push_parser = subparsers.add_parser("push", help="Restore files from a cloaked directory")
    push_parser.add_argument("-s", "--source", help="Cloaked directory (default: current directory)")
    push_parser.add_argument("-d", "--dest", help="Destination directory")
    push_parser.add_argument(
        "-k", "--keyword", action="append", metavar="CLOAKED=ORIGINAL",
        help="Original keyword for manual recovery (repeatable)",
    )
    push_parser.add_argument("--simultaneous", action="store_true", help="Apply all replacements in a single pass")

    # status command
    status_parser = subparsers.add_parser("status", help="Show cloaked directory status")
    status_parser.add_argument("path", nargs="?", help="Cloaked directory (default: current directory)")
    status_parser.add_argument("--json", action="store_true", help="Output status as JSON")

    # replacements command
    replacements_parser = subparsers.add_parser("replacements", help="List replacement rules")
    replacements_parser.add_argument("path", nargs="?", help="Cloaked directory (default: current directory)")

    # help command
    subparsers.add_parser("help", help="Show help message")

    return parser


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    # Show help if requested or no command
    if args.help or not args.command:
        return cmd_help(None, args)

    setup_logging(args.verbose)

    ctx = CLIContext(
        verbose=args.verbose,
        quiet=args.quiet,
        dry_run=args.dry_run,
        assume_yes=args.yes,
        settings_path=args.config,
    )

    # Dispatch to command
    commands = {
        "pull": cmd_pull,
        "push": cmd_push,
        "status": cmd_status,
        "replacements": cmd_replacements,
        "help": cmd_help,
    }

    cmd_func = commands.get(args.command)
    if not cmd_func:
        print_error(f"Unknown command: {args.command}")
        return 1

    try:
        return cmd_func(ctx, args)
    except RepoCloakError as e:
        print_error(str(e))
        return 1
    except KeyboardInterrupt:
        print_error("Interrupted")
        return 130
    except Exception as e:
        print_error(f"Unexpected error: {e}")
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
