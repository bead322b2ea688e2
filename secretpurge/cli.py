"""
Command-line interface for the secretpurge tool.

This module orchestrates all other components and provides
the user-facing CLI commands:
- run
- scan
- backup
- restore
- inspect
- cleanse
- purge
- help
"""

from __future__ import annotations

import sys
import json
import logging
import argparse
from pathlib import Path
from typing import List, Optional

from .backup import EncryptedArchive, bundle_files, decrypt, encrypt_bytes, restore
from .config import (
    ARCHIVE_SUFFIX,
    DEFAULT_MAIN_BRANCH,
    ENV_PASSPHRASE,
    KDF_HASH,
    TOOL_VERSION,
    load_passphrase_from_env,
)
from .errors import (
    PassphraseError,
    RepoEnvironmentError,
    SecretPurgeError,
    UserCancellation,
)
from .file_scanner import FileScanner
from .git import GitRepository
from .manifest import Manifest
from .prompts import (
    ConfirmationProvider,
    InteractivePrompter,
    ScriptedPrompter,
    read_new_passphrase,
)
from .purge import PurgeResult, default_branches
from .utils import timestamp_slug
from .workflow import Workflow, WorkflowReport


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
    RESET = "\033[0m"
    BOLD = "\033[1m"


def colored(text: str, color: str) -> str:
    """Return colored text for terminal output."""
    return f"{color}{text}{Colors.RESET}"


def print_error(msg: str) -> None:
    """Print error message to stderr."""
    print(colored(f"✗ Error: {msg}", Colors.RED), file=sys.stderr)


def print_success(msg: str) -> None:
    """Print success message."""
    print(colored(f"✓ {msg}", Colors.GREEN))


def print_warning(msg: str) -> None:
    """Print warning message."""
    print(colored(f"⚠ Warning: {msg}", Colors.YELLOW))


def print_info(msg: str) -> None:
    """Print info message."""
    print(colored(f"ℹ {msg}", Colors.CYAN))


# ---------------------------------------------------------------------------
# CLI context
# ---------------------------------------------------------------------------


class CLIContext:
    """Shared context for CLI commands."""

    def __init__(
        self,
        repo_path: str,
        config_path: Optional[str],
        verbose: bool,
        quiet: bool,
        dry_run: bool,
        assume_yes: bool,
        patterns: Optional[List[str]] = None,
        remote: Optional[str] = None,
    ):
        self.repo_path = Path(repo_path).resolve()
        self.config_path = config_path
        self.verbose = verbose
        self.quiet = quiet
        self.dry_run = dry_run
        self.assume_yes = assume_yes
        self.patterns = patterns
        self.remote = remote

        # Lazy-loaded
        self._manifest: Optional[Manifest] = None
        self._prompter: Optional[ConfirmationProvider] = None

    @property
    def manifest(self) -> Manifest:
        """Load manifest lazily."""
        if self._manifest is None:
            self._manifest = Manifest.discover(self.repo_path, self.config_path).with_overrides(
                patterns=self.patterns, remote=self.remote
            )
        return self._manifest

    @property
    def repo(self) -> GitRepository:
        return GitRepository(self.repo_path)

    @property
    def prompter(self) -> ConfirmationProvider:
        if self._prompter is None:
            if self.assume_yes:
                self._prompter = ScriptedPrompter.yes(passphrase=load_passphrase_from_env())
            else:
                self._prompter = InteractivePrompter()
        return self._prompter

    def new_passphrase(self) -> str:
        return load_passphrase_from_env() or read_new_passphrase(self.prompter)

    def existing_passphrase(self) -> str:
        passphrase = load_passphrase_from_env() or self.prompter.passphrase("Backup passphrase: ")
        if not passphrase:
            raise PassphraseError("Passphrase must not be empty")
        return passphrase

    def require_repo_root(self) -> GitRepository:
        repo = self.repo
        if not repo.is_repo_root():
            raise RepoEnvironmentError(f"{repo.path} is not the root of a git repository")
        return repo

    def log(self, msg: str) -> None:
        """Log message if not quiet."""
        if not self.quiet:
            print(msg)

    def log_verbose(self, msg: str) -> None:
        """Log message if verbose."""
        if self.verbose:
            print(colored(f"  → {msg}", Colors.BLUE))


# ---------------------------------------------------------------------------
# Command implementations
# ---------------------------------------------------------------------------


def cmd_run(ctx: CLIContext, args: argparse.Namespace) -> int:
    """
    Run the whole workflow: scan, back up, untrack, rewrite history.
    """
    if ctx.dry_run:
        return cmd_scan(ctx, args)

    workflow = Workflow(
        ctx.repo_path,
        ctx.manifest,
        ctx.prompter,
        passphrase=load_passphrase_from_env(),
        log=ctx.log,
    )
    report = workflow.run()
    print_report(ctx, report)
    return report.exit_code


def cmd_scan(ctx: CLIContext, args: argparse.Namespace) -> int:
    """
    List tracked files matching the sensitive patterns.
    """
    repo = ctx.require_repo_root()
    scanner = FileScanner(repo, ctx.manifest.patterns)
    decisions = sorted(scanner.decisions(), key=lambda d: d.path)

    if getattr(args, "json", False):
        output = {
            "patterns": ctx.manifest.patterns,
            "candidates": [{"path": d.path, "pattern": d.pattern} for d in decisions],
        }
        print(json.dumps(output, indent=2))
        return 0

    if not decisions:
        print_success("No tracked sensitive files found")
        return 0

    if ctx.dry_run:
        ctx.log(colored("[DRY RUN] Files that would be backed up and untracked:", Colors.YELLOW))
    else:
        ctx.log(colored("Tracked sensitive files", Colors.BOLD))

    for decision in decisions:
        ctx.log(f"  {colored('→', Colors.CYAN)} {decision.path}")
        ctx.log_verbose(f"matched {decision.pattern}")

    ctx.log("")
    ctx.log(f"{len(decisions)} file(s) found")
    return 1 if getattr(args, "ci", False) else 0


def cmd_backup(ctx: CLIContext, args: argparse.Namespace) -> int:
    """
    Encrypt tracked sensitive files (or the given paths) into an archive.
    """
    repo = ctx.require_repo_root()
    files = args.paths or sorted(FileScanner(repo, ctx.manifest.patterns).scan())
    if not files:
        ctx.log(colored("No files to back up", Colors.YELLOW))
        return 0

    output = Path(args.output) if args.output else (
        ctx.manifest.resolve_dir(repo.path, ctx.manifest.backup.directory)
        / f"{repo.path.name}-secrets-{timestamp_slug()}{ARCHIVE_SUFFIX}"
    )

    if ctx.dry_run:
        ctx.log(colored("[DRY RUN] Would encrypt:", Colors.YELLOW))
        for rel in files:
            ctx.log(f"  {colored('→', Colors.CYAN)} {rel}")
        ctx.log(f"Output: {output}")
        return 0

    passphrase = ctx.new_passphrase()
    bundle, skipped = bundle_files(repo.path, files, skip_unreadable=True)
    for rel in skipped:
        print_warning(f"Skipped unreadable file: {rel}")

    archive = encrypt_bytes(bundle, passphrase, ctx.manifest.backup.iterations)
    archive.write(output)
    print_success(f"Encrypted {len(files) - len(skipped)} file(s) into {output}")
    return 0


def cmd_restore(ctx: CLIContext, args: argparse.Namespace) -> int:
    """
    Decrypt an archive and write its files back to disk.
    """
    archive_path = Path(args.archive)
    if not archive_path.exists():
        print_error(f"File not found: {archive_path}")
        return 1

    destination = Path(args.destination) if args.destination else ctx.repo_path
    passphrase = ctx.existing_passphrase()
    written = restore(archive_path, passphrase, destination, overwrite=args.overwrite)

    for path in written:
        ctx.log(f"  ✓ {path}")
    print_success(f"Restored {len(written)} file(s) into {destination}")
    return 0


def cmd_inspect(ctx: CLIContext, args: argparse.Namespace) -> int:
    """
    Show the header of an encrypted archive.
    """
    file_path = Path(args.path)
    if not file_path.exists():
        print_error(f"File not found: {file_path}")
        return 1

    archive = EncryptedArchive.read(file_path)

    ctx.log(colored(f"\n{'='*60}", Colors.CYAN))
    ctx.log(colored("Encrypted Archive Inspection", Colors.BOLD))
    ctx.log(colored(f"{'='*60}\n", Colors.CYAN))

    ctx.log(f"{colored('File:', Colors.BOLD)} {file_path}")
    ctx.log(f"{colored('Size:', Colors.BOLD)} {archive.size} bytes\n")

    ctx.log(colored("Key Derivation:", Colors.CYAN))
    ctx.log(f"  Function:           PBKDF2-HMAC-{KDF_HASH}")
    ctx.log(f"  Salt:               {archive.salt.hex()}")
    ctx.log(f"  Iterations:         {archive.iterations}")

    ctx.log(f"\n{colored('Encryption Details:', Colors.CYAN)}")
    ctx.log("  Algorithm:          AES-256-CBC (PKCS#7)")
    ctx.log("  IV:                 derived, not stored")
    ctx.log("  Authenticated:      No")
    ctx.log(f"  Ciphertext:         {len(archive.ciphertext)} bytes")

    if args.list:
        contents = decrypt(archive, ctx.existing_passphrase())
        ctx.log(f"\n{colored('Contents:', Colors.CYAN)}")
        for name, data in sorted(contents.items()):
            ctx.log(f"  {name} ({len(data)} bytes)")

    ctx.log(colored(f"\n{'='*60}\n", Colors.CYAN))
    return 0


def cmd_cleanse(ctx: CLIContext, args: argparse.Namespace) -> int:
    """
    Untrack sensitive files, extend the ignore file, commit and push.
    """
    workflow = Workflow(ctx.repo_path, ctx.manifest, ctx.prompter, log=ctx.log)
    workflow.check_environment()
    candidates = workflow.scan()

    if ctx.dry_run:
        return cmd_scan(ctx, args)

    if not candidates:
        ctx.log("No tracked sensitive files; ensuring ignore rules only")
    elif not ctx.prompter.confirm(f"Stop tracking {len(candidates)} file(s)?"):
        raise UserCancellation("Cancelled before untracking")

    result = workflow.cleanse(candidates)
    for path in result.missing_on_disk:
        print_warning(f"{path} was tracked but missing from disk")
    if result.ignore_added:
        ctx.log_verbose(f"Ignore rules added: {', '.join(result.ignore_added)}")
    return 0


def cmd_purge(ctx: CLIContext, args: argparse.Namespace) -> int:
    """
    Rewrite history on a mirror and force-push selected branches.
    """
    workflow = Workflow(ctx.repo_path, ctx.manifest, ctx.prompter, log=ctx.log)
    url = workflow.check_environment()

    if args.branch:
        branches = list(args.branch)
    else:
        branches = ctx.prompter.choose_branches(
            ctx.manifest.purge.branches or default_branches(ctx.repo, DEFAULT_MAIN_BRANCH)
        )

    if ctx.dry_run:
        ctx.log(colored("[DRY RUN] History rewrite preview", Colors.YELLOW))
        ctx.log(f"  Remote:   {url}")
        ctx.log(f"  Branches: {', '.join(branches) or 'none'}")
        ctx.log(f"  Patterns: {', '.join(ctx.manifest.patterns)}")
        return 0

    if not ctx.prompter.confirm(
        "Rewrite ALL history to remove matching paths and force-push? This cannot be undone."
    ):
        raise UserCancellation("Cancelled before history rewrite")

    purger = workflow.purger()
    mirror = purger.backup_mirror(url)
    ctx.log(f"Backup mirror: {mirror}")

    result = purger.purge(url, ctx.manifest.patterns, branches)
    try:
        if ctx.manifest.purge.push_tags and ctx.prompter.confirm("Force-push rewritten tags as well?"):
            purger.push_tags(result, url)
    finally:
        purger.discard(result)

    report = WorkflowReport(backup_mirror=mirror, purge=result)
    print_report(ctx, report)
    return report.exit_code


def cmd_help(ctx: Optional[CLIContext], args: argparse.Namespace) -> int:
    """
    Show help message.
    """
    help_text = f"""
{colored('secretpurge', Colors.BOLD)} — back up, untrack and purge committed secrets

{colored('USAGE:', Colors.CYAN)}
  secretpurge [options] <command> [command options]

{colored('DESCRIPTION:', Colors.CYAN)}
  secretpurge finds tracked files matching sensitive patterns (keys,
  certificates, secrets*), encrypts them into a passphrase-protected
  backup, stops tracking them, and rewrites the remote's history so they
  never existed.

{colored('COMMANDS:', Colors.CYAN)}
  run         Full workflow with confirmation at every destructive step
  scan        List tracked sensitive files
  backup      Encrypt sensitive files into an archive
  restore     Decrypt an archive back onto disk
  inspect     Show an archive's header
  cleanse     Untrack sensitive files, update ignore rules, commit and push
  purge       Rewrite history on a mirror and force-push branches
  help        Show this help message

{colored('GLOBAL OPTIONS:', Colors.CYAN)}
  -C, --repo PATH           Repository root (default: current directory)
  -c, --config PATH         Configuration file
                            (default: <repo>/.secretpurge.yml if present)
  -p, --pattern GLOB        Sensitive pattern (repeatable, overrides config)
  -r, --remote NAME         Remote to publish to (default: origin)
  -n, --dry-run             Show what would happen without modifying anything
  -y, --yes                 Answer yes to every confirmation
  -v, --verbose             Enable verbose output
  -q, --quiet               Suppress non-error output
  -h, --help                Show this help message and exit

{colored('ENVIRONMENT:', Colors.CYAN)}
  {ENV_PASSPHRASE}    Backup passphrase for non-interactive runs

{colored('EXAMPLES:', Colors.CYAN)}
  secretpurge scan
  secretpurge run
  secretpurge -p '*.pem' -p 'secret*.txt' run
  secretpurge inspect ../config-secrets-20260119-134501{ARCHIVE_SUFFIX}
  secretpurge restore ../config-secrets-20260119-134501{ARCHIVE_SUFFIX} -d /tmp/restored

{colored('VERSION:', Colors.CYAN)}
  {TOOL_VERSION}
"""
    print(help_text)
    return 0


def print_report(ctx: CLIContext, report: WorkflowReport) -> None:
    ctx.log("")
    ctx.log(colored("Summary", Colors.BOLD))

    if report.backup is not None:
        if report.backup.archive:
            ctx.log(f"  Encrypted backup:  {report.backup.archive}")
        for rel in report.backup.skipped:
            print_warning(f"Not backed up: {rel}")
        if report.backup.plaintext_dir and not report.backup.plaintext_removed:
            print_warning(f"Unencrypted copies remain in {report.backup.plaintext_dir}")

    if report.commit is not None:
        ctx.log(f"  Untracked files:   {len(report.commit.untracked)}")

    if report.backup_mirror is not None:
        ctx.log(f"  Backup mirror:     {report.backup_mirror}")

    purge: Optional[PurgeResult] = report.purge
    if purge is None:
        return

    for branch in purge.pushed:
        print_success(f"Force-pushed {branch}")
    for branch, reason in purge.failed.items():
        print_error(f"Force-push of {branch} failed: {reason}")
    if purge.tags_pushed:
        print_success("Force-pushed tags")
    elif purge.tags_pushed is False:
        print_warning(f"Tag push failed: {purge.tags_error}")
    for path in purge.remaining_paths:
        print_warning(f"Still present in rewritten history: {path}")

    if purge.failed:
        print_warning(
            "These branches still expose the old history and need manual attention: "
            + ", ".join(purge.failed)
        )
    else:
        print_info(
            "Remote history rewritten. Re-clone, or fetch and hard-reset every "
            "local clone; they still contain the old objects."
        )


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="secretpurge",
        description="Back up, untrack and purge committed secrets",
        add_help=False,
    )

    # Global options
    parser.add_argument("-C", "--repo", default=".", help="Repository root")
    parser.add_argument("-c", "--config", default=None, help="Path to configuration file")
    parser.add_argument(
        "-p", "--pattern",
        action="append",
        dest="patterns",
        help="Sensitive file pattern (repeatable)",
    )
    parser.add_argument("-r", "--remote", default=None, help="Remote name")
    parser.add_argument(
        "-n", "--dry-run",
        action="store_true",
        help="Show what would happen without modifying anything",
    )
    parser.add_argument("-y", "--yes", action="store_true", help="Assume yes at every prompt")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output")
    parser.add_argument("-q", "--quiet", action="store_true", help="Suppress non-error output")
    parser.add_argument("-h", "--help", action="store_true", help="Show help message")

    # Subcommands
    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    subparsers.add_parser("run", help="Run the full workflow")

    scan_parser = subparsers.add_parser("scan", help="List tracked sensitive files")
    scan_parser.add_argument("--json", action="store_true", help="Output as JSON")
    scan_parser.add_argument("--ci", action="store_true", help="Exit 1 when files are found")

    backup_parser = subparsers.add_parser("backup", help="Encrypt sensitive files")
    backup_parser.add_argument("paths", nargs="*", help="Specific repository paths to back up")
    backup_parser.add_argument("-o", "--output", help="Archive path")

    restore_parser = subparsers.add_parser("restore", help="Decrypt an archive")
    restore_parser.add_argument("archive", help="Path to encrypted archive")
    restore_parser.add_argument("-d", "--destination", help="Directory to restore into")
    restore_parser.add_argument("--overwrite", action="store_true", help="Overwrite existing files")

    inspect_parser = subparsers.add_parser("inspect", help="Show archive header")
    inspect_parser.add_argument("path", help="Path to encrypted archive")
    inspect_parser.add_argument("--list", action="store_true", help="Decrypt and list contents")

    subparsers.add_parser("cleanse", help="Untrack sensitive files and commit")

    purge_parser = subparsers.add_parser("purge", help="Rewrite history and force-push")
    purge_parser.add_argument(
        "-b", "--branch",
        action="append",
        help="Branch to rewrite and force-push (repeatable)",
    )

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

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    # Build context
    ctx = CLIContext(
        repo_path=args.repo,
        config_path=args.config,
        verbose=args.verbose,
        quiet=args.quiet,
        dry_run=args.dry_run,
        assume_yes=args.yes,
        patterns=args.patterns,
        remote=args.remote,
    )

    # Dispatch to command
    commands = {
        "run": cmd_run,
        "scan": cmd_scan,
        "backup": cmd_backup,
        "restore": cmd_restore,
        "inspect": cmd_inspect,
        "cleanse": cmd_cleanse,
        "purge": cmd_purge,
        "help": cmd_help,
    }

    cmd_func = commands.get(args.command)
    if not cmd_func:
        print_error(f"Unknown command: {args.command}")
        return 1

    try:
        return cmd_func(ctx, args)
    except UserCancellation as e:
        ctx.log(f"Aborted: {e}")
        return 0
    except KeyboardInterrupt:
        print_error("Interrupted")
        return 130
    except SecretPurgeError as e:
        print_error(str(e))
        return 1
    except OSError as e:
        print_error(str(e))
        return 1
    except Exception as e:
        print_error(f"Unexpected error: {e}")
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
