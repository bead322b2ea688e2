"""
The end-to-end secret removal workflow.

Stages run strictly in order:

    scan -> [a] backup + untrack -> [b] drop plaintext copies
         -> [c] rewrite history + force-push -> [d] force-push tags

Declining gate (a) or (c) raises UserCancellation. Declining (b) or (d)
only skips that step. Nothing that already happened is rolled back.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from .backup import encrypt
from .cleaner import CommitResult, TipCleaner
from .config import ARCHIVE_SUFFIX, DEFAULT_MAIN_BRANCH
from .errors import RepoEnvironmentError, UserCancellation
from .file_scanner import FileScanner
from .git import GitRepository
from .manifest import Manifest
from .prompts import ConfirmationProvider, read_new_passphrase
from .purge import FilterRepoTool, HistoryPurger, PurgeResult, default_branches
from .utils import ensure_parent_dir, free_stem, remove_tree, timestamp_slug

logger = logging.getLogger(__name__)


@dataclass
class BackupResult:
    archive: Optional[Path] = None
    plaintext_dir: Optional[Path] = None
    files: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    plaintext_removed: bool = False


@dataclass
class WorkflowReport:
    candidates: List[str] = field(default_factory=list)
    backup: Optional[BackupResult] = None
    commit: Optional[CommitResult] = None
    backup_mirror: Optional[Path] = None
    purge: Optional[PurgeResult] = None

    @property
    def exit_code(self) -> int:
        if self.purge is not None and self.purge.failed:
            return 1
        return 0


class Workflow:
    def __init__(
        self,
        repo_path: str | Path,
        manifest: Manifest,
        prompter: ConfirmationProvider,
        tool: Optional[FilterRepoTool] = None,
        passphrase: Optional[str] = None,
        log: Optional[Callable[[str], None]] = None,
    ):
        self.repo = GitRepository(Path(repo_path).resolve())
        self.manifest = manifest
        self.prompter = prompter
        self.tool = tool
        self._passphrase = passphrase
        self.log = log or logger.info
        self.slug = timestamp_slug()

    @property
    def name(self) -> str:
        return self.repo.path.name

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def check_environment(self) -> str:
        """
        Return the remote URL, or fail if this is not a usable repo root.
        """

        if not self.repo.is_repo_root():
            raise RepoEnvironmentError(
                f"{self.repo.path} is not the root of a git repository"
            )

        url = self.repo.remote_url(self.manifest.remote)
        if not url:
            raise RepoEnvironmentError(
                f"No URL configured for remote '{self.manifest.remote}'"
            )
        return self._absolute_url(url)

    def scan(self) -> List[str]:
        return sorted(FileScanner(self.repo, self.manifest.patterns).scan())

    def stage_plaintext(self, candidates: List[str], staging: Path) -> Tuple[List[str], List[str]]:
        """
        Copy candidates into staging. Unreadable or missing files are
        warned about and skipped.
        """

        copied: List[str] = []
        skipped: List[str] = []
        for rel in candidates:
            target = staging / rel
            try:
                ensure_parent_dir(target)
                shutil.copy2(self.repo.path / rel, target)
            except OSError as e:
                logger.warning("Cannot back up %s: %s", rel, e)
                skipped.append(rel)
                continue
            copied.append(rel)
        return copied, skipped

    def backup(self, candidates: List[str]) -> BackupResult:
        passphrase = self._passphrase or read_new_passphrase(self.prompter)

        backup_dir = self.manifest.resolve_dir(self.repo.path, self.manifest.backup.directory)
        stem = free_stem(backup_dir, f"{self.name}-secrets-{self.slug}", ("", ARCHIVE_SUFFIX))
        staging = backup_dir / stem
        archive_path = backup_dir / f"{stem}{ARCHIVE_SUFFIX}"

        result = BackupResult(plaintext_dir=staging)
        completed = False
        try:
            result.files, result.skipped = self.stage_plaintext(candidates, staging)
            for rel in result.skipped:
                self.log(f"Skipped (unreadable): {rel}")

            if result.files:
                archive = encrypt(
                    result.files,
                    passphrase,
                    root=staging,
                    iterations=self.manifest.backup.iterations,
                )
                archive.write(archive_path)
                result.archive = archive_path
                self.log(f"Encrypted backup written to {archive_path}")
            else:
                self.log("No readable files to back up")
            completed = True
        finally:
            if not completed:
                self._discard_failed_backup(staging, archive_path)

        return result

    def _discard_failed_backup(self, staging: Path, archive_path: Path) -> None:
        # Both paths were free before staging began
        for path in (staging, archive_path):
            try:
                if path.is_dir():
                    remove_tree(path)
                elif path.exists():
                    path.unlink()
            except OSError as e:
                logger.error("Could not remove %s after failed backup: %s", path, e)
                self.log(f"WARNING: remove {path} by hand, it may hold unencrypted secrets")

    def cleanse(self, candidates: List[str]) -> CommitResult:
        cleaner = TipCleaner(
            self.repo,
            self.manifest.patterns,
            ignore_file=self.manifest.ignore_file,
            remote=self.manifest.remote,
            commit_message=self.manifest.commit_message,
        )
        result = cleaner.cleanse(candidates)
        if result.committed:
            self.log(f"Committed {result.commit_sha}")
        else:
            self.log("Nothing new to commit")
        if result.pushed:
            self.log(f"Pushed {result.branch} to {self.manifest.remote}")
        else:
            self.log("WARNING: cleanup commit was not pushed (detached HEAD)")
        return result

    def select_branches(self) -> List[str]:
        default = self.manifest.purge.branches or default_branches(
            self.repo, DEFAULT_MAIN_BRANCH
        )
        return self.prompter.choose_branches(default)

    def purger(self) -> HistoryPurger:
        return HistoryPurger(
            self.manifest.resolve_dir(self.repo.path, self.manifest.purge.mirror_directory),
            tool=self.tool,
            name=self.name,
            keep_workspace=self.manifest.purge.keep_workspace,
        )

    # ------------------------------------------------------------------
    # Orchestration
    # ------------------------------------------------------------------

    def run(self) -> WorkflowReport:
        report = WorkflowReport()
        url = self.check_environment()

        report.candidates = self.scan()
        if not report.candidates:
            self.log("No tracked sensitive files found")
            return report

        self.log(f"Found {len(report.candidates)} tracked sensitive file(s):")
        for path in report.candidates:
            self.log(f"  - {path}")

        # (a)
        if not self.prompter.confirm(
            "Back up these files to an encrypted archive and stop tracking them?"
        ):
            raise UserCancellation("Cancelled before backup")

        report.backup = self.backup(report.candidates)

        # (b)
        if report.backup.plaintext_dir is not None and not self.manifest.backup.keep_plaintext:
            if self.prompter.confirm(
                f"Remove unencrypted copies in {report.backup.plaintext_dir}?",
                default=True,
            ):
                remove_tree(report.backup.plaintext_dir)
                report.backup.plaintext_removed = True

        report.commit = self.cleanse(report.candidates)

        # (c)
        if not self.prompter.confirm(
            "Rewrite ALL history to remove these files and force-push? This cannot be undone."
        ):
            raise UserCancellation("Cancelled before history rewrite")

        branches = self.select_branches()
        purger = self.purger()
        report.backup_mirror = purger.backup_mirror(url)
        self.log(f"Backup mirror: {report.backup_mirror}")

        report.purge = purger.purge(url, self.manifest.patterns, branches)
        try:
            # (d)
            if self.manifest.purge.push_tags and self.prompter.confirm(
                "Force-push rewritten tags as well?"
            ):
                purger.push_tags(report.purge, url)
        finally:
            purger.discard(report.purge)

        return report

    def _absolute_url(self, url: str) -> str:
        # Local remotes given as relative paths must survive a change of cwd
        candidate = Path(url)
        if "://" in url or candidate.is_absolute():
            return url
        local = self.repo.path / candidate
        if local.exists():
            return str(local.resolve())
        return url
