"""
History rewriting on a throwaway mirror.

Two mirrors are involved:

- the *backup mirror*, cloned once before anything destructive happens,
  retained on disk and never pushed;
- the *scratch mirror*, rewritten in place by git-filter-repo, compacted,
  force-pushed branch by branch, then deleted.

The live working copy is never touched by this module.
"""

from __future__ import annotations

import enum
import logging
import subprocess
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

from .config import FILTER_REPO_PACKAGE
from .errors import GitCommandError, SecretPurgeError, ToolUnavailableError
from .file_scanner import scan
from .git import GitRepository
from .rules import glob_to_regex
from .utils import free_stem, remove_tree, timestamp_slug, unique_ordered

logger = logging.getLogger(__name__)


class PurgeState(enum.Enum):
    IDLE = "idle"
    MIRROR_READY = "mirror-ready"
    REWRITTEN = "rewritten"
    REWRITE_FAILED = "rewrite-failed"
    COMPACTED = "compacted"
    PUBLISHED = "published"


@dataclass
class PurgeResult:
    state: PurgeState = PurgeState.IDLE
    branches: List[str] = field(default_factory=list)
    pushed: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    tags_pushed: Optional[bool] = None
    tags_error: Optional[str] = None
    workspace: Optional[Path] = None
    remaining_paths: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.state is PurgeState.PUBLISHED and not self.failed


# ---------------------------------------------------------------------------
# External rewrite tool
# ---------------------------------------------------------------------------


class FilterRepoTool:
    """
    git-filter-repo, probed for and installed on demand.
    """

    MANUAL_HINT = (
        f"Install it manually with `{Path(sys.executable).name} -m pip install "
        f"{FILTER_REPO_PACKAGE}` (or your OS package manager) and make sure "
        "`git filter-repo` is on PATH."
    )

    def __init__(self, git: str = "git", python: str = sys.executable):
        self.git = git
        self.python = python

    def is_available(self) -> bool:
        try:
            result = subprocess.run(
                [self.git, "filter-repo", "--version"],
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError:
            return False
        return result.returncode == 0

    def install(self) -> bool:
        logger.info("Installing %s via pip", FILTER_REPO_PACKAGE)
        try:
            result = subprocess.run(
                [self.python, "-m", "pip", "install", "--user", FILTER_REPO_PACKAGE],
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError as e:
            logger.warning("Could not run pip: %s", e)
            return False
        if result.returncode != 0:
            logger.warning("pip install %s failed: %s", FILTER_REPO_PACKAGE, result.stderr.strip())
            return False
        return True

    def ensure_available(self) -> None:
        if self.is_available():
            return
        if self.install() and self.is_available():
            return
        raise ToolUnavailableError(
            f"`git filter-repo` is not available and could not be installed. {self.MANUAL_HINT}"
        )

    @staticmethod
    def build_args(patterns: Iterable[str]) -> List[str]:
        """
        Arguments for `git filter-repo` dropping every path matching patterns.

        Each glob is passed as the same regex the scanner uses, since
        filter-repo's own globs let `*` cross directory boundaries.
        """

        args = ["filter-repo", "--force", "--invert-paths"]
        for pattern in unique_ordered(patterns):
            args += ["--path-regex", glob_to_regex(pattern)]
        return args

    def rewrite(self, mirror: GitRepository, patterns: Sequence[str]) -> None:
        mirror.run(*self.build_args(patterns))


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class HistoryPurger:
    def __init__(
        self,
        workspace_dir: str | Path,
        tool: Optional[FilterRepoTool] = None,
        name: str = "repo",
        keep_workspace: bool = False,
    ):
        self.workspace_dir = Path(workspace_dir)
        self.tool = tool or FilterRepoTool()
        self.name = name
        self.keep_workspace = keep_workspace

    def _fresh_mirror_path(self, kind: str) -> Path:
        stem = free_stem(self.workspace_dir, f"{self.name}-{kind}-{timestamp_slug()}", (".git",))
        return self.workspace_dir / f"{stem}.git"

    def backup_mirror(self, source_url: str) -> Path:
        """Clone the pristine, never-pushed backup mirror."""
        destination = self._fresh_mirror_path("backup")
        GitRepository.clone_mirror(source_url, destination)
        logger.info("Backup mirror written to %s", destination)
        return destination

    def purge(
        self,
        source_url: str,
        patterns: Sequence[str],
        branches: Sequence[str],
    ) -> PurgeResult:
        """
        Rewrite all history of source_url without paths matching patterns
        and force-push each branch.

        Branch push failures are collected in the result; they never stop
        the remaining branches from being pushed.

        Raises:
            SecretPurgeError: empty branch set, or a branch missing upstream
            ToolUnavailableError: git-filter-repo cannot be made available
            GitCommandError: clone, rewrite or gc failed
        """

        result = PurgeResult(branches=unique_ordered(branches))
        if not result.branches:
            raise SecretPurgeError("No branches selected for history rewrite")
        if not patterns:
            raise SecretPurgeError("No patterns given for history rewrite")

        self.tool.ensure_available()

        workspace = self._fresh_mirror_path("purge")
        mirror = GitRepository.clone_mirror(source_url, workspace)
        result.workspace = workspace
        result.state = PurgeState.MIRROR_READY

        try:
            missing = [b for b in result.branches if not mirror.has_branch(b)]
            if missing:
                raise SecretPurgeError(
                    f"Branch(es) not found in mirror: {', '.join(missing)} "
                    f"(available: {', '.join(mirror.list_branches()) or 'none'})"
                )

            try:
                self.tool.rewrite(mirror, patterns)
            except GitCommandError as e:
                result.state = PurgeState.REWRITE_FAILED
                result.error = str(e)
                raise
            result.state = PurgeState.REWRITTEN

            # Unreachable is not enough: the blobs must be gone before pushing
            mirror.expire_reflog()
            mirror.gc()
            result.state = PurgeState.COMPACTED

            result.remaining_paths = sorted(scan(mirror.paths_in_history(), patterns))
            if result.remaining_paths:
                logger.warning(
                    "Paths still present after rewrite: %s", ", ".join(result.remaining_paths)
                )

            for branch in result.branches:
                ref = f"refs/heads/{branch}"
                try:
                    mirror.force_push_ref(source_url, ref)
                except GitCommandError as e:
                    logger.error("Force-push of %s failed: %s", branch, e.stderr or e)
                    result.failed[branch] = e.stderr or str(e)
                else:
                    logger.info("Force-pushed %s", branch)
                    result.pushed.append(branch)

            result.state = PurgeState.PUBLISHED
        finally:
            if not self.keep_workspace and result.state is not PurgeState.PUBLISHED:
                self.discard(result)

        return result

    def push_tags(self, result: PurgeResult, source_url: str) -> PurgeResult:
        """
        Force-push all tags from the rewritten mirror. Failure is recorded,
        not raised.
        """

        if result.workspace is None or not result.workspace.exists():
            raise SecretPurgeError("Rewritten mirror is no longer available")

        mirror = GitRepository(result.workspace)
        try:
            mirror.force_push_tags(source_url)
        except GitCommandError as e:
            logger.error("Force-push of tags failed: %s", e.stderr or e)
            result.tags_pushed = False
            result.tags_error = e.stderr or str(e)
        else:
            result.tags_pushed = True
        return result

    def discard(self, result: PurgeResult) -> None:
        """Delete the scratch mirror unless told to keep it."""
        if self.keep_workspace or result.workspace is None:
            return
        remove_tree(result.workspace)
        logger.debug("Removed scratch mirror %s", result.workspace)
        result.workspace = None


def default_branches(repo: GitRepository, main: str = "main") -> List[str]:
    """
    `main` when it exists, plus the current branch when it differs.
    """

    branches: List[str] = []
    if repo.has_branch(main):
        branches.append(main)
    current = repo.current_branch()
    if current and current not in branches:
        branches.append(current)
    return branches
