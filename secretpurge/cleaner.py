"""
Removal of sensitive files from the current snapshot.

Files are untracked, never deleted: after a cleanse the working tree still
holds every secret, but the next commit no longer does and the ignore file
keeps them out of future commits.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from .config import DEFAULT_COMMIT_MESSAGE, DEFAULT_IGNORE_FILE, DEFAULT_REMOTE
from .errors import GitCommandError, PushError
from .git import GitRepository
from .ignore_rules import IgnoreRules

logger = logging.getLogger(__name__)


@dataclass
class CommitResult:
    untracked: List[str] = field(default_factory=list)
    missing_on_disk: List[str] = field(default_factory=list)
    ignore_added: List[str] = field(default_factory=list)
    committed: bool = False
    commit_sha: Optional[str] = None
    pushed: bool = False
    branch: Optional[str] = None

    @property
    def is_noop(self) -> bool:
        return not self.committed


class TipCleaner:
    def __init__(
        self,
        repo: GitRepository,
        patterns: Iterable[str],
        ignore_file: str = DEFAULT_IGNORE_FILE,
        remote: Optional[str] = DEFAULT_REMOTE,
        commit_message: str = DEFAULT_COMMIT_MESSAGE,
    ):
        self.repo = repo
        self.patterns = list(patterns)
        self.ignore_file = ignore_file
        self.remote = remote
        self.commit_message = commit_message

    def cleanse(self, candidates: Iterable[str], push: bool = True) -> CommitResult:
        """
        Untrack candidates, extend the ignore file, commit, and push.

        A run with nothing to commit is a reported no-op.

        Raises:
            GitCommandError: if untracking, staging or committing fails
            PushError: if the remote rejects the branch
        """

        result = CommitResult(branch=self.repo.current_branch())

        for path in sorted(set(candidates)):
            if not (self.repo.path / path).exists():
                logger.info("%s is tracked but missing from disk; untracking anyway", path)
                result.missing_on_disk.append(path)
            self.repo.untrack(path)
            result.untracked.append(path)

        rules = IgnoreRules(self.repo.path / self.ignore_file)
        result.ignore_added = rules.ensure(self.patterns)
        self.repo.stage(self.ignore_file)

        if self.repo.has_staged_changes():
            result.commit_sha = self.repo.commit(self.commit_message)
            result.committed = True
            logger.info("Committed %s", result.commit_sha)
        else:
            logger.info("Nothing to commit; index already clean")

        if push and self.remote and not result.branch:
            logger.warning(
                "HEAD is detached; commit %s was not pushed to %s",
                result.commit_sha or "(none)",
                self.remote,
            )
        elif push and self.remote:
            try:
                self.repo.push_branch(self.remote, result.branch)
            except GitCommandError as e:
                raise PushError(result.branch, e.stderr or str(e), e) from e
            result.pushed = True

        return result
