"""
Thin wrapper around the git command line.

Every call passes an explicit argument list and an explicit working
directory. Nothing here depends on the process's current directory.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import List, Optional, Sequence

from .errors import GitCommandError
from .utils import to_repo_relative

logger = logging.getLogger(__name__)


class GitRepository:
    def __init__(self, path: str | Path, git: str = "git"):
        self.path = Path(path)
        self.git = git

    def __repr__(self) -> str:
        return f"GitRepository({str(self.path)!r})"

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def run(
        self,
        *args: str,
        check: bool = True,
        env: Optional[dict] = None,
    ) -> subprocess.CompletedProcess:
        cmd = [self.git, *args]
        logger.debug("git %s (cwd=%s)", " ".join(args), self.path)
        result = subprocess.run(
            cmd,
            cwd=self.path,
            capture_output=True,
            text=True,
            check=False,
            env=env,
        )
        if check and result.returncode != 0:
            raise GitCommandError(cmd, result.returncode, result.stderr, result.stdout)
        return result

    def _output(self, *args: str) -> str:
        return self.run(*args).stdout.strip()

    # ------------------------------------------------------------------
    # Repository state
    # ------------------------------------------------------------------

    def is_repo_root(self) -> bool:
        if not self.path.is_dir():
            return False
        result = self.run("rev-parse", "--show-toplevel", check=False)
        if result.returncode != 0:
            return False
        return Path(result.stdout.strip()).resolve() == self.path.resolve()

    def ls_files(self) -> List[str]:
        # -z keeps paths with spaces or non-ASCII bytes unquoted
        out = self.run("ls-files", "-z").stdout
        return [to_repo_relative(p) for p in out.split("\0") if p]

    def current_branch(self) -> Optional[str]:
        result = self.run("symbolic-ref", "--quiet", "--short", "HEAD", check=False)
        name = result.stdout.strip()
        return name or None

    def list_branches(self) -> List[str]:
        out = self._output("for-each-ref", "--format=%(refname:short)", "refs/heads/")
        return [line for line in out.splitlines() if line]

    def has_branch(self, name: str) -> bool:
        result = self.run(
            "show-ref", "--verify", "--quiet", f"refs/heads/{name}", check=False
        )
        return result.returncode == 0

    def remote_url(self, remote: str) -> Optional[str]:
        result = self.run("remote", "get-url", remote, check=False)
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    def head_sha(self) -> Optional[str]:
        result = self.run("rev-parse", "--verify", "--quiet", "HEAD", check=False)
        return result.stdout.strip() or None

    # ------------------------------------------------------------------
    # Index and commits
    # ------------------------------------------------------------------

    def untrack(self, path: str) -> None:
        """Remove path from the index, keeping the working-tree file."""
        self.run("rm", "--cached", "--quiet", "--ignore-unmatch", "--", path)

    def stage(self, *paths: str) -> None:
        self.run("add", "--", *paths)

    def has_staged_changes(self) -> bool:
        result = self.run("diff", "--cached", "--quiet", check=False)
        if result.returncode not in (0, 1):
            raise GitCommandError(
                [self.git, "diff", "--cached", "--quiet"], result.returncode, result.stderr
            )
        return result.returncode == 1

    def commit(self, message: str) -> str:
        self.run("commit", "--quiet", "-m", message)
        sha = self.head_sha()
        if sha is None:
            raise GitCommandError([self.git, "rev-parse", "HEAD"], 128, "HEAD missing after commit")
        return sha

    # ------------------------------------------------------------------
    # Remotes
    # ------------------------------------------------------------------

    def push_branch(self, remote: str, branch: str) -> None:
        self.run("push", remote, f"refs/heads/{branch}:refs/heads/{branch}")

    def force_push_ref(self, remote: str, ref: str) -> None:
        self.run("push", "--force", remote, f"{ref}:{ref}")

    def force_push_tags(self, remote: str) -> None:
        self.run("push", "--force", "--tags", remote)

    @classmethod
    def clone_mirror(cls, source: str, destination: str | Path, git: str = "git") -> "GitRepository":
        destination = Path(destination)
        if destination.exists():
            raise GitCommandError(
                [git, "clone", "--mirror", source, str(destination)],
                128,
                f"destination {destination} already exists",
            )
        destination.parent.mkdir(parents=True, exist_ok=True)
        cmd = [git, "clone", "--mirror", "--quiet", source, str(destination)]
        logger.debug("%s", " ".join(cmd))
        result = subprocess.run(cmd, capture_output=True, text=True, check=False)
        if result.returncode != 0:
            raise GitCommandError(cmd, result.returncode, result.stderr, result.stdout)
        return cls(destination, git=git)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def expire_reflog(self) -> None:
        self.run("reflog", "expire", "--expire=now", "--all")

    def gc(self) -> None:
        self.run("gc", "--prune=now", "--aggressive", "--quiet")

    def paths_in_history(self, refs: Sequence[str] = ("--all",)) -> List[str]:
        """Every path touched by any commit reachable from refs."""
        out = self.run("log", *refs, "--name-only", "--format=", "-z").stdout
        return sorted({to_repo_relative(p.strip("\n")) for p in out.split("\0") if p.strip()})
