"""
Tracked-file scanning.

This module is responsible for:
- asking git for the tracked paths of a repository
- applying pattern decisions to those paths
- returning the candidate files that should be backed up and untracked

This module does NOT:
- encrypt data
- modify the index or the working tree
- load configuration files
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable, Iterator, Set

from .rules import PatternDecision, PatternSet

if TYPE_CHECKING:
    from .git import GitRepository

logger = logging.getLogger(__name__)


def scan(tracked_paths: Iterable[str], patterns: Iterable[str] | PatternSet) -> Set[str]:
    """
    Return the subset of tracked_paths matching at least one pattern.

    Pure: no filesystem or git access. Returns an empty set, never an
    error, when nothing matches.
    """

    pattern_set = patterns if isinstance(patterns, PatternSet) else PatternSet(patterns)
    return {
        path for path in tracked_paths if pattern_set.match(path) is not None
    }


class FileScanner:
    def __init__(self, repo: "GitRepository", patterns: Iterable[str] | PatternSet):
        self.repo = repo
        self.patterns = patterns if isinstance(patterns, PatternSet) else PatternSet(patterns)

    def decisions(self) -> Iterator[PatternDecision]:
        """
        Yield a decision for every tracked path that matches a pattern.
        """

        tracked = self.repo.ls_files()
        logger.debug("Scanning %d tracked paths in %s", len(tracked), self.repo.path)

        for path in tracked:
            decision = self.patterns.evaluate(path)
            if decision.matched:
                logger.debug("%s matched %s", path, decision.pattern)
                yield decision

    def scan(self) -> Set[str]:
        return scan(self.repo.ls_files(), self.patterns)
