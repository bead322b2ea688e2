"""
Pattern evaluation logic.

Given a repository-relative path and a set of sensitive-file globs, this
module decides whether the path is sensitive and which pattern caught it.

Globs only know one wildcard, ``*``, which matches any run of characters
within a single path component. Everything else is literal. A glob matches
when it covers the tail of the path starting at a component boundary, so
``secret*`` matches ``secrets.yaml`` and ``conf/secret.txt`` but neither
``notsecret.txt`` nor ``secrets/README.md``, and ``*.pem`` does not match
``foo.pem.bak``.

Patterns DO NOT perform actions. They only return decisions.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import PurePath
from typing import Iterable, Iterator, List, Optional, Pattern

from .utils import unique_ordered


def glob_to_regex(glob: str) -> str:
    """
    Translate a ``*``-only glob into regex source.

    The result is meant for ``re.search`` and is also handed to
    ``git filter-repo --path-regex``, so it carries no compile flags.
    """
    body = re.escape(glob).replace(r"\*", "[^/]*")
    return r"(?:^|/)" + body + r"\Z"


def compile_pattern(glob: str) -> Pattern[str]:
    return re.compile(glob_to_regex(glob))


@dataclass(frozen=True)
class PatternDecision:
    path: str
    matched: bool
    pattern: Optional[str] = None
    pattern_index: Optional[int] = None


class PatternSet:
    """Ordered, de-duplicated collection of sensitive-file globs."""

    def __init__(self, patterns: Iterable[str]):
        self.patterns: List[str] = unique_ordered(p for p in patterns if p)
        self._compiled = [compile_pattern(p) for p in self.patterns]

    def __iter__(self) -> Iterator[str]:
        return iter(self.patterns)

    def __len__(self) -> int:
        return len(self.patterns)

    def evaluate(self, path: str | PurePath) -> PatternDecision:
        if isinstance(path, PurePath):
            path = path.as_posix()

        for idx, regex in enumerate(self._compiled):
            if regex.search(path):
                return PatternDecision(
                    path=path,
                    matched=True,
                    pattern=self.patterns[idx],
                    pattern_index=idx,
                )

        return PatternDecision(path=path, matched=False)

    def match(self, path: str | PurePath) -> Optional[str]:
        """Return the first pattern matching path, or None."""
        return self.evaluate(path).pattern
