"""
Shared utility helpers.

This module contains small, reusable helpers that do not belong
to git orchestration, pattern matching, or encryption.
"""

from __future__ import annotations

import shutil
from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import Iterable, List, Optional, Sequence


# ---------------------------------------------------------------------------
# Naming
# ---------------------------------------------------------------------------


def timestamp_slug(now: Optional[datetime] = None) -> str:
    """Return a filesystem-safe timestamp, e.g. 20260119-134501."""
    return (now or datetime.now()).strftime("%Y%m%d-%H%M%S")


def free_stem(directory: Path, stem: str, suffixes: Sequence[str] = ("",)) -> str:
    """
    Return stem, or stem-2, stem-3, ... so that no directory/<stem><suffix>
    exists yet for any of suffixes.
    """
    candidate = stem
    counter = 1
    while any((directory / f"{candidate}{suffix}").exists() for suffix in suffixes):
        counter += 1
        candidate = f"{stem}-{counter}"
    return candidate


def unique_ordered(items: Iterable[str]) -> List[str]:
    """De-duplicate while keeping first-seen order."""
    seen = set()
    result = []
    for item in items:
        if item in seen:
            continue
        seen.add(item)
        result.append(item)
    return result


# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------


def to_repo_relative(path: str) -> str:
    """Normalize a git path to POSIX form without a leading ./"""
    return PurePosixPath(path.replace("\\", "/")).as_posix()


def is_within(root: Path, candidate: Path) -> bool:
    """True if candidate resolves inside root."""
    try:
        candidate.resolve().relative_to(root.resolve())
    except ValueError:
        return False
    return True


# ---------------------------------------------------------------------------
# Filesystem helpers
# ---------------------------------------------------------------------------


def ensure_parent_dir(path: Path) -> None:
    """Ensure the parent directory of a file exists."""
    path.parent.mkdir(parents=True, exist_ok=True)


def remove_tree(path: Path) -> None:
    """Delete a directory tree if it exists."""
    if path.exists():
        shutil.rmtree(path)
