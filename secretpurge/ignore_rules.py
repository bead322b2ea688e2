"""
Append-only maintenance of a .gitignore style file.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, Set

from .utils import unique_ordered

logger = logging.getLogger(__name__)


class IgnoreRules:
    def __init__(self, path: str | Path):
        self.path = Path(path)

    def existing(self) -> Set[str]:
        if not self.path.exists():
            return set()
        text = self.path.read_text(encoding="utf-8", errors="replace")
        return {line.strip() for line in text.splitlines() if line.strip()}

    def ensure(self, patterns: Iterable[str]) -> List[str]:
        """
        Append every pattern that is not already a line of the file.

        Returns:
            the patterns that were appended, in order
        """

        present = self.existing()
        missing = [p for p in unique_ordered(patterns) if p not in present]
        if not missing:
            logger.debug("%s already covers all patterns", self.path)
            return []

        prefix = ""
        if self.path.exists():
            current = self.path.read_bytes()
            if current and not current.endswith(b"\n"):
                prefix = "\n"

        with self.path.open("a", encoding="utf-8") as fh:
            fh.write(prefix + "".join(f"{p}\n" for p in missing))

        logger.info("Added %d pattern(s) to %s", len(missing), self.path)
        return missing
