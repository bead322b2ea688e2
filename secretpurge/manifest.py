"""
Manifest loading, validation, and normalization.

This module answers one question:
    "Which files are secret, and where do backups and mirrors go?"

Responsibilities:
- Load the optional .secretpurge.yml file
- Validate structure and version
- Normalize defaults
- Expose a clean Python representation

This module does NOT:
- Match files
- Encrypt data
- Talk to git
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .config import (
    DEFAULT_COMMIT_MESSAGE,
    DEFAULT_CONFIG_FILE,
    DEFAULT_IGNORE_FILE,
    DEFAULT_ITERATIONS,
    DEFAULT_PATTERNS,
    DEFAULT_REMOTE,
    SUPPORTED_MANIFEST_VERSION,
)
from .errors import ManifestError
from .utils import unique_ordered


# ---------------------------------------------------------------------------
# Data models
# ---------------------------------------------------------------------------


@dataclass
class BackupConfig:
    # Relative paths are resolved against the repository root.
    directory: str = ".."
    iterations: int = DEFAULT_ITERATIONS
    keep_plaintext: bool = False


@dataclass
class PurgeConfig:
    branches: List[str] = field(default_factory=list)
    mirror_directory: str = ".."
    keep_workspace: bool = False
    push_tags: bool = True


@dataclass
class Manifest:
    version: int = SUPPORTED_MANIFEST_VERSION
    patterns: List[str] = field(default_factory=lambda: list(DEFAULT_PATTERNS))
    ignore_file: str = DEFAULT_IGNORE_FILE
    remote: str = DEFAULT_REMOTE
    commit_message: str = DEFAULT_COMMIT_MESSAGE
    backup: BackupConfig = field(default_factory=BackupConfig)
    purge: PurgeConfig = field(default_factory=PurgeConfig)

    # ------------------------------------------------------------------
    # Loading API
    # ------------------------------------------------------------------

    @classmethod
    def load(cls, path: str | Path) -> "Manifest":
        """
        Load and validate a manifest file.

        Args:
            path: Path to the manifest YAML file

        Raises:
            ManifestError: if the manifest is missing or invalid

        Returns:
            Manifest
        """

        path = Path(path)
        if not path.exists():
            raise ManifestError(f"Manifest file not found: {path}")

        try:
            with path.open("r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh) or {}
        except yaml.YAMLError as e:
            raise ManifestError(f"Invalid YAML in {path}: {e}") from e

        if not isinstance(raw, dict):
            raise ManifestError(f"Manifest {path} must be a mapping")

        return cls._from_dict(raw)

    @classmethod
    def discover(cls, repo_root: str | Path, explicit: Optional[str] = None) -> "Manifest":
        """
        Load an explicit manifest, else the repo's default one, else defaults.
        """

        if explicit:
            return cls.load(explicit)

        candidate = Path(repo_root) / DEFAULT_CONFIG_FILE
        if candidate.exists():
            return cls.load(candidate)
        return cls()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @classmethod
    def _from_dict(cls, data: Dict[str, Any]) -> "Manifest":
        version = data.get("version", SUPPORTED_MANIFEST_VERSION)
        if version != SUPPORTED_MANIFEST_VERSION:
            raise ManifestError(f"Unsupported manifest version: {version}")

        patterns = data.get("patterns", list(DEFAULT_PATTERNS))
        if not isinstance(patterns, list) or not all(
            isinstance(p, str) and p.strip() for p in patterns
        ):
            raise ManifestError("'patterns' must be a list of non-empty strings")
        if not patterns:
            raise ManifestError("'patterns' must not be empty")

        return cls(
            version=version,
            patterns=unique_ordered(p.strip() for p in patterns),
            ignore_file=str(data.get("ignore_file", DEFAULT_IGNORE_FILE)),
            remote=str(data.get("remote", DEFAULT_REMOTE)),
            commit_message=str(data.get("commit_message", DEFAULT_COMMIT_MESSAGE)),
            backup=cls._parse_backup(data.get("backup") or {}),
            purge=cls._parse_purge(data.get("purge") or {}),
        )

    @staticmethod
    def _parse_backup(data: Dict[str, Any]) -> BackupConfig:
        iterations = data.get("iterations", DEFAULT_ITERATIONS)
        if not isinstance(iterations, int) or not 0 < iterations < 2**32:
            raise ManifestError(
                f"'backup.iterations' must be a positive 32-bit integer, got {iterations!r}"
            )

        return BackupConfig(
            directory=str(data.get("directory", "..")),
            iterations=iterations,
            keep_plaintext=bool(data.get("keep_plaintext", False)),
        )

    @staticmethod
    def _parse_purge(data: Dict[str, Any]) -> PurgeConfig:
        branches = data.get("branches", [])
        if not isinstance(branches, list):
            raise ManifestError("'purge.branches' must be a list")

        return PurgeConfig(
            branches=unique_ordered(str(b) for b in branches),
            mirror_directory=str(data.get("mirror_directory", "..")),
            keep_workspace=bool(data.get("keep_workspace", False)),
            push_tags=bool(data.get("push_tags", True)),
        )

    # ------------------------------------------------------------------
    # Public helpers
    # ------------------------------------------------------------------

    def with_overrides(
        self,
        patterns: Optional[List[str]] = None,
        branches: Optional[List[str]] = None,
        remote: Optional[str] = None,
    ) -> "Manifest":
        """
        Return a copy with CLI overrides applied.
        """

        updated = self
        if patterns:
            updated = replace(updated, patterns=unique_ordered(patterns))
        if branches:
            updated = replace(
                updated, purge=replace(updated.purge, branches=unique_ordered(branches))
            )
        if remote:
            updated = replace(updated, remote=remote)
        return updated

    def resolve_dir(self, repo_root: str | Path, configured: str) -> Path:
        path = Path(configured).expanduser()
        if not path.is_absolute():
            path = Path(repo_root) / path
        return path.resolve()
