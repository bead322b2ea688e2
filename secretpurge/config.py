"""
Global configuration and environment handling.

This module is responsible for:
- Defining global constants and defaults
- Describing the encrypted archive layout
- Loading the backup passphrase from the environment

Nothing in this file should depend on:
- the filesystem
- the manifest structure
- git
- CLI arguments

If something here changes, previously written archives may become unreadable.
"""

from __future__ import annotations

import os
from typing import Final, Optional, Tuple

# ---------------------------------------------------------------------------
# Tool / format versioning
# ---------------------------------------------------------------------------

SUPPORTED_MANIFEST_VERSION: Final[int] = 1
TOOL_VERSION: Final[str] = "0.1.0"

# ---------------------------------------------------------------------------
# Archive layout
#
#   salt (16 bytes) || iterations (uint32 LE) || AES-256-CBC ciphertext
#
# Key and IV come from ONE PBKDF2-HMAC-SHA256 call: bytes [0:32] are the
# key, bytes [32:48] are the IV. The IV is never written to the archive.
# ---------------------------------------------------------------------------

SALT_SIZE: Final[int] = 16
ITERATIONS_SIZE: Final[int] = 4
HEADER_SIZE: Final[int] = SALT_SIZE + ITERATIONS_SIZE
KEY_SIZE: Final[int] = 32
IV_SIZE: Final[int] = 16
AES_BLOCK_SIZE: Final[int] = 16
DEFAULT_ITERATIONS: Final[int] = 100_000
KDF_HASH: Final[str] = "SHA256"

ARCHIVE_SUFFIX: Final[str] = ".tar.gz.enc"

# ---------------------------------------------------------------------------
# Default behavior
# ---------------------------------------------------------------------------

DEFAULT_PATTERNS: Final[Tuple[str, ...]] = (
    "*.pem",
    "*.key",
    "*.crt",
    "*.p12",
    "*.pfx",
    "secret*",
)

DEFAULT_CONFIG_FILE: Final[str] = ".secretpurge.yml"
DEFAULT_IGNORE_FILE: Final[str] = ".gitignore"
DEFAULT_REMOTE: Final[str] = "origin"
DEFAULT_MAIN_BRANCH: Final[str] = "main"
DEFAULT_COMMIT_MESSAGE: Final[str] = "Stop tracking sensitive files"

FILTER_REPO_PACKAGE: Final[str] = "git-filter-repo"

# ---------------------------------------------------------------------------
# Environment variable names
# ---------------------------------------------------------------------------

ENV_PASSPHRASE: Final[str] = "SECRETPURGE_PASSPHRASE"

# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_passphrase_from_env() -> Optional[str]:
    """
    Return the backup passphrase from the environment, if set.

    Used for non-interactive runs. An empty value counts as unset so that
    an exported-but-blank variable never produces an unprotected archive.

    Returns:
        str or None
    """

    raw = os.getenv(ENV_PASSPHRASE)
    return raw or None
