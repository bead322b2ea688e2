"""
Exception taxonomy.

Early, non-destructive stages raise and stop. Once history is being
rewritten, per-branch failures are collected into the result objects
instead of being raised.
"""

from __future__ import annotations

from typing import Optional, Sequence


class SecretPurgeError(RuntimeError):
    """Base class for all tool errors."""


class RepoEnvironmentError(SecretPurgeError):
    """Not run from a repository root, or no remote configured."""


class UserCancellation(SecretPurgeError):
    """The user declined a confirmation gate. Not a failure."""


class ManifestError(SecretPurgeError):
    """The configuration file is malformed or unsupported."""


class PassphraseError(SecretPurgeError):
    """The passphrase is unusable."""


class PassphraseMismatchError(PassphraseError):
    """The two passphrase entries differ."""


class CryptoError(SecretPurgeError):
    """Key derivation, randomness or cipher failure."""


class ArchiveIntegrityError(CryptoError):
    """The archive is truncated, tampered with, or the passphrase is wrong."""


class ToolUnavailableError(SecretPurgeError):
    """The history rewrite tool is missing and could not be installed."""


class GitCommandError(SecretPurgeError):
    def __init__(
        self,
        args: Sequence[str],
        returncode: int,
        stderr: str = "",
        stdout: str = "",
    ):
        self.cmd = list(args)
        self.returncode = returncode
        self.stderr = stderr.strip()
        self.stdout = stdout.strip()
        detail = f": {self.stderr}" if self.stderr else ""
        super().__init__(
            f"`{' '.join(self.cmd)}` exited with {returncode}{detail}"
        )


class PushError(SecretPurgeError):
    """A push was rejected by the remote."""

    def __init__(self, ref: str, reason: str, cause: Optional[Exception] = None):
        self.ref = ref
        self.reason = reason
        self.cause = cause
        super().__init__(f"Failed to push {ref}: {reason}")
