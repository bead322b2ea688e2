"""
secretpurge

An administration tool that finds committed secrets in a git repository,
backs them up into a passphrase-encrypted archive, stops tracking them,
and rewrites the remote's history so they are gone for good.
"""

__version__ = "0.1.0"

from .backup import EncryptedArchive, decrypt, encrypt
from .cleaner import CommitResult, TipCleaner
from .file_scanner import FileScanner, scan
from .manifest import Manifest
from .purge import HistoryPurger, PurgeResult
from .rules import PatternSet
from .workflow import Workflow

__all__ = [
    "EncryptedArchive",
    "decrypt",
    "encrypt",
    "CommitResult",
    "TipCleaner",
    "FileScanner",
    "scan",
    "Manifest",
    "HistoryPurger",
    "PurgeResult",
    "PatternSet",
    "Workflow",
]
