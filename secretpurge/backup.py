"""
Encrypted backup archives.

Layout of an archive file::

    salt (16 bytes) || iterations (uint32, little-endian) || ciphertext

The ciphertext is AES-256-CBC with PKCS#7 padding over a gzip-compressed
tar bundle of the secret files, each stored under its repository-relative
name.

Key and IV are derived together: one PBKDF2-HMAC-SHA256 call produces 48
bytes, the first 32 are the key and the next 16 are the IV. The IV is NOT
stored in the file and must be re-derived on decrypt. This is not how new
formats should be designed (the usual approach stores a random IV next to
the ciphertext and authenticates everything) but existing archives depend
on it, so both the derivation and the byte split must stay exactly as is.

CBC carries no authentication tag. Tampering and wrong passphrases are
caught by the padding check, then by the gzip CRC, then by the tar parser.
"""

from __future__ import annotations

import gzip
import io
import logging
import struct
import tarfile
import time
import zlib
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Dict, Iterable, List, Tuple

from Crypto.Cipher import AES
from Crypto.Hash import SHA256
from Crypto.Protocol.KDF import PBKDF2
from Crypto.Random import get_random_bytes
from Crypto.Util.Padding import pad, unpad

from .config import (
    AES_BLOCK_SIZE,
    DEFAULT_ITERATIONS,
    HEADER_SIZE,
    IV_SIZE,
    KEY_SIZE,
    SALT_SIZE,
)
from .errors import ArchiveIntegrityError, CryptoError, PassphraseError
from .utils import ensure_parent_dir, is_within

logger = logging.getLogger(__name__)

_ITERATIONS_FORMAT = "<I"


@dataclass(frozen=True)
class EncryptedArchive:
    salt: bytes
    iterations: int
    ciphertext: bytes

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_bytes(self) -> bytes:
        return self.salt + struct.pack(_ITERATIONS_FORMAT, self.iterations) + self.ciphertext

    @classmethod
    def from_bytes(cls, data: bytes) -> "EncryptedArchive":
        if len(data) < HEADER_SIZE + AES_BLOCK_SIZE:
            raise ArchiveIntegrityError(
                f"Archive too short ({len(data)} bytes); expected at least "
                f"{HEADER_SIZE + AES_BLOCK_SIZE}"
            )

        salt = data[:SALT_SIZE]
        (iterations,) = struct.unpack(_ITERATIONS_FORMAT, data[SALT_SIZE:HEADER_SIZE])
        ciphertext = data[HEADER_SIZE:]

        if iterations == 0:
            raise ArchiveIntegrityError("Archive header has an iteration count of zero")
        if len(ciphertext) % AES_BLOCK_SIZE:
            raise ArchiveIntegrityError(
                f"Ciphertext length {len(ciphertext)} is not a multiple of {AES_BLOCK_SIZE}"
            )

        return cls(salt=salt, iterations=iterations, ciphertext=ciphertext)

    def write(self, path: str | Path) -> Path:
        path = Path(path)
        ensure_parent_dir(path)
        path.write_bytes(self.to_bytes())
        return path

    @classmethod
    def read(cls, path: str | Path) -> "EncryptedArchive":
        return cls.from_bytes(Path(path).read_bytes())

    @property
    def size(self) -> int:
        return HEADER_SIZE + len(self.ciphertext)


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------


def derive_key_iv(passphrase: str, salt: bytes, iterations: int) -> Tuple[bytes, bytes]:
    """Return (key, iv) from a single PBKDF2-HMAC-SHA256 derivation."""
    if not passphrase:
        raise PassphraseError("Passphrase must not be empty")

    material = PBKDF2(
        passphrase.encode("utf-8"),
        salt,
        dkLen=KEY_SIZE + IV_SIZE,
        count=iterations,
        hmac_hash_module=SHA256,
    )
    return material[:KEY_SIZE], material[KEY_SIZE:KEY_SIZE + IV_SIZE]


def _new_salt() -> bytes:
    try:
        return get_random_bytes(SALT_SIZE)
    except (OSError, NotImplementedError) as e:
        raise CryptoError(f"Could not generate a random salt: {e}") from e


# ---------------------------------------------------------------------------
# Bundling
# ---------------------------------------------------------------------------


def bundle_files(
    root: str | Path,
    files: Iterable[str],
    skip_unreadable: bool = False,
) -> Tuple[bytes, List[str]]:
    """
    Pack files (relative to root) into an in-memory tar.gz.

    Returns:
        (bundle bytes, list of skipped relative paths)

    Raises:
        OSError: if a file cannot be read and skip_unreadable is False
    """

    root = Path(root)
    skipped: List[str] = []
    buf = io.BytesIO()

    with tarfile.open(fileobj=buf, mode="w:gz") as tar:
        for rel in sorted(set(files)):
            source = root / rel
            try:
                data = source.read_bytes()
            except OSError as e:
                if not skip_unreadable:
                    raise
                logger.warning("Skipping unreadable file %s: %s", rel, e)
                skipped.append(rel)
                continue

            info = tarfile.TarInfo(name=PurePosixPath(rel).as_posix())
            info.size = len(data)
            info.mode = 0o600
            info.mtime = int(time.time())
            tar.addfile(info, io.BytesIO(data))

    return buf.getvalue(), skipped


def unbundle(bundle: bytes) -> Dict[str, bytes]:
    try:
        # gzip.decompress verifies the CRC32 trailer
        raw_tar = gzip.decompress(bundle)
        contents: Dict[str, bytes] = {}
        with tarfile.open(fileobj=io.BytesIO(raw_tar), mode="r:") as tar:
            for member in tar.getmembers():
                if not member.isfile():
                    continue
                extracted = tar.extractfile(member)
                if extracted is None:
                    continue
                contents[member.name] = extracted.read()
    except (OSError, EOFError, zlib.error, tarfile.TarError) as e:
        raise ArchiveIntegrityError(f"Backup bundle is corrupt: {e}") from e
    return contents


# ---------------------------------------------------------------------------
# Cipher layer
# ---------------------------------------------------------------------------


def encrypt_bytes(
    plaintext: bytes,
    passphrase: str,
    iterations: int = DEFAULT_ITERATIONS,
) -> EncryptedArchive:
    salt = _new_salt()
    key, iv = derive_key_iv(passphrase, salt, iterations)
    try:
        cipher = AES.new(key, AES.MODE_CBC, iv=iv)
        ciphertext = cipher.encrypt(pad(plaintext, AES_BLOCK_SIZE, style="pkcs7"))
    except ValueError as e:
        raise CryptoError(f"Encryption failed: {e}") from e
    return EncryptedArchive(salt=salt, iterations=iterations, ciphertext=ciphertext)


def decrypt_bytes(archive: EncryptedArchive | bytes, passphrase: str) -> bytes:
    if not isinstance(archive, EncryptedArchive):
        archive = EncryptedArchive.from_bytes(archive)

    key, iv = derive_key_iv(passphrase, archive.salt, archive.iterations)
    try:
        cipher = AES.new(key, AES.MODE_CBC, iv=iv)
        return unpad(cipher.decrypt(archive.ciphertext), AES_BLOCK_SIZE, style="pkcs7")
    except ValueError as e:
        raise ArchiveIntegrityError(
            "Decryption failed: wrong passphrase or corrupted archive"
        ) from e


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def encrypt(
    files: Iterable[str],
    passphrase: str,
    root: str | Path = ".",
    iterations: int = DEFAULT_ITERATIONS,
) -> EncryptedArchive:
    """
    Bundle files (relative to root) and encrypt them with passphrase.

    Raises:
        OSError: if an input file is unreadable
        CryptoError: if salt generation or encryption fails
    """

    bundle, _ = bundle_files(root, files)
    archive = encrypt_bytes(bundle, passphrase, iterations)
    logger.debug(
        "Encrypted %d bytes into %d byte archive (%d iterations)",
        len(bundle),
        archive.size,
        iterations,
    )
    return archive


def decrypt(archive: EncryptedArchive | bytes, passphrase: str) -> Dict[str, bytes]:
    """
    Decrypt an archive and return {relative path: content}.

    Raises:
        ArchiveIntegrityError: wrong passphrase, tampering, or truncation
    """

    return unbundle(decrypt_bytes(archive, passphrase))


def restore(
    archive_path: str | Path,
    passphrase: str,
    destination: str | Path,
    overwrite: bool = False,
) -> List[Path]:
    """
    Decrypt an archive file and write its contents under destination.

    Existing files are left untouched unless overwrite is set.
    """

    destination = Path(destination)
    contents = decrypt(EncryptedArchive.read(archive_path), passphrase)

    written: List[Path] = []
    for name, data in sorted(contents.items()):
        target = destination / name
        if PurePosixPath(name).is_absolute() or not is_within(destination, target):
            raise ArchiveIntegrityError(f"Refusing to restore outside destination: {name}")

        if target.exists() and not overwrite:
            logger.warning("Not overwriting existing file %s", target)
            continue

        ensure_parent_dir(target)
        target.write_bytes(data)
        written.append(target)

    return written
