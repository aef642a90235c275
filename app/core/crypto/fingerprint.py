"""
Content fingerprinting.

A fingerprint is the digest of a document's raw bytes and is the document's
only identifier outside the client. It is always recomputed from the bytes;
nothing here compares against a previously stored digest.
"""

from __future__ import annotations

import hashlib
import os
from dataclasses import dataclass
from typing import BinaryIO

from app.core.exceptions import FingerprintError

SHA256_ALGORITHM = "sha256"
SHA3_256_ALGORITHM = "sha3-256"

_HASHLIB_NAMES = {
    SHA256_ALGORITHM: "sha256",
    SHA3_256_ALGORITHM: "sha3_256",
}
_DIGEST_SIZE = 32
DEFAULT_CHUNK_SIZE = 1024 * 1024

FingerprintSource = bytes | bytearray | memoryview | BinaryIO | str | os.PathLike[str]


@dataclass(frozen=True, slots=True)
class Fingerprint:
    """Fixed-width digest of a document, hex encoded for transport."""

    digest: bytes
    algorithm: str = SHA256_ALGORITHM

    def __post_init__(self) -> None:
        if self.algorithm not in _HASHLIB_NAMES:
            raise ValueError(f"Unsupported fingerprint algorithm: {self.algorithm}")
        if len(self.digest) != _DIGEST_SIZE:
            raise ValueError(
                f"Fingerprint digest must be {_DIGEST_SIZE} bytes, got {len(self.digest)}"
            )

    @property
    def hex(self) -> str:
        return self.digest.hex()

    @classmethod
    def from_hex(cls, value: str, algorithm: str = SHA256_ALGORITHM) -> Fingerprint:
        """Parse a transported fingerprint, tolerating a ``0x`` prefix and upper case."""
        normalized = value.strip().lower().removeprefix("0x")
        try:
            digest = bytes.fromhex(normalized)
        except ValueError as exc:
            raise ValueError(f"Fingerprint is not valid hex: {value!r}") from exc
        return cls(digest=digest, algorithm=algorithm)

    def __str__(self) -> str:
        return self.hex


def fingerprint(
    source: FingerprintSource,
    *,
    algorithm: str = SHA256_ALGORITHM,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> Fingerprint:
    """Compute the fingerprint of a document.

    Parameters
    ----------
    source:
        Raw bytes, a binary stream opened for reading, or a filesystem path.
        Streams are consumed from their current position to EOF.
    algorithm:
        ``sha256`` (default) or ``sha3-256``.
    chunk_size:
        Read size used for streams and files.

    Returns
    -------
    Fingerprint
        The digest of the full input.

    Raises
    ------
    FingerprintError
        If the stream or file cannot be read to the end. No partial digest
        is ever returned.
    """
    hashlib_name = _HASHLIB_NAMES.get(algorithm)
    if hashlib_name is None:
        raise ValueError(f"Unsupported fingerprint algorithm: {algorithm}")
    hasher = hashlib.new(hashlib_name)

    if isinstance(source, (bytes, bytearray, memoryview)):
        hasher.update(source)
    elif isinstance(source, (str, os.PathLike)):
        try:
            with open(source, "rb") as handle:
                _consume(handle, hasher, chunk_size)
        except OSError as exc:
            raise FingerprintError(
                f"Cannot read document: {exc.strerror or exc}",
                details={"path": os.fspath(source)},
            ) from exc
    else:
        try:
            _consume(source, hasher, chunk_size)
        except OSError as exc:
            raise FingerprintError(f"Cannot read document stream: {exc}") from exc

    return Fingerprint(digest=hasher.digest(), algorithm=algorithm)


def _consume(stream: BinaryIO, hasher: hashlib._Hash, chunk_size: int) -> None:
    while True:
        chunk = stream.read(chunk_size)
        if not chunk:
            return
        if not isinstance(chunk, bytes):
            raise FingerprintError("Document stream must be opened in binary mode")
        hasher.update(chunk)
