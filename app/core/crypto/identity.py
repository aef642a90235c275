"""Signer identifiers derived from public keys."""

from __future__ import annotations

import hashlib
import re

DEFAULT_NAMESPACE = "inkless"
DEFAULT_IDENTIFIER_LENGTH = 32

_DID_PATTERN = re.compile(r"^did:[a-z0-9]+:[0-9a-f]{16,64}$")


def derive_identity(
    public_key: bytes,
    *,
    namespace: str = DEFAULT_NAMESPACE,
    length: int = DEFAULT_IDENTIFIER_LENGTH,
) -> str:
    """Build ``did:<namespace>:<hex>`` from a public key.

    The identifier is a fixed-length prefix of ``SHA-256(public_key)``, so it
    has the same width for a 32-byte Ed25519 key and a ~2 KB ML-DSA key.
    """
    if not isinstance(public_key, (bytes, bytearray)) or not public_key:
        raise ValueError("Public key material must be non-empty bytes")
    if not 16 <= length <= 64:
        raise ValueError("Identifier length must be between 16 and 64 hex characters")
    digest = hashlib.sha256(bytes(public_key)).hexdigest()
    return f"did:{namespace}:{digest[:length]}"


def is_identity(value: str) -> bool:
    return bool(_DID_PATTERN.match(value))
