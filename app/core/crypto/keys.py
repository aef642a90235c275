"""
Signing key lifecycle.

A :class:`KeyPair` is created on demand for one signing action and its
private half is dropped when the session ends. Nothing here writes key
material to disk or puts it in a wire payload; :meth:`KeyPair.export_private_key`
is the only way out and the caller has to ask for it.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from app.core.crypto.fingerprint import Fingerprint
from app.core.crypto.signing import SignatureEngine
from app.core.exceptions import KeyGenerationError
from app.core.logging import get_logger

logger = get_logger(__name__)


class KeyPair:
    """Public key plus a private key that stays inside this process."""

    __slots__ = ("_private_key", "algorithm", "public_key")

    def __init__(self, public_key: bytes, private_key: bytes, algorithm: str) -> None:
        self.public_key = public_key
        self.algorithm = algorithm
        self._private_key: bytes | None = private_key

    @property
    def is_destroyed(self) -> bool:
        return self._private_key is None

    @property
    def private_key(self) -> bytes:
        if self._private_key is None:
            raise KeyGenerationError("Key pair was destroyed at the end of its session")
        return self._private_key

    def export_private_key(self) -> bytes:
        """Explicitly hand the private key to the caller for persistence."""
        logger.warning("private_key_exported", algorithm=self.algorithm)
        return self.private_key

    def destroy(self) -> None:
        self._private_key = None

    def __repr__(self) -> str:
        state = "destroyed" if self.is_destroyed else "live"
        return (
            f"KeyPair(algorithm={self.algorithm!r}, "
            f"public_key={self.public_key.hex()[:16]}..., {state})"
        )

    def __reduce__(self) -> object:
        raise TypeError("KeyPair cannot be pickled")


class KeyManager:
    """Creates key pairs and signs with them through one :class:`SignatureEngine`."""

    def __init__(self, engine: SignatureEngine) -> None:
        self._engine = engine

    @property
    def engine(self) -> SignatureEngine:
        return self._engine

    def generate_keypair(self) -> KeyPair:
        """Generate a fresh key pair from the engine's backend.

        Raises
        ------
        KeyGenerationError
            If entropy or the backend is unavailable. Not retried.
        """
        public_key, private_key = self._engine.generate()
        logger.debug("keypair_generated", algorithm=self._engine.algorithm)
        return KeyPair(public_key, private_key, self._engine.algorithm)

    @contextmanager
    def session(self) -> Iterator[KeyPair]:
        """Yield a key pair whose private key is destroyed on exit."""
        keypair = self.generate_keypair()
        try:
            yield keypair
        finally:
            keypair.destroy()

    def sign(self, fp: Fingerprint | str, keypair: KeyPair) -> bytes:
        return self._engine.sign(fp, keypair.private_key)

    def verify(self, fp: Fingerprint | str, signature: bytes, public_key: bytes) -> bool:
        return self._engine.verify(fp, signature, public_key)
