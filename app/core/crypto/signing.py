"""
Document signatures over content fingerprints.

Two interchangeable signers implement the :class:`Signer` capability:
Ed25519 through the ``cryptography`` library and ML-DSA (or any other
liboqs mechanism) through ``liboqs-python``. :class:`SignatureEngine` is the
only thing callers touch; which signer backs it is decided once by
:func:`~app.core.crypto.providers.negotiate_provider`.

The signed message is the UTF-8 hex form of the fingerprint, so a verifier
needs nothing but the fingerprint string, the signature and the public key.
"""

from __future__ import annotations

from types import ModuleType
from typing import Protocol

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
)

from app.core.crypto.fingerprint import Fingerprint
from app.core.crypto.providers import (
    ClassicalProvider,
    CryptoProvider,
    PostQuantumProvider,
    Unavailable,
)
from app.core.exceptions import KeyGenerationError, SigningError
from app.core.logging import get_logger

logger = get_logger(__name__)


class Signer(Protocol):
    """Capability shared by every signature scheme."""

    algorithm: str

    def generate(self) -> tuple[bytes, bytes]:
        """Return ``(public_key, private_key)`` as raw bytes."""
        ...

    def sign(self, message: bytes, private_key: bytes) -> bytes: ...

    def verify(self, message: bytes, signature: bytes, public_key: bytes) -> bool: ...


class ClassicalSigner:
    """Ed25519 signer. Signatures are deterministic (RFC 8032)."""

    algorithm = "Ed25519"

    def generate(self) -> tuple[bytes, bytes]:
        private_key = Ed25519PrivateKey.generate()
        private_raw = private_key.private_bytes(
            encoding=Encoding.Raw,
            format=PrivateFormat.Raw,
            encryption_algorithm=NoEncryption(),
        )
        public_raw = private_key.public_key().public_bytes(
            encoding=Encoding.Raw,
            format=PublicFormat.Raw,
        )
        return public_raw, private_raw

    def sign(self, message: bytes, private_key: bytes) -> bytes:
        try:
            key = Ed25519PrivateKey.from_private_bytes(private_key)
        except ValueError as exc:
            raise SigningError("Malformed Ed25519 private key") from exc
        return key.sign(message)

    def verify(self, message: bytes, signature: bytes, public_key: bytes) -> bool:
        try:
            key = Ed25519PublicKey.from_public_bytes(public_key)
        except ValueError as exc:
            raise SigningError("Malformed Ed25519 public key") from exc
        try:
            key.verify(signature, message)
            return True
        except InvalidSignature:
            return False


class PostQuantumSigner:
    """liboqs signer (ML-DSA by default)."""

    def __init__(self, algorithm: str, oqs_module: ModuleType) -> None:
        self.algorithm = algorithm
        self._oqs = oqs_module

    def generate(self) -> tuple[bytes, bytes]:
        with self._oqs.Signature(self.algorithm) as signer:
            public_key = bytes(signer.generate_keypair())
            private_key = bytes(signer.export_secret_key())
        return public_key, private_key

    def sign(self, message: bytes, private_key: bytes) -> bytes:
        with self._oqs.Signature(self.algorithm, private_key) as signer:
            return bytes(signer.sign(message))

    def verify(self, message: bytes, signature: bytes, public_key: bytes) -> bool:
        with self._oqs.Signature(self.algorithm) as verifier:
            return bool(verifier.verify(message, signature, public_key))


def signer_for(provider: CryptoProvider) -> Signer:
    """Build the signer for a negotiated provider.

    Raises
    ------
    KeyGenerationError
        If the provider is :class:`Unavailable`.
    """
    if isinstance(provider, PostQuantumProvider):
        return PostQuantumSigner(provider.algorithm, provider.module)
    if isinstance(provider, ClassicalProvider):
        return ClassicalSigner()
    if isinstance(provider, Unavailable):
        raise KeyGenerationError(
            f"No signature backend available: {provider.reason}",
            details={"reason": provider.reason},
        )
    raise TypeError(f"Unknown crypto provider: {type(provider).__name__}")


def _message(fp: Fingerprint | str) -> bytes:
    value = fp.hex if isinstance(fp, Fingerprint) else Fingerprint.from_hex(fp).hex
    return value.encode("utf-8")


class SignatureEngine:
    """Signs and verifies fingerprints with one injected signer."""

    def __init__(self, signer: Signer) -> None:
        self._signer = signer

    @classmethod
    def from_provider(cls, provider: CryptoProvider) -> SignatureEngine:
        return cls(signer_for(provider))

    @property
    def algorithm(self) -> str:
        return self._signer.algorithm

    def generate(self) -> tuple[bytes, bytes]:
        """Generate raw key material.

        Raises
        ------
        KeyGenerationError
            If the backend cannot produce a key pair.
        """
        try:
            return self._signer.generate()
        except KeyGenerationError:
            raise
        except Exception as exc:
            logger.error("key_generation_failed", algorithm=self.algorithm, error=str(exc))
            raise KeyGenerationError(
                f"{self.algorithm} key generation failed: {exc}",
                details={"algorithm": self.algorithm},
            ) from exc

    def sign(self, fp: Fingerprint | str, private_key: bytes) -> bytes:
        """Sign a fingerprint.

        Parameters
        ----------
        fp:
            Fingerprint (or its hex form) of the document.
        private_key:
            Raw private key produced by the same scheme.

        Returns
        -------
        bytes
            The signature.

        Raises
        ------
        SigningError
            If the key is malformed or the backend fails.
        """
        try:
            message = _message(fp)
        except ValueError as exc:
            raise SigningError(str(exc)) from exc
        if not private_key:
            raise SigningError("Private key is empty")
        try:
            return self._signer.sign(message, private_key)
        except SigningError:
            raise
        except Exception as exc:
            logger.error("signing_failed", algorithm=self.algorithm, error=str(exc))
            raise SigningError(
                f"{self.algorithm} signing failed: {exc}",
                details={"algorithm": self.algorithm},
            ) from exc

    def verify(self, fp: Fingerprint | str, signature: bytes, public_key: bytes) -> bool:
        """Check a signature against a fingerprint and public key.

        Returns ``False`` for a wrong or tampered signature. Raises
        :class:`SigningError` only when the public key itself is malformed.
        """
        try:
            message = _message(fp)
        except ValueError:
            return False
        if not signature:
            return False
        try:
            return self._signer.verify(message, signature, public_key)
        except SigningError:
            raise
        except Exception as exc:
            logger.warning("signature_verify_error", algorithm=self.algorithm, error=str(exc))
            return False
