"""
Client-side signing primitives.

Pure library modules, no network access:
- **fingerprint**: SHA-256 / SHA3-256 document fingerprints
- **providers**: one-shot negotiation of the signature backend
- **signing**: Ed25519 and post-quantum signers behind one engine
- **keys**: session-scoped key pairs
- **identity**: DID derivation from public keys
"""

from app.core.crypto.fingerprint import (
    SHA3_256_ALGORITHM,
    SHA256_ALGORITHM,
    Fingerprint,
    fingerprint,
)
from app.core.crypto.identity import derive_identity, is_identity
from app.core.crypto.keys import KeyManager, KeyPair
from app.core.crypto.providers import (
    ClassicalProvider,
    CryptoProvider,
    PostQuantumProvider,
    Unavailable,
    negotiate_provider,
)
from app.core.crypto.signing import (
    ClassicalSigner,
    PostQuantumSigner,
    SignatureEngine,
    Signer,
    signer_for,
)

__all__ = [
    "SHA256_ALGORITHM",
    "SHA3_256_ALGORITHM",
    "Fingerprint",
    "fingerprint",
    "derive_identity",
    "is_identity",
    "KeyManager",
    "KeyPair",
    "ClassicalProvider",
    "CryptoProvider",
    "PostQuantumProvider",
    "Unavailable",
    "negotiate_provider",
    "ClassicalSigner",
    "PostQuantumSigner",
    "SignatureEngine",
    "Signer",
    "signer_for",
]
