"""Tests for the signature engine, backend negotiation, and key sessions."""

from __future__ import annotations

import pickle
from types import SimpleNamespace
from typing import Any
from unittest.mock import patch

import pytest
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from app.core.crypto import providers
from app.core.crypto.fingerprint import fingerprint
from app.core.crypto.keys import KeyManager
from app.core.crypto.providers import (
    ClassicalProvider,
    PostQuantumProvider,
    Unavailable,
    negotiate_provider,
)
from app.core.crypto.signing import (
    ClassicalSigner,
    PostQuantumSigner,
    SignatureEngine,
    signer_for,
)
from app.core.exceptions import KeyGenerationError, SigningError

# ---------------------------------------------------------------------------
# Fake liboqs module backed by Ed25519
# ---------------------------------------------------------------------------


class _FakeOqsSignature:
    def __init__(self, algorithm: str, secret_key: bytes | None = None) -> None:
        self.algorithm = algorithm
        self._secret_key = secret_key

    def __enter__(self) -> _FakeOqsSignature:
        return self

    def __exit__(self, *exc: object) -> None:
        return None

    def generate_keypair(self) -> bytes:
        key = Ed25519PrivateKey.generate()
        self._secret_key = key.private_bytes_raw()
        return key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)

    def export_secret_key(self) -> bytes:
        assert self._secret_key is not None
        return self._secret_key

    def sign(self, message: bytes) -> bytes:
        assert self._secret_key is not None
        return Ed25519PrivateKey.from_private_bytes(self._secret_key).sign(message)

    def verify(self, message: bytes, signature: bytes, public_key: bytes) -> bool:
        return ClassicalSigner().verify(message, signature, public_key)


def _fake_oqs(enabled: list[str]) -> Any:
    return SimpleNamespace(
        Signature=_FakeOqsSignature,
        get_enabled_sig_mechanisms=lambda: enabled,
    )


@pytest.fixture()
def engine() -> SignatureEngine:
    return SignatureEngine.from_provider(ClassicalProvider())


class TestNegotiateProvider:
    """Tests for one-shot backend negotiation."""

    def test_auto_prefers_post_quantum(self) -> None:
        with patch.object(providers, "_load_oqs", return_value=_fake_oqs(["ML-DSA-65"])):
            provider = negotiate_provider("auto")
        assert isinstance(provider, PostQuantumProvider)
        assert provider.algorithm == "ML-DSA-65"

    def test_auto_falls_back_to_classical(self) -> None:
        with patch.object(providers, "_load_oqs", return_value=None):
            provider = negotiate_provider("auto")
        assert provider == ClassicalProvider()

    def test_auto_falls_back_when_mechanism_disabled(self) -> None:
        with patch.object(providers, "_load_oqs", return_value=_fake_oqs(["Falcon-512"])):
            provider = negotiate_provider("auto")
        assert isinstance(provider, ClassicalProvider)

    def test_required_post_quantum_never_falls_back(self) -> None:
        with patch.object(providers, "_load_oqs", return_value=None):
            provider = negotiate_provider("post_quantum")
        assert isinstance(provider, Unavailable)
        assert "liboqs" in provider.reason

    def test_classical_skips_probe(self) -> None:
        with patch.object(providers, "_load_oqs") as load:
            provider = negotiate_provider("classical")
        load.assert_not_called()
        assert isinstance(provider, ClassicalProvider)

    def test_unknown_preference(self) -> None:
        provider = negotiate_provider("quantum-ish")  # type: ignore[arg-type]
        assert isinstance(provider, Unavailable)

    def test_unavailable_provider_cannot_build_signer(self) -> None:
        with pytest.raises(KeyGenerationError):
            signer_for(Unavailable(reason="no backend"))


class TestSignAndVerify:
    """Tests for signing and verification round-trip."""

    def test_sign_and_verify(self, engine: SignatureEngine) -> None:
        public_key, private_key = engine.generate()
        fp = fingerprint(b"agreement")
        signature = engine.sign(fp, private_key)
        assert engine.verify(fp, signature, public_key)

    def test_hex_fingerprint_accepted(self, engine: SignatureEngine) -> None:
        public_key, private_key = engine.generate()
        fp = fingerprint(b"agreement")
        signature = engine.sign(fp.hex, private_key)
        assert engine.verify(fp, signature, public_key)

    def test_wrong_fingerprint_fails(self, engine: SignatureEngine) -> None:
        public_key, private_key = engine.generate()
        signature = engine.sign(fingerprint(b"a"), private_key)
        assert not engine.verify(fingerprint(b"b"), signature, public_key)

    def test_wrong_key_fails(self, engine: SignatureEngine) -> None:
        _pub1, priv1 = engine.generate()
        pub2, _priv2 = engine.generate()
        fp = fingerprint(b"a")
        assert not engine.verify(fp, engine.sign(fp, priv1), pub2)

    def test_tampered_signature_fails(self, engine: SignatureEngine) -> None:
        public_key, private_key = engine.generate()
        fp = fingerprint(b"a")
        signature = bytearray(engine.sign(fp, private_key))
        signature[0] ^= 0xFF
        assert not engine.verify(fp, bytes(signature), public_key)

    def test_empty_signature_fails(self, engine: SignatureEngine) -> None:
        public_key, _ = engine.generate()
        assert not engine.verify(fingerprint(b"a"), b"", public_key)

    def test_malformed_private_key(self, engine: SignatureEngine) -> None:
        with pytest.raises(SigningError):
            engine.sign(fingerprint(b"a"), b"short")

    def test_empty_private_key(self, engine: SignatureEngine) -> None:
        with pytest.raises(SigningError, match="empty"):
            engine.sign(fingerprint(b"a"), b"")

    def test_malformed_public_key(self, engine: SignatureEngine) -> None:
        _, private_key = engine.generate()
        fp = fingerprint(b"a")
        with pytest.raises(SigningError):
            engine.verify(fp, engine.sign(fp, private_key), b"short")

    def test_non_hex_fingerprint_cannot_be_signed(self, engine: SignatureEngine) -> None:
        _, private_key = engine.generate()
        with pytest.raises(SigningError):
            engine.sign("not-a-fingerprint", private_key)

    def test_unique_keys(self, engine: SignatureEngine) -> None:
        assert engine.generate() != engine.generate()


class TestPostQuantumSigner:
    """Tests for the liboqs-backed signer."""

    def test_round_trip_through_engine(self) -> None:
        provider = PostQuantumProvider(algorithm="ML-DSA-65", module=_fake_oqs(["ML-DSA-65"]))
        engine = SignatureEngine.from_provider(provider)
        assert isinstance(signer_for(provider), PostQuantumSigner)
        assert engine.algorithm == "ML-DSA-65"
        public_key, private_key = engine.generate()
        fp = fingerprint(b"pq document")
        assert engine.verify(fp, engine.sign(fp, private_key), public_key)

    def test_backend_failure_is_key_generation_error(self) -> None:
        broken = SimpleNamespace(Signature=None, get_enabled_sig_mechanisms=lambda: [])
        engine = SignatureEngine(PostQuantumSigner("ML-DSA-65", broken))  # type: ignore[arg-type]
        with pytest.raises(KeyGenerationError):
            engine.generate()


class TestKeyManager:
    """Tests for session-scoped key pairs."""

    def test_session_destroys_private_key(self, engine: SignatureEngine) -> None:
        manager = KeyManager(engine)
        with manager.session() as keypair:
            assert not keypair.is_destroyed
            signature = manager.sign(fingerprint(b"a"), keypair)
        assert keypair.is_destroyed
        with pytest.raises(KeyGenerationError):
            _ = keypair.private_key
        assert manager.verify(fingerprint(b"a"), signature, keypair.public_key)

    def test_session_destroys_key_on_error(self, engine: SignatureEngine) -> None:
        manager = KeyManager(engine)
        with pytest.raises(RuntimeError):
            with manager.session() as keypair:
                raise RuntimeError("boom")
        assert keypair.is_destroyed

    def test_repr_hides_private_key(self, engine: SignatureEngine) -> None:
        keypair = KeyManager(engine).generate_keypair()
        assert keypair.private_key.hex() not in repr(keypair)
        assert "Ed25519" in repr(keypair)

    def test_keypair_cannot_be_pickled(self, engine: SignatureEngine) -> None:
        keypair = KeyManager(engine).generate_keypair()
        with pytest.raises(TypeError):
            pickle.dumps(keypair)

    def test_explicit_export(self, engine: SignatureEngine) -> None:
        keypair = KeyManager(engine).generate_keypair()
        assert keypair.export_private_key() == keypair.private_key
