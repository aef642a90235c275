"""Tests for document fingerprinting."""

from __future__ import annotations

import hashlib
import io
from pathlib import Path

import pytest

from app.core.crypto.fingerprint import (
    SHA3_256_ALGORITHM,
    Fingerprint,
    fingerprint,
)
from app.core.exceptions import FingerprintError


class _BrokenStream(io.RawIOBase):
    """Stream that fails after the first chunk."""

    def __init__(self) -> None:
        self._reads = 0

    def readable(self) -> bool:
        return True

    def read(self, size: int = -1) -> bytes:
        self._reads += 1
        if self._reads > 1:
            raise OSError("device disconnected")
        return b"partial"


class TestFingerprint:
    """Tests for fingerprint()."""

    def test_deterministic(self) -> None:
        assert fingerprint(b"contract v1") == fingerprint(b"contract v1")

    def test_matches_sha256(self) -> None:
        assert fingerprint(b"hello").hex == hashlib.sha256(b"hello").hexdigest()

    def test_single_bit_change_changes_digest(self) -> None:
        assert fingerprint(b"\x00").hex != fingerprint(b"\x01").hex

    def test_empty_input_is_valid(self) -> None:
        assert fingerprint(b"").hex == hashlib.sha256(b"").hexdigest()

    def test_sha3_option(self) -> None:
        fp = fingerprint(b"hello", algorithm=SHA3_256_ALGORITHM)
        assert fp.hex == hashlib.sha3_256(b"hello").hexdigest()
        assert fp.algorithm == SHA3_256_ALGORITHM

    def test_unknown_algorithm_rejected(self) -> None:
        with pytest.raises(ValueError, match="Unsupported"):
            fingerprint(b"x", algorithm="md5")

    def test_stream_matches_bytes(self) -> None:
        data = b"a" * 10_000
        assert fingerprint(io.BytesIO(data), chunk_size=4096) == fingerprint(data)

    def test_file_path(self, tmp_path: Path) -> None:
        document = tmp_path / "lease.pdf"
        document.write_bytes(b"%PDF-1.7 lease")
        assert fingerprint(document) == fingerprint(b"%PDF-1.7 lease")
        assert fingerprint(str(document)) == fingerprint(b"%PDF-1.7 lease")

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FingerprintError) as exc_info:
            fingerprint(tmp_path / "missing.pdf")
        assert exc_info.value.code == "FINGERPRINT_FAILED"

    def test_stream_failure_returns_no_partial_digest(self) -> None:
        with pytest.raises(FingerprintError):
            fingerprint(_BrokenStream(), chunk_size=4096)

    def test_text_stream_rejected(self) -> None:
        with pytest.raises(FingerprintError, match="binary mode"):
            fingerprint(io.StringIO("text"))  # type: ignore[arg-type]


class TestFingerprintValue:
    """Tests for the Fingerprint value type."""

    def test_from_hex_accepts_prefix_and_upper_case(self) -> None:
        fp = fingerprint(b"doc")
        assert Fingerprint.from_hex("0x" + fp.hex.upper()) == fp

    def test_str_is_hex(self) -> None:
        fp = fingerprint(b"doc")
        assert str(fp) == fp.hex
        assert len(fp.hex) == 64

    def test_wrong_length_rejected(self) -> None:
        with pytest.raises(ValueError, match="32 bytes"):
            Fingerprint(digest=b"\x00" * 4)

    def test_invalid_hex_rejected(self) -> None:
        with pytest.raises(ValueError, match="not valid hex"):
            Fingerprint.from_hex("zz" * 32)
