"""Tests for anchoring and verification through the relay."""

from __future__ import annotations

import asyncio
import json
from datetime import UTC, datetime

import httpx
import pytest

from app.core.config import Settings
from app.core.crypto.fingerprint import fingerprint
from app.core.crypto.identity import derive_identity
from app.core.crypto.keys import KeyManager
from app.core.exceptions import (
    LedgerError,
    LedgerUnavailableError,
    PolicyExcludedError,
    SubmissionNetworkError,
)
from app.main import create_application
from app.modules.ledger.base import RegistryEntry
from app.modules.ledger.memory import InMemoryRegistryLedger
from app.modules.signatures.client import AnchorClient
from app.modules.signatures.records import AnchorRecord, AnchorStatus, DocumentMetadata
from app.modules.verification import RelayRegistryReader, VerificationService

METADATA = DocumentMetadata(document_category="general_contract", file_name="nda.pdf")
RELAY = "http://relay.test"


def _mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=RELAY)


def _sign(key_manager: KeyManager, content: bytes) -> tuple[str, bytes, str]:
    fp = fingerprint(content)
    with key_manager.session() as keypair:
        signature = key_manager.sign(fp, keypair)
        identity = derive_identity(keypair.public_key)
    return fp.hex, signature, identity


class TestSubmitThenVerify:
    """End-to-end scenarios against the in-process relay."""

    @pytest.mark.asyncio
    async def test_anchored_signature_is_verifiable(
        self,
        anchor_client: AnchorClient,
        verifier: VerificationService,
        key_manager: KeyManager,
    ) -> None:
        fp, signature, identity = _sign(key_manager, b"employment contract")
        record = await anchor_client.submit(fp, signature, identity, METADATA)

        assert record.status is AnchorStatus.ANCHORED
        result = await verifier.verify(fp)
        assert result.is_valid
        assert result.status == "anchored"
        assert result.signers[0].signer_identity == identity
        assert result.signers[0].ledger_tx_ref == record.ledger_tx_ref

    @pytest.mark.asyncio
    async def test_unknown_fingerprint_not_found(self, verifier: VerificationService) -> None:
        result = await verifier.verify("00000000")
        assert not result.is_valid
        assert result.status == "not_found"
        assert result.signer_count == 0

    @pytest.mark.asyncio
    async def test_two_signers_in_submission_order(
        self,
        anchor_client: AnchorClient,
        verifier: VerificationService,
        key_manager: KeyManager,
    ) -> None:
        fp, first_sig, alice = _sign(key_manager, b"joint lease")
        _, second_sig, bob = _sign(key_manager, b"joint lease")

        await anchor_client.submit(fp, first_sig, alice, METADATA)
        await anchor_client.submit(fp, second_sig, bob, METADATA)

        result = await verifier.verify(fp)
        assert result.signer_count == 2
        assert [entry.signer_identity for entry in result.signers] == [alice, bob]
        response = result.to_response()
        assert response.signer == alice
        assert [signer.did for signer in response.signers] == [alice, bob]

    @pytest.mark.asyncio
    async def test_resubmission_keeps_signer_count(
        self,
        anchor_client: AnchorClient,
        verifier: VerificationService,
        key_manager: KeyManager,
    ) -> None:
        fp, signature, identity = _sign(key_manager, b"invoice 42")
        first = await anchor_client.submit(fp, signature, identity, METADATA)
        second = await anchor_client.submit(fp, signature, identity, METADATA)

        assert first.ledger_tx_ref == second.ledger_tx_ref
        assert (await verifier.verify(fp)).signer_count == 1

    @pytest.mark.asyncio
    async def test_excluded_category_refused(
        self, anchor_client: AnchorClient, key_manager: KeyManager
    ) -> None:
        fp, signature, identity = _sign(key_manager, b"last will")
        with pytest.raises(PolicyExcludedError) as exc_info:
            await anchor_client.submit(
                fp, signature, identity, DocumentMetadata(document_category="will")
            )
        assert exc_info.value.category == "will"


class TestSubmitFailures:
    """Failure mapping for a single submission attempt."""

    @pytest.mark.asyncio
    async def test_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with AnchorClient(_mock_client(handler), owns_client=True) as client:
            with pytest.raises(SubmissionNetworkError) as exc_info:
                await client.submit("ab" * 32, b"\x01", "did:inkless:alice", METADATA)
        assert exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_ledger_unavailable_error_is_typed(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                503,
                json={
                    "detail": {
                        "error": "LEDGER_UNAVAILABLE",
                        "message": "rpc down",
                        "details": {},
                    }
                },
            )

        client = AnchorClient(_mock_client(handler))
        with pytest.raises(LedgerUnavailableError, match="rpc down"):
            await client.submit("ab" * 32, b"\x01", "did:inkless:alice", METADATA)

    @pytest.mark.asyncio
    async def test_untyped_error_body(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, text="Internal Server Error")

        client = AnchorClient(_mock_client(handler))
        with pytest.raises(LedgerError) as exc_info:
            await client.submit("ab" * 32, b"\x01", "did:inkless:alice", METADATA)
        assert exc_info.value.details["status_code"] == 500

    @pytest.mark.asyncio
    async def test_malformed_receipt(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"unexpected": True})

        client = AnchorClient(_mock_client(handler))
        with pytest.raises(LedgerError, match="malformed"):
            await client.submit("ab" * 32, b"\x01", "did:inkless:alice", METADATA)

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self) -> None:
        started = asyncio.Event()

        async def handler(request: httpx.Request) -> httpx.Response:
            started.set()
            await asyncio.sleep(60)
            return httpx.Response(200)

        client = AnchorClient(_mock_client(handler))
        task = asyncio.create_task(
            client.submit("ab" * 32, b"\x01", "did:inkless:alice", METADATA)
        )
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    @pytest.mark.asyncio
    async def test_payload_carries_no_document_content(self) -> None:
        seen: list[bytes] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.content)
            return httpx.Response(
                200,
                json={
                    "txHash": "0x01",
                    "anchoredAt": "2026-01-01T00:00:00Z",
                    "docId": "d1",
                    "status": "anchored",
                },
            )

        client = AnchorClient(_mock_client(handler))
        await client.submit("ab" * 32, b"\x01\x02", "did:inkless:alice", METADATA)
        body = json.loads(seen[0])
        assert set(body) == {"docHash", "signature", "signerDID", "documentCategory", "fileName"}
        assert body["signature"] == [1, 2]


class _StubReader:
    def __init__(self, entries: list[RegistryEntry]) -> None:
        self.entries = entries

    async def lookup(self, fingerprint: str) -> list[RegistryEntry]:
        return self.entries


class TestPendingAnchors:
    """Accepted-but-unconfirmed writes."""

    @pytest.mark.asyncio
    async def test_pending_then_confirmed(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={
                    "txHash": "0xfeed",
                    "anchoredAt": "2026-01-01T00:00:00Z",
                    "docId": "d1",
                    "status": "pending",
                },
            )

        client = AnchorClient(_mock_client(handler))
        record = await client.submit("ab" * 32, b"\x01", "did:inkless:alice", METADATA)
        assert record.status is AnchorStatus.PENDING
        assert record.doc_id == "d1"

        unconfirmed = RegistryEntry(
            "did:inkless:alice", datetime(2026, 1, 1, tzinfo=UTC), "0xfeed", confirmed=False
        )
        await client.confirm(record, VerificationService(_StubReader([unconfirmed])))
        assert record.status is AnchorStatus.PENDING

        confirmed = RegistryEntry("did:inkless:alice", datetime(2026, 1, 1, tzinfo=UTC), "0xfeed")
        await client.confirm(record, VerificationService(_StubReader([confirmed])))
        assert record.status is AnchorStatus.ANCHORED

    @pytest.mark.asyncio
    async def test_failed_receipt_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={
                    "txHash": "0xdead",
                    "anchoredAt": "2026-01-01T00:00:00Z",
                    "docId": "d1",
                    "status": "failed",
                },
            )

        client = AnchorClient(_mock_client(handler))
        with pytest.raises(LedgerError):
            await client.submit("ab" * 32, b"\x01", "did:inkless:alice", METADATA)

    @pytest.mark.asyncio
    async def test_unconfirmed_cosigner_stays_pending(self, settings: Settings) -> None:
        ts = datetime(2026, 1, 1, tzinfo=UTC)
        doc = "ab" * 32

        class _MixedLedger(InMemoryRegistryLedger):
            async def lookup(self, fingerprint: str) -> list[RegistryEntry]:
                return [
                    RegistryEntry("did:inkless:alice", ts, "0xa11ce"),
                    RegistryEntry("did:inkless:bob", ts, "0xb0b", confirmed=False),
                ]

        app = create_application(settings, ledger=_MixedLedger(authority="relay"))
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url=RELAY) as http:
            verifier = VerificationService(RelayRegistryReader(http))
            client = AnchorClient(http)
            alice_record = AnchorRecord(doc, "did:inkless:alice", "d1", "0xa11ce", ts)
            bob_record = AnchorRecord(doc, "did:inkless:bob", "d2", "0xb0b", ts)

            await client.confirm(alice_record, verifier)
            await client.confirm(bob_record, verifier)
            response = await http.get(f"/api/v1/verify/{doc}")

        assert alice_record.status is AnchorStatus.ANCHORED
        assert bob_record.status is AnchorStatus.PENDING
        body = response.json()
        assert body["status"] == "anchored"
        assert [signer["status"] for signer in body["signers"]] == ["anchored", "pending"]


class TestVerificationService:
    """Verdicts reconstructed from registry entries."""

    @pytest.mark.asyncio
    async def test_duplicate_identities_collapsed(self) -> None:
        ts = datetime(2026, 1, 1, tzinfo=UTC)
        reader = _StubReader(
            [
                RegistryEntry("did:inkless:alice", ts, "0x1"),
                RegistryEntry("did:inkless:bob", ts, "0x2"),
                RegistryEntry("did:inkless:alice", ts, "0x3"),
            ]
        )
        result = await VerificationService(reader).verify("ab")
        assert [entry.ledger_tx_ref for entry in result.signers] == ["0x1", "0x2"]

    @pytest.mark.asyncio
    async def test_all_unconfirmed_is_pending(self) -> None:
        ts = datetime(2026, 1, 1, tzinfo=UTC)
        reader = _StubReader([RegistryEntry("did:inkless:alice", ts, "0x1", confirmed=False)])
        result = await VerificationService(reader).verify("ab")
        assert result.is_valid
        assert result.status == "pending"

    @pytest.mark.asyncio
    async def test_reader_failure_is_distinct_from_not_found(self) -> None:
        class _Broken:
            async def lookup(self, fingerprint: str) -> list[RegistryEntry]:
                raise ConnectionError("node offline")

        with pytest.raises(LedgerUnavailableError):
            await VerificationService(_Broken()).verify("ab")

    @pytest.mark.asyncio
    async def test_relay_reader_maps_server_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, json={"detail": {"error": "LEDGER_UNAVAILABLE"}})

        reader = RelayRegistryReader(_mock_client(handler))
        with pytest.raises(LedgerUnavailableError):
            await VerificationService(reader).verify("ab")

    @pytest.mark.asyncio
    async def test_relay_reader_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        reader = RelayRegistryReader(_mock_client(handler))
        with pytest.raises(LedgerUnavailableError):
            await reader.lookup("ab")
