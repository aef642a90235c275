"""HTTP client that submits signatures to the anchoring relay."""

from __future__ import annotations

import asyncio
from types import TracebackType
from typing import Any

import httpx

from app.core.config import Settings, get_settings
from app.core.crypto.fingerprint import Fingerprint
from app.core.exceptions import (
    InklessError,
    LedgerError,
    SubmissionNetworkError,
    error_from_payload,
)
from app.core.logging import get_logger
from app.modules.ledger.base import normalize_fingerprint
from app.modules.signatures.records import AnchorRecord, AnchorStatus, DocumentMetadata
from app.modules.signatures.schemas import AnchorRequest, AnchorResponse
from app.modules.verification.service import VerificationService

logger = get_logger(__name__)


class AnchorClient:
    """Submits ``{fingerprint, signature, DID, metadata}`` to the relay.

    One HTTP attempt per :meth:`submit`. Failures are raised to the caller,
    who may start a brand-new attempt; nothing is resumed or retried here.
    The client never holds ledger credentials.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        api_prefix: str = "/api/v1",
        owns_client: bool = False,
    ) -> None:
        self._client = client
        self._api_prefix = api_prefix.rstrip("/")
        self._owns_client = owns_client

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> AnchorClient:
        settings = settings or get_settings()
        http_client = httpx.AsyncClient(
            base_url=settings.relay_url,
            timeout=settings.relay_timeout_seconds,
            follow_redirects=False,
        )
        return cls(http_client, api_prefix=settings.api_v1_prefix, owns_client=True)

    @property
    def http_client(self) -> httpx.AsyncClient:
        return self._client

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> AnchorClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def submit(
        self,
        fingerprint: Fingerprint | str,
        signature: bytes,
        signer_identity: str,
        metadata: DocumentMetadata,
    ) -> AnchorRecord:
        """Anchor one signature.

        Returns
        -------
        AnchorRecord
            ``anchored`` when the relay confirmed the ledger write,
            ``pending`` when the write was accepted but not yet confirmed.

        Raises
        ------
        SubmissionNetworkError
            The relay could not be reached or timed out.
        PolicyExcludedError
            The relay refused the document category.
        LedgerError
            The relay or the ledger rejected the write.
        asyncio.CancelledError
            The caller abandoned the submission; the record is marked failed.
        """
        key = normalize_fingerprint(str(fingerprint))
        record = AnchorRecord(fingerprint=key, signer_identity=signer_identity)
        request = AnchorRequest(
            doc_hash=key,
            signature=signature,
            signer_did=signer_identity,
            document_category=metadata.document_category,
            file_name=metadata.file_name,
            file_size=metadata.file_size,
            mime_type=metadata.mime_type,
        )
        payload = request.model_dump(mode="json", by_alias=True, exclude_none=True)

        try:
            response = await self._client.post(
                f"{self._api_prefix}/signatures/anchor", json=payload
            )
        except asyncio.CancelledError:
            record.mark_failed("cancelled")
            raise
        except httpx.TransportError as exc:
            record.mark_failed(str(exc) or type(exc).__name__)
            logger.warning("anchor_submit_transport_error", fingerprint=key, error=str(exc))
            raise SubmissionNetworkError(
                f"Relay unreachable: {exc}", details={"fingerprint": key}
            ) from exc

        if response.is_error:
            error = _error_from_response(response)
            record.mark_failed(error.message)
            raise error

        try:
            receipt = AnchorResponse.model_validate(response.json())
        except ValueError as exc:
            record.mark_failed("malformed relay response")
            raise LedgerError("Relay returned a malformed anchor response") from exc

        if receipt.status == AnchorStatus.ANCHORED:
            record.mark_anchored(
                doc_id=receipt.doc_id,
                ledger_tx_ref=receipt.tx_hash,
                anchored_at=receipt.anchored_at,
            )
        elif receipt.status == AnchorStatus.FAILED:
            record.mark_failed("ledger write failed")
            raise LedgerError(
                "Relay reported a failed ledger write",
                details={"doc_id": receipt.doc_id, "tx_hash": receipt.tx_hash},
            )
        else:
            record.acknowledge(
                doc_id=receipt.doc_id,
                ledger_tx_ref=receipt.tx_hash,
                anchored_at=receipt.anchored_at,
            )
        logger.info(
            "anchor_submitted",
            fingerprint=key,
            doc_id=receipt.doc_id,
            tx_ref=receipt.tx_hash,
            status=str(record.status),
        )
        return record

    async def confirm(self, record: AnchorRecord, verifier: VerificationService) -> AnchorRecord:
        """Promote a ``pending`` record once its ledger entry is confirmed.

        Leaves the record pending when the write is not visible yet; the
        ledger only guarantees eventual visibility.
        """
        if record.is_terminal:
            return record
        result = await verifier.verify(record.fingerprint)
        for entry in result.signers:
            if (
                entry.signer_identity == record.signer_identity
                and entry.ledger_tx_ref == record.ledger_tx_ref
                and entry.confirmed
            ):
                record.mark_anchored(
                    doc_id=record.doc_id or "",
                    ledger_tx_ref=entry.ledger_tx_ref,
                    anchored_at=entry.timestamp,
                )
                break
        return record


def _error_from_response(response: httpx.Response) -> InklessError:
    detail: Any = None
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        detail = body.get("detail")
    if isinstance(detail, dict) and "error" in detail:
        return error_from_payload(detail, default=LedgerError)
    return LedgerError(
        f"Relay rejected the anchor request with HTTP {response.status_code}",
        details={"status_code": response.status_code, "detail": detail},
    )
