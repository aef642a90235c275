"""Relay: the only writer to the registry ledger."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from uuid import uuid4

from app.core.exceptions import NotFoundError
from app.core.logging import get_logger
from app.modules.ledger.base import RegistryLedger, normalize_fingerprint
from app.modules.signatures.categories import category_label, ensure_signable
from app.modules.signatures.records import AnchorStatus
from app.modules.signatures.schemas import (
    AnchorRequest,
    AnchorResponse,
    RecentSignature,
    VerifyResponse,
)
from app.modules.verification.service import VerificationService

logger = get_logger(__name__)


@dataclass(slots=True)
class _AnchorRow:
    doc_id: str
    doc_hash: str
    signer_did: str
    document_category: str
    file_name: str | None
    file_size: str | None
    mime_type: str | None
    tx_hash: str
    anchored_at: datetime
    status: AnchorStatus


@dataclass(slots=True)
class _FingerprintLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class RelayService:
    """Accepts client submissions and writes them to the registry.

    Writes for one fingerprint are serialised, so the
    ``(fingerprint, signer)`` duplicate check and the ledger append happen
    atomically within this process.
    """

    def __init__(self, ledger: RegistryLedger, *, recent_limit: int = 10) -> None:
        self._ledger = ledger
        self._verifier = VerificationService(ledger)
        self._recent_limit = recent_limit
        self._rows: dict[str, _AnchorRow] = {}
        self._by_pair: dict[tuple[str, str], str] = {}
        self._order: list[str] = []
        self._locks: dict[str, _FingerprintLock] = {}

    @property
    def ledger(self) -> RegistryLedger:
        return self._ledger

    async def anchor(self, request: AnchorRequest) -> AnchorResponse:
        """Anchor a signature, returning the existing anchor for a repeated pair.

        Raises
        ------
        PolicyExcludedError
            If the document category may not be signed electronically.
        LedgerError
            If the ledger rejects or fails the write.
        """
        category = ensure_signable(request.document_category)
        key = normalize_fingerprint(request.doc_hash)

        async with self._serialized(key):
            existing = self._rows.get(self._by_pair.get((key, request.signer_did), ""))
            # A reverted write may be submitted again.
            if existing is not None and existing.status is not AnchorStatus.FAILED:
                logger.info(
                    "anchor_replayed",
                    fingerprint=key,
                    signer=request.signer_did,
                    doc_id=existing.doc_id,
                )
                return _to_response(existing)

            receipt = await self._ledger.anchor(key, request.signature, request.signer_did)
            entry = receipt.entry
            row = _AnchorRow(
                doc_id=str(uuid4()),
                doc_hash=key,
                signer_did=request.signer_did,
                document_category=category,
                file_name=request.file_name,
                file_size=request.file_size,
                mime_type=request.mime_type,
                tx_hash=entry.ledger_tx_ref,
                anchored_at=entry.timestamp,
                status=AnchorStatus.ANCHORED if entry.confirmed else AnchorStatus.PENDING,
            )
            self._rows[row.doc_id] = row
            self._by_pair[(key, request.signer_did)] = row.doc_id
            self._order.append(row.doc_id)

        logger.info(
            "signature_anchored",
            fingerprint=key,
            signer=request.signer_did,
            category=category,
            doc_id=row.doc_id,
            tx_ref=row.tx_hash,
            ledger_created=receipt.created,
            status=str(row.status),
        )
        return _to_response(row)

    async def verify(self, fingerprint: str) -> VerifyResponse:
        result = await self._verifier.verify(fingerprint)
        return result.to_response()

    async def get_anchor(self, doc_id: str) -> AnchorResponse:
        row = self._rows.get(doc_id)
        if row is None:
            raise NotFoundError(f"No anchor with id {doc_id}", details={"doc_id": doc_id})
        if row.status is AnchorStatus.PENDING:
            await self._refresh(row)
        return _to_response(row)

    def recent(self, limit: int | None = None) -> list[RecentSignature]:
        """Most recent anchors first."""
        count = limit or self._recent_limit
        rows = [self._rows[doc_id] for doc_id in reversed(self._order[-count:])]
        return [_to_recent(row) for row in rows]

    @asynccontextmanager
    async def _serialized(self, key: str) -> AsyncIterator[None]:
        """Hold the fingerprint's lock; it is dropped once no task uses it."""
        holder = self._locks.get(key)
        if holder is None:
            holder = self._locks[key] = _FingerprintLock()
        holder.users += 1
        try:
            async with holder.lock:
                yield
        finally:
            holder.users -= 1
            if holder.users == 0:
                del self._locks[key]

    async def _refresh(self, row: _AnchorRow) -> None:
        for entry in await self._ledger.lookup(row.doc_hash):
            if entry.ledger_tx_ref != row.tx_hash:
                continue
            if entry.confirmed:
                row.status = AnchorStatus.ANCHORED
                logger.info("anchor_confirmed", doc_id=row.doc_id, tx_ref=row.tx_hash)
            return
        row.status = AnchorStatus.FAILED
        logger.warning("anchor_reverted", doc_id=row.doc_id, tx_ref=row.tx_hash)


def _to_response(row: _AnchorRow) -> AnchorResponse:
    return AnchorResponse(
        tx_hash=row.tx_hash,
        anchored_at=row.anchored_at,
        doc_id=row.doc_id,
        status=row.status.value,
    )


def _to_recent(row: _AnchorRow) -> RecentSignature:
    return RecentSignature(
        id=row.doc_id,
        file_name=row.file_name or f"Document_{row.doc_hash[:8]}.pdf",
        file_size=row.file_size or "Unknown",
        mime_type=row.mime_type or "application/octet-stream",
        document_category=row.document_category,
        category_label=category_label(row.document_category),
        sign_date=row.anchored_at,
        status=row.status.value,
        signer_did=row.signer_did,
        tx_hash=row.tx_hash or None,
        doc_hash=row.doc_hash,
    )
