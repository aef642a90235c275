"""Client-side records of a signing attempt."""

from __future__ import annotations

import mimetypes
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from pathlib import Path

from app.core.exceptions import AnchorStateError
from app.core.logging import get_logger

logger = get_logger(__name__)


class AnchorStatus(StrEnum):
    PENDING = "pending"
    ANCHORED = "anchored"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class SignatureRecord:
    """One signature over one fingerprint; produced once, never edited."""

    fingerprint: str
    signature: bytes
    signer_identity: str
    algorithm: str
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(frozen=True, slots=True)
class DocumentMetadata:
    """Descriptive fields sent alongside the fingerprint; never the content."""

    document_category: str
    file_name: str | None = None
    file_size: str | None = None
    mime_type: str | None = None

    @classmethod
    def for_file(cls, path: str | Path, document_category: str) -> DocumentMetadata:
        file_path = Path(path)
        mime_type, _ = mimetypes.guess_type(file_path.name)
        return cls(
            document_category=document_category,
            file_name=file_path.name,
            file_size=format_file_size(file_path.stat().st_size),
            mime_type=mime_type or "application/octet-stream",
        )


def format_file_size(size: int) -> str:
    """Human readable size as shown in signature lists (``512 B``, ``1.5 KB``)."""
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"


@dataclass(slots=True)
class AnchorRecord:
    """Anchor of one signature.

    ``status`` starts at ``pending`` and moves exactly once, to ``anchored``
    or ``failed``.
    """

    fingerprint: str
    signer_identity: str
    doc_id: str | None = None
    ledger_tx_ref: str | None = None
    anchored_at: datetime | None = None
    status: AnchorStatus = AnchorStatus.PENDING
    failure_reason: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status is not AnchorStatus.PENDING

    def _require_pending(self, target: AnchorStatus) -> None:
        if self.is_terminal:
            raise AnchorStateError(
                f"Anchor cannot move from {self.status} to {target}",
                details={"fingerprint": self.fingerprint, "status": str(self.status)},
            )

    def acknowledge(self, *, doc_id: str, ledger_tx_ref: str, anchored_at: datetime) -> None:
        """Attach the relay's receipt while the ledger write is unconfirmed."""
        self._require_pending(AnchorStatus.PENDING)
        self.doc_id = doc_id
        self.ledger_tx_ref = ledger_tx_ref
        self.anchored_at = anchored_at

    def mark_anchored(self, *, doc_id: str, ledger_tx_ref: str, anchored_at: datetime) -> None:
        self._require_pending(AnchorStatus.ANCHORED)
        self.doc_id = doc_id
        self.ledger_tx_ref = ledger_tx_ref
        self.anchored_at = anchored_at
        self.status = AnchorStatus.ANCHORED

    def mark_failed(self, reason: str) -> None:
        self._require_pending(AnchorStatus.FAILED)
        self.failure_reason = reason
        self.status = AnchorStatus.FAILED
        logger.info("anchor_failed", fingerprint=self.fingerprint, reason=reason)
