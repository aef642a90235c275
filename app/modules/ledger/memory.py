"""In-process registry used when no chain is configured (development, tests)."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from app.core.exceptions import LedgerError
from app.core.logging import get_logger
from app.modules.ledger.base import LedgerReceipt, RegistryEntry, normalize_fingerprint
from app.modules.ledger.journal import SignerJournal

logger = get_logger(__name__)


def mock_tx_ref() -> str:
    """Transaction reference shaped like the chain's, ``0x`` + 32 hex chars."""
    return "0x" + uuid.uuid4().hex


class InMemoryRegistryLedger:
    """Append-only registry kept in memory.

    ``writer`` is the identity the holder of this object writes as; only the
    configured ``authority`` may anchor.
    """

    def __init__(self, authority: str, *, writer: str | None = None) -> None:
        self._authority = authority
        self._writer = writer if writer is not None else authority
        self._journal = SignerJournal()

    async def owner(self) -> str:
        return self._authority

    async def anchor(
        self,
        fingerprint: str,
        signature: bytes,
        signer_identity: str,
    ) -> LedgerReceipt:
        if self._writer != self._authority:
            logger.warning("ledger_write_rejected", writer=self._writer)
            raise LedgerError(
                "Only the registry authority may anchor signatures",
                details={"writer": self._writer},
            )
        if not signature:
            raise LedgerError("Signature bytes are required")
        key = normalize_fingerprint(fingerprint)

        existing = self._journal.find(key, signer_identity)
        if existing is not None:
            return LedgerReceipt(entry=existing, created=False)

        entry = RegistryEntry(
            signer_identity=signer_identity,
            timestamp=datetime.now(UTC),
            ledger_tx_ref=mock_tx_ref(),
        )
        self._journal.append(key, entry)
        logger.info(
            "ledger_entry_appended",
            fingerprint=key,
            signer=signer_identity,
            tx_ref=entry.ledger_tx_ref,
        )
        return LedgerReceipt(entry=entry, created=True)

    async def lookup(self, fingerprint: str) -> list[RegistryEntry]:
        return self._journal.entries(normalize_fingerprint(fingerprint))

    async def close(self) -> None:
        return None
