"""Registry ledger interface consumed by the relay and the verifier."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

_HEX = re.compile(r"[0-9a-f]+")


@dataclass(frozen=True, slots=True)
class RegistryEntry:
    """One signer of a fingerprint, in ledger order."""

    signer_identity: str
    timestamp: datetime
    ledger_tx_ref: str
    confirmed: bool = True


@dataclass(frozen=True, slots=True)
class LedgerReceipt:
    """Result of an anchor write.

    ``created`` is ``False`` when the ``(fingerprint, signer)`` pair was
    already on the ledger and the existing entry is returned instead.
    """

    entry: RegistryEntry
    created: bool


class RegistryReader(Protocol):
    """Open read side: anyone can look up a fingerprint."""

    async def lookup(self, fingerprint: str) -> list[RegistryEntry]: ...


class RegistryLedger(RegistryReader, Protocol):
    """Append-only fingerprint → signers mapping with a restricted writer."""

    async def owner(self) -> str:
        """Identity of the authority allowed to write."""
        ...

    async def anchor(
        self,
        fingerprint: str,
        signature: bytes,
        signer_identity: str,
    ) -> LedgerReceipt:
        """Append ``signer_identity`` to ``fingerprint``'s signers.

        Idempotent per ``(fingerprint, signer_identity)``.
        """
        ...

    async def close(self) -> None: ...


def normalize_fingerprint(value: str) -> str:
    """Canonical registry key: lower-case hex without ``0x``."""
    normalized = value.strip().lower().removeprefix("0x")
    if not normalized:
        raise ValueError("Fingerprint must not be empty")
    if not _HEX.fullmatch(normalized):
        raise ValueError(f"Fingerprint is not valid hex: {value!r}")
    return normalized
