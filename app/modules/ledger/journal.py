"""Append-only signer journal shared by the ledger backends."""

from __future__ import annotations

from collections import defaultdict

from app.modules.ledger.base import RegistryEntry


class SignerJournal:
    """Ordered signers per fingerprint.

    Confirmed entries are never changed. An unconfirmed entry keeps its
    position and is either promoted with :meth:`replace` once its ledger write
    is mined, or dropped with :meth:`discard` when the write reverted.
    """

    def __init__(self) -> None:
        self._entries: dict[str, list[RegistryEntry]] = defaultdict(list)

    def find(self, fingerprint: str, signer_identity: str) -> RegistryEntry | None:
        for entry in self._entries.get(fingerprint, ()):
            if entry.signer_identity == signer_identity:
                return entry
        return None

    def append(self, fingerprint: str, entry: RegistryEntry) -> RegistryEntry:
        existing = self.find(fingerprint, entry.signer_identity)
        if existing is not None:
            return existing
        self._entries[fingerprint].append(entry)
        return entry

    def replace(self, fingerprint: str, entry: RegistryEntry) -> RegistryEntry:
        """Swap the pending entry of ``entry.signer_identity`` in place."""
        items = self._entries.get(fingerprint, [])
        for index, current in enumerate(items):
            if current.signer_identity != entry.signer_identity:
                continue
            if current.confirmed:
                return current
            items[index] = entry
            return entry
        return self.append(fingerprint, entry)

    def discard(self, fingerprint: str, signer_identity: str) -> None:
        items = self._entries.get(fingerprint)
        if not items:
            return
        remaining = [
            entry
            for entry in items
            if entry.signer_identity != signer_identity or entry.confirmed
        ]
        if remaining:
            self._entries[fingerprint] = remaining
        else:
            del self._entries[fingerprint]

    def entries(self, fingerprint: str) -> list[RegistryEntry]:
        return list(self._entries.get(fingerprint, ()))

    def pending(self, fingerprint: str) -> list[RegistryEntry]:
        return [entry for entry in self._entries.get(fingerprint, ()) if not entry.confirmed]

    def __len__(self) -> int:
        return sum(len(items) for items in self._entries.values())
