"""Registry ledger backends."""

from app.core.config import Settings
from app.modules.ledger.base import (
    LedgerReceipt,
    RegistryEntry,
    RegistryLedger,
    RegistryReader,
    normalize_fingerprint,
)
from app.modules.ledger.memory import InMemoryRegistryLedger


def build_ledger(settings: Settings) -> RegistryLedger:
    """Create the ledger selected by ``LEDGER_BACKEND``."""
    if settings.ledger_backend == "evm":
        from app.modules.ledger.contract import ContractRegistryLedger

        return ContractRegistryLedger.from_settings(settings)
    return InMemoryRegistryLedger(authority=settings.ledger_authority)


__all__ = [
    "InMemoryRegistryLedger",
    "LedgerReceipt",
    "RegistryEntry",
    "RegistryLedger",
    "RegistryReader",
    "build_ledger",
    "normalize_fingerprint",
]
