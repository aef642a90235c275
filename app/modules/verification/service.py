"""Verification verdicts reconstructed from registry lookups."""

from __future__ import annotations

from dataclasses import dataclass, field

from app.core.crypto.fingerprint import Fingerprint
from app.core.exceptions import InklessError, LedgerUnavailableError
from app.core.logging import get_logger
from app.modules.ledger.base import RegistryEntry, RegistryReader, normalize_fingerprint
from app.modules.signatures.schemas import SignerInfo, VerifyResponse

logger = get_logger(__name__)

STATUS_NOT_FOUND = "not_found"
STATUS_ANCHORED = "anchored"
STATUS_PENDING = "pending"


@dataclass
class VerificationResult:
    """Derived on every query; never stored.

    Attributes
    ----------
    is_valid:
        ``True`` if at least one signer anchored the fingerprint.
    signers:
        Signers in ledger order, one per identity.
    status:
        ``not_found``, ``anchored``, or ``pending`` when no signer's ledger
        write is confirmed yet.
    """

    fingerprint: str
    is_valid: bool = False
    signers: list[RegistryEntry] = field(default_factory=list)
    status: str = STATUS_NOT_FOUND

    @property
    def signer_count(self) -> int:
        return len(self.signers)

    def to_response(self) -> VerifyResponse:
        if not self.is_valid:
            return VerifyResponse(is_valid=False, status=self.status)
        first = self.signers[0]
        return VerifyResponse(
            is_valid=True,
            signer=first.signer_identity,
            signers=[
                SignerInfo(
                    did=entry.signer_identity,
                    timestamp=entry.timestamp,
                    tx_hash=entry.ledger_tx_ref or None,
                    status="anchored" if entry.confirmed else "pending",
                )
                for entry in self.signers
            ],
            signer_count=self.signer_count,
            timestamp=first.timestamp,
            ledger_tx=first.ledger_tx_ref or None,
            status=self.status,
        )


def _dedupe(entries: list[RegistryEntry]) -> list[RegistryEntry]:
    seen: set[str] = set()
    unique: list[RegistryEntry] = []
    for entry in entries:
        if entry.signer_identity in seen:
            continue
        seen.add(entry.signer_identity)
        unique.append(entry)
    return unique


class VerificationService:
    """Answers "who anchored this fingerprint?" from any registry reader."""

    def __init__(self, reader: RegistryReader) -> None:
        self._reader = reader

    async def verify(self, fingerprint: Fingerprint | str) -> VerificationResult:
        """Look up every signer of ``fingerprint``.

        Raises
        ------
        ValueError
            If ``fingerprint`` is not hex.
        LedgerUnavailableError
            If the lookup itself failed. Distinct from a ``not_found`` result.
        """
        key = normalize_fingerprint(str(fingerprint))
        try:
            entries = await self._reader.lookup(key)
        except InklessError:
            raise
        except Exception as exc:
            logger.warning("verification_lookup_failed", fingerprint=key, error=str(exc))
            raise LedgerUnavailableError(f"Registry lookup failed: {exc}") from exc

        signers = _dedupe(entries)
        if not signers:
            logger.info("verification_not_found", fingerprint=key)
            return VerificationResult(fingerprint=key)

        status = (
            STATUS_ANCHORED if any(entry.confirmed for entry in signers) else STATUS_PENDING
        )
        logger.info(
            "verification_completed",
            fingerprint=key,
            signer_count=len(signers),
            status=status,
        )
        return VerificationResult(
            fingerprint=key,
            is_valid=True,
            signers=signers,
            status=status,
        )
