"""Registry reader that goes through the relay's public verify endpoint."""

from __future__ import annotations

import httpx

from app.core.exceptions import LedgerUnavailableError
from app.core.logging import get_logger
from app.modules.ledger.base import RegistryEntry, normalize_fingerprint
from app.modules.signatures.schemas import VerifyResponse

logger = get_logger(__name__)


class RelayRegistryReader:
    """Reads registry entries over HTTP; the relay holds no client secrets here."""

    def __init__(self, client: httpx.AsyncClient, *, api_prefix: str = "/api/v1") -> None:
        self._client = client
        self._api_prefix = api_prefix.rstrip("/")

    async def lookup(self, fingerprint: str) -> list[RegistryEntry]:
        key = normalize_fingerprint(fingerprint)
        try:
            response = await self._client.get(f"{self._api_prefix}/verify/{key}")
        except httpx.TransportError as exc:
            logger.warning("relay_verify_transport_error", fingerprint=key, error=str(exc))
            raise LedgerUnavailableError(f"Relay unreachable: {exc}") from exc

        if response.status_code == httpx.codes.NOT_FOUND:
            return []
        if response.is_error:
            raise LedgerUnavailableError(
                f"Relay verification failed with HTTP {response.status_code}",
                details={"status_code": response.status_code},
            )

        try:
            payload = VerifyResponse.model_validate(response.json())
        except ValueError as exc:
            raise LedgerUnavailableError("Relay returned a malformed verify response") from exc

        if not payload.is_valid:
            return []
        return [
            RegistryEntry(
                signer_identity=signer.did,
                timestamp=signer.timestamp,
                ledger_tx_ref=signer.tx_hash or "",
                # Relays without per-signer status only report the aggregate.
                confirmed=(signer.status or payload.status) == "anchored",
            )
            for signer in payload.signers
        ]
