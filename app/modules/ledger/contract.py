"""
EVM registry contract client.

Writes go through ``anchorSignature(bytes32 docHash, bytes signature,
bytes32 signerId)`` signed by the relay account; only the contract owner may
call it. The contract keeps one record per document, so the ordered list of
signer DIDs is tracked in a :class:`SignerJournal` next to the chain writes,
and the chain's ``verifySignature`` view is used when the journal has no
record of a fingerprint (for example after a relay restart).

A write is journaled as unconfirmed as soon as it is sent. Lookups re-check
unconfirmed writes against their receipts, promoting mined ones and dropping
reverted ones.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import UTC, datetime
from typing import Any

from eth_account import Account
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import TimeExhausted, TransactionNotFound

from app.core.config import Settings
from app.core.exceptions import InklessError, LedgerError, LedgerUnavailableError
from app.core.logging import get_logger
from app.modules.ledger.base import LedgerReceipt, RegistryEntry, normalize_fingerprint
from app.modules.ledger.journal import SignerJournal

logger = get_logger(__name__)

REGISTRY_ABI: list[dict[str, Any]] = [
    {
        "inputs": [],
        "name": "owner",
        "outputs": [{"internalType": "address", "name": "", "type": "address"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {"internalType": "bytes32", "name": "_docHash", "type": "bytes32"},
            {"internalType": "bytes", "name": "_signature", "type": "bytes"},
            {"internalType": "bytes32", "name": "_signerId", "type": "bytes32"},
        ],
        "name": "anchorSignature",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [{"internalType": "bytes32", "name": "_docHash", "type": "bytes32"}],
        "name": "verifySignature",
        "outputs": [
            {"internalType": "bool", "name": "isValid", "type": "bool"},
            {"internalType": "address", "name": "signerDID", "type": "address"},
            {"internalType": "uint256", "name": "timestamp", "type": "uint256"},
            {"internalType": "bytes32", "name": "signerId", "type": "bytes32"},
        ],
        "stateMutability": "view",
        "type": "function",
    },
]


def fingerprint_to_bytes32(fingerprint: str) -> bytes:
    """Left-pad (or keep the low 32 bytes of) a hex fingerprint."""
    key = normalize_fingerprint(fingerprint)
    if len(key) % 2:
        key = "0" + key
    raw = bytes.fromhex(key)
    if len(raw) > 32:
        return raw[-32:]
    return raw.rjust(32, b"\x00")


def signer_id(signer_identity: str) -> bytes:
    return bytes(Web3.keccak(text=signer_identity))


class ContractRegistryLedger:
    """Registry backed by the on-chain contract."""

    def __init__(
        self,
        w3: AsyncWeb3,
        contract_address: str,
        private_key: str,
        *,
        confirmation_timeout: float = 30.0,
        gas_limit: int = 500_000,
    ) -> None:
        self._w3 = w3
        self._account = Account.from_key(private_key)
        self._contract = w3.eth.contract(
            address=Web3.to_checksum_address(contract_address),
            abi=REGISTRY_ABI,
        )
        self._confirmation_timeout = confirmation_timeout
        self._gas_limit = gas_limit
        self._journal = SignerJournal()

    @classmethod
    def from_settings(cls, settings: Settings) -> ContractRegistryLedger:
        w3 = AsyncWeb3(AsyncHTTPProvider(settings.ledger_rpc_url))
        return cls(
            w3,
            settings.ledger_contract_address,
            settings.ledger_signer_private_key,
            confirmation_timeout=settings.ledger_confirmation_timeout,
            gas_limit=settings.ledger_gas_limit,
        )

    @property
    def writer(self) -> str:
        return str(self._account.address)

    async def owner(self) -> str:
        try:
            return str(await self._contract.functions.owner().call())
        except Exception as exc:
            raise LedgerUnavailableError(f"Cannot read registry owner: {exc}") from exc

    async def ensure_authorized(self) -> None:
        """Fail fast when the relay key is not the contract owner."""
        owner = await self.owner()
        if owner.lower() != self.writer.lower():
            raise LedgerError(
                "Relay account is not the registry owner",
                details={"owner": owner, "writer": self.writer},
            )

    async def anchor(
        self,
        fingerprint: str,
        signature: bytes,
        signer_identity: str,
    ) -> LedgerReceipt:
        key = normalize_fingerprint(fingerprint)
        existing = self._journal.find(key, signer_identity)
        if existing is not None and not existing.confirmed:
            existing = await self._settle(key, existing)
        if existing is not None:
            return LedgerReceipt(entry=existing, created=False)

        try:
            tx_ref = await self._send_anchor(key, signature, signer_identity)
        except InklessError:
            raise
        except Exception as exc:
            logger.warning("ledger_write_failed", fingerprint=key, error=str(exc))
            raise LedgerError(f"Blockchain anchoring failed: {exc}") from exc

        # Journaled before the wait: the transaction may already be in the mempool.
        entry = self._journal.append(
            key,
            RegistryEntry(
                signer_identity=signer_identity,
                timestamp=datetime.now(UTC),
                ledger_tx_ref=tx_ref,
                confirmed=False,
            ),
        )
        try:
            receipt = await self._w3.eth.wait_for_transaction_receipt(
                tx_ref, timeout=self._confirmation_timeout
            )
        except TimeExhausted:
            logger.info("ledger_confirmation_pending", fingerprint=key, tx_ref=tx_ref)
        except Exception as exc:
            logger.warning(
                "ledger_confirmation_failed", fingerprint=key, tx_ref=tx_ref, error=str(exc)
            )
            raise LedgerError(
                f"Cannot confirm transaction {tx_ref}: {exc}", details={"tx_ref": tx_ref}
            ) from exc
        else:
            settled = self._apply_receipt(key, entry, receipt)
            if settled is None:
                raise LedgerError("Registry transaction reverted", details={"tx_ref": tx_ref})
            entry = settled

        logger.info(
            "ledger_entry_appended",
            fingerprint=key,
            signer=signer_identity,
            tx_ref=tx_ref,
            confirmed=entry.confirmed,
        )
        return LedgerReceipt(entry=entry, created=True)

    async def _send_anchor(self, key: str, signature: bytes, signer_identity: str) -> str:
        address = self._account.address
        tx = await self._contract.functions.anchorSignature(
            fingerprint_to_bytes32(key),
            signature,
            signer_id(signer_identity),
        ).build_transaction(
            {
                "from": address,
                "nonce": await self._w3.eth.get_transaction_count(address, "pending"),
                "gas": self._gas_limit,
                "gasPrice": await self._w3.eth.gas_price,
                "chainId": await self._w3.eth.chain_id,
            }
        )
        signed = self._account.sign_transaction(tx)
        tx_hash = await self._w3.eth.send_raw_transaction(signed.raw_transaction)
        return str(Web3.to_hex(tx_hash))

    async def _settle(self, key: str, entry: RegistryEntry) -> RegistryEntry | None:
        """Re-check a pending write. Returns ``None`` once it has reverted."""
        try:
            receipt = await self._w3.eth.get_transaction_receipt(entry.ledger_tx_ref)
        except TransactionNotFound:
            return entry
        except Exception as exc:
            logger.warning(
                "ledger_receipt_check_failed", tx_ref=entry.ledger_tx_ref, error=str(exc)
            )
            return entry
        return self._apply_receipt(key, entry, receipt)

    def _apply_receipt(
        self, key: str, entry: RegistryEntry, receipt: Any
    ) -> RegistryEntry | None:
        if receipt["status"] == 1:
            confirmed = self._journal.replace(key, replace(entry, confirmed=True))
            logger.info(
                "ledger_entry_confirmed", fingerprint=key, tx_ref=entry.ledger_tx_ref
            )
            return confirmed
        self._journal.discard(key, entry.signer_identity)
        logger.warning(
            "ledger_transaction_reverted",
            fingerprint=key,
            signer=entry.signer_identity,
            tx_ref=entry.ledger_tx_ref,
        )
        return None

    async def lookup(self, fingerprint: str) -> list[RegistryEntry]:
        key = normalize_fingerprint(fingerprint)
        for entry in self._journal.pending(key):
            await self._settle(key, entry)
        entries = self._journal.entries(key)
        if entries:
            return entries
        try:
            verdict = self._contract.functions.verifySignature(fingerprint_to_bytes32(key))
            is_valid, signer, timestamp, _signer_id = await verdict.call()
        except Exception as exc:
            raise LedgerUnavailableError(f"Registry lookup failed: {exc}") from exc
        if not is_valid:
            return []
        return [
            RegistryEntry(
                signer_identity=str(signer),
                timestamp=datetime.fromtimestamp(int(timestamp), tz=UTC),
                ledger_tx_ref="",
            )
        ]

    async def close(self) -> None:
        provider = self._w3.provider
        disconnect = getattr(provider, "disconnect", None)
        if disconnect is not None:
            await disconnect()
