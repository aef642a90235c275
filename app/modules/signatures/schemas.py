"""Pydantic schemas for the anchoring relay wire format."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_serializer, field_validator

from app.modules.ledger.base import normalize_fingerprint
from app.modules.signatures.categories import DEFAULT_CATEGORY

AnchorStatusValue = Literal["pending", "anchored", "failed"]


class AnchorRequest(BaseModel):
    """Signature submitted by a client for anchoring."""

    doc_hash: str = Field(alias="docHash", min_length=1, max_length=128)
    signature: bytes = Field(
        validation_alias=AliasChoices("signature", "pqcSignature"),
        serialization_alias="signature",
    )
    signer_did: str = Field(alias="signerDID", min_length=1, max_length=256)
    document_category: str = Field(default=DEFAULT_CATEGORY, alias="documentCategory")
    file_name: str | None = Field(default=None, alias="fileName", max_length=255)
    file_size: str | None = Field(default=None, alias="fileSize", max_length=50)
    mime_type: str | None = Field(default=None, alias="mimeType", max_length=100)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("doc_hash")
    @classmethod
    def _normalize_doc_hash(cls, value: str) -> str:
        return normalize_fingerprint(value)

    @field_validator("signature", mode="before")
    @classmethod
    def _signature_from_byte_array(cls, value: Any) -> Any:
        if isinstance(value, (bytes, bytearray)):
            return bytes(value)
        if isinstance(value, list):
            try:
                return bytes(value)
            except (TypeError, ValueError) as exc:
                raise ValueError("signature must be an array of byte values") from exc
        raise ValueError("signature must be an array of byte values")

    @field_validator("signature")
    @classmethod
    def _signature_not_empty(cls, value: bytes) -> bytes:
        if not value:
            raise ValueError("signature must not be empty")
        return value

    @field_validator("document_category", mode="before")
    @classmethod
    def _default_category(cls, value: Any) -> Any:
        return value or DEFAULT_CATEGORY

    @field_serializer("signature")
    def _signature_to_byte_array(self, value: bytes) -> list[int]:
        return list(value)


class AnchorResponse(BaseModel):
    """Receipt returned by the relay once the write is submitted."""

    tx_hash: str = Field(alias="txHash")
    anchored_at: datetime = Field(alias="anchoredAt")
    doc_id: str = Field(alias="docId")
    status: AnchorStatusValue

    model_config = ConfigDict(populate_by_name=True)


class SignerInfo(BaseModel):
    """One signer of a verified document."""

    did: str
    timestamp: datetime
    tx_hash: str | None = Field(default=None, alias="txHash")
    status: AnchorStatusValue | None = None

    model_config = ConfigDict(populate_by_name=True)


class VerifyResponse(BaseModel):
    """Verification verdict for a fingerprint.

    ``signer``, ``timestamp`` and ``ledgerTx`` repeat the first signer for
    clients that predate multi-party signing.
    """

    is_valid: bool = Field(alias="isValid")
    signer: str | None = None
    signers: list[SignerInfo] = Field(default_factory=list)
    signer_count: int = Field(default=0, alias="signerCount")
    timestamp: datetime | None = None
    ledger_tx: str | None = Field(default=None, alias="ledgerTx")
    status: str

    model_config = ConfigDict(populate_by_name=True)


class RecentSignature(BaseModel):
    """Row of the recent-signatures list."""

    id: str
    file_name: str = Field(alias="fileName")
    file_size: str = Field(alias="fileSize")
    mime_type: str = Field(alias="mimeType")
    document_category: str = Field(alias="documentCategory")
    category_label: str = Field(alias="categoryLabel")
    sign_date: datetime = Field(alias="signDate")
    status: AnchorStatusValue
    signer_did: str = Field(alias="signerDid")
    tx_hash: str | None = Field(default=None, alias="txHash")
    doc_hash: str = Field(alias="docHash")

    model_config = ConfigDict(populate_by_name=True)
