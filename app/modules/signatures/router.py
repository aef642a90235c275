"""Relay endpoints for anchoring and verifying signatures."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request, status
from fastapi.responses import JSONResponse

from app.core.exceptions import (
    LedgerError,
    LedgerUnavailableError,
    NotFoundError,
    PolicyExcludedError,
)
from app.modules.signatures.categories import DOCUMENT_CATEGORIES
from app.modules.signatures.relay_service import RelayService
from app.modules.signatures.schemas import (
    AnchorRequest,
    AnchorResponse,
    RecentSignature,
    VerifyResponse,
)

router = APIRouter()

_HEX_PATH = r"^(0x)?[0-9a-fA-F]+$"


def get_relay_service(request: Request) -> RelayService:
    service: RelayService = request.app.state.relay_service
    return service


RelayServiceDep = Annotated[RelayService, Depends(get_relay_service)]


@router.post("/signatures/anchor", response_model=AnchorResponse, tags=["Signatures"])
async def anchor_signature(body: AnchorRequest, service: RelayServiceDep) -> AnchorResponse:
    """Anchor a document signature on the registry (idempotent per signer)."""
    try:
        return await service.anchor(body)
    except PolicyExcludedError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail=exc.to_dict()
        ) from exc
    except LedgerUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=exc.to_dict()
        ) from exc
    except LedgerError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=exc.to_dict()) from exc


@router.get("/signatures/recent", response_model=list[RecentSignature], tags=["Signatures"])
async def list_recent_signatures(
    service: RelayServiceDep,
    limit: int | None = Query(default=None, ge=1, le=100),
) -> list[RecentSignature]:
    """List the most recently anchored signatures."""
    return service.recent(limit)


@router.get("/signatures/categories", tags=["Signatures"])
async def list_document_categories() -> list[dict[str, object]]:
    """Document categories with their legal warnings and exclusion flag."""
    return [
        {
            "id": category.id,
            "label": category.label,
            "description": category.description,
            "warning": category.warning,
            "warningLevel": category.warning_level,
            "excluded": category.is_excluded,
        }
        for category in DOCUMENT_CATEGORIES
    ]


@router.get("/signatures/{doc_id}", response_model=AnchorResponse, tags=["Signatures"])
async def get_anchor(doc_id: str, service: RelayServiceDep) -> AnchorResponse:
    """Fetch one anchor receipt by document id."""
    try:
        return await service.get_anchor(doc_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.to_dict()) from exc
    except LedgerUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=exc.to_dict()
        ) from exc


@router.get("/verify/{doc_hash}", response_model=VerifyResponse, tags=["Verification"])
async def verify_document(
    service: RelayServiceDep,
    doc_hash: str = Path(pattern=_HEX_PATH, max_length=130),
) -> VerifyResponse | JSONResponse:
    """Verify a fingerprint against the registry. Unknown fingerprints return 404."""
    try:
        result = await service.verify(doc_hash)
    except LedgerUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=exc.to_dict()
        ) from exc
    if not result.is_valid:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content=result.model_dump(mode="json", by_alias=True, exclude_none=True),
        )
    return result
