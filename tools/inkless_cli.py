"""Sign a document or verify a fingerprint against a running relay."""

from __future__ import annotations

import argparse
import asyncio
import json
from pathlib import Path

import httpx

from app.core.config import Settings, get_settings
from app.core.crypto.fingerprint import fingerprint
from app.core.exceptions import InklessError
from app.core.logging import configure_logging
from app.modules.signatures.categories import DEFAULT_CATEGORY
from app.modules.signatures.client import AnchorClient
from app.modules.signatures.records import DocumentMetadata
from app.modules.signatures.workflow import SigningWorkflow
from app.modules.verification import RelayRegistryReader, VerificationService


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Sign and verify documents via the relay.")
    parser.add_argument(
        "--relay-url",
        default=None,
        help="Relay base URL. Defaults to the RELAY_URL setting.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    sign = subparsers.add_parser("sign", help="Fingerprint, sign and anchor a file.")
    sign.add_argument("file", type=Path)
    sign.add_argument("--category", default=DEFAULT_CATEGORY, help="Document category id.")

    verify = subparsers.add_parser("verify", help="Look up the signers of a document.")
    verify.add_argument("target", help="Hex fingerprint or path to the document.")
    return parser.parse_args()


async def _sign(settings: Settings, file_path: Path, category: str) -> dict[str, object]:
    metadata = DocumentMetadata.for_file(file_path, category)
    async with AnchorClient.from_settings(settings) as anchor_client:
        workflow = SigningWorkflow.from_settings(anchor_client, settings)
        outcome = await workflow.run(file_path, metadata)
    anchor = outcome.anchor
    return {
        "fingerprint": outcome.signature.fingerprint,
        "signerDid": outcome.signature.signer_identity,
        "algorithm": outcome.signature.algorithm,
        "publicKey": outcome.public_key.hex(),
        "docId": anchor.doc_id,
        "txHash": anchor.ledger_tx_ref,
        "anchoredAt": anchor.anchored_at.isoformat() if anchor.anchored_at else None,
        "status": str(anchor.status),
    }


async def _verify(settings: Settings, target: str) -> dict[str, object]:
    path = Path(target)
    key = target
    if path.is_file():
        digest = fingerprint(
            path,
            algorithm=settings.fingerprint_algorithm,
            chunk_size=settings.fingerprint_chunk_size,
        )
        key = digest.hex
    async with httpx.AsyncClient(
        base_url=settings.relay_url, timeout=settings.relay_timeout_seconds
    ) as client:
        reader = RelayRegistryReader(client, api_prefix=settings.api_v1_prefix)
        result = await VerificationService(reader).verify(key)
    return result.to_response().model_dump(mode="json", by_alias=True, exclude_none=True)


async def _main() -> int:
    args = _parse_args()
    settings = get_settings()
    if args.relay_url:
        settings = settings.model_copy(update={"relay_url": args.relay_url})
    configure_logging(settings)

    try:
        if args.command == "sign":
            summary = await _sign(settings, args.file, args.category)
        else:
            summary = await _verify(settings, args.target)
    except InklessError as exc:
        print(json.dumps(exc.to_dict(), indent=2))
        return 1
    except ValueError as exc:
        print(json.dumps({"error": "INVALID_INPUT", "message": str(exc), "details": {}}, indent=2))
        return 1
    print(json.dumps(summary, indent=2))
    if args.command == "verify" and not summary.get("isValid"):
        return 2
    return 0


if __name__ == "__main__":
    raise SystemExit(asyncio.run(_main()))
