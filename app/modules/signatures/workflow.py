"""
Client signing session.

Drives one document through fingerprint, key generation, signing, identity
derivation and submission to the relay. The session is a small state
machine fed by discrete events; UI layers observe ``state`` and ``error``
instead of juggling independent flags.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import StrEnum

from app.core.config import Settings, get_settings
from app.core.crypto.fingerprint import (
    DEFAULT_CHUNK_SIZE,
    Fingerprint,
    FingerprintSource,
    fingerprint,
)
from app.core.crypto.identity import derive_identity
from app.core.crypto.keys import KeyManager
from app.core.crypto.providers import negotiate_provider
from app.core.crypto.signing import SignatureEngine
from app.core.exceptions import WorkflowStateError
from app.core.logging import get_logger
from app.modules.signatures.categories import ensure_signable
from app.modules.signatures.client import AnchorClient
from app.modules.signatures.records import AnchorRecord, DocumentMetadata, SignatureRecord

logger = get_logger(__name__)


class WorkflowState(StrEnum):
    IDLE = "idle"
    CONTENT_SELECTED = "content_selected"
    SIGNING = "signing"
    COMPLETE = "complete"


@dataclass(frozen=True, slots=True)
class ContentChosen:
    source: FingerprintSource
    metadata: DocumentMetadata


@dataclass(frozen=True, slots=True)
class SignRequested:
    pass


@dataclass(frozen=True, slots=True)
class SignSucceeded:
    outcome: SigningOutcome


@dataclass(frozen=True, slots=True)
class SignFailed:
    error: BaseException


WorkflowEvent = ContentChosen | SignRequested | SignSucceeded | SignFailed


@dataclass(frozen=True, slots=True)
class SigningOutcome:
    """What a completed session hands back: the signature, its anchor, the public key."""

    signature: SignatureRecord
    anchor: AnchorRecord
    public_key: bytes


class SigningWorkflow:
    """One signing session: ``IDLE -> CONTENT_SELECTED -> SIGNING -> COMPLETE``.

    ``SignFailed`` returns the session to ``CONTENT_SELECTED`` with the error
    attached so the user can try again. ``COMPLETE`` is terminal until
    :meth:`reset`.
    """

    def __init__(
        self,
        keys: KeyManager,
        anchor_client: AnchorClient,
        *,
        fingerprint_algorithm: str = "sha256",
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        did_namespace: str = "inkless",
        did_length: int = 32,
    ) -> None:
        self._keys = keys
        self._anchor_client = anchor_client
        self._fingerprint_algorithm = fingerprint_algorithm
        self._chunk_size = chunk_size
        self._did_namespace = did_namespace
        self._did_length = did_length
        self.state = WorkflowState.IDLE
        self.source: FingerprintSource | None = None
        self.metadata: DocumentMetadata | None = None
        self.outcome: SigningOutcome | None = None
        self.error: BaseException | None = None

    @classmethod
    def from_settings(
        cls, anchor_client: AnchorClient, settings: Settings | None = None
    ) -> SigningWorkflow:
        """Negotiate the signature backend once and build a session around it."""
        settings = settings or get_settings()
        provider = negotiate_provider(
            settings.signature_scheme, pq_algorithm=settings.pq_algorithm
        )
        engine = SignatureEngine.from_provider(provider)
        return cls(
            KeyManager(engine),
            anchor_client,
            fingerprint_algorithm=settings.fingerprint_algorithm,
            chunk_size=settings.fingerprint_chunk_size,
            did_namespace=settings.did_namespace,
            did_length=settings.did_identifier_length,
        )

    def dispatch(self, event: WorkflowEvent) -> WorkflowState:
        """Apply one event and return the new state.

        Raises
        ------
        WorkflowStateError
            If the current state does not accept the event.
        PolicyExcludedError
            On ``SignRequested`` for a category that may not be e-signed.
        """
        previous = self.state
        match event:
            case ContentChosen(source=source, metadata=metadata):
                self._expect(event, WorkflowState.IDLE, WorkflowState.CONTENT_SELECTED)
                self.source = source
                self.metadata = metadata
                self.error = None
                self.state = WorkflowState.CONTENT_SELECTED
            case SignRequested():
                if self.state is WorkflowState.SIGNING:
                    raise WorkflowStateError("A signature is already in progress")
                self._expect(event, WorkflowState.CONTENT_SELECTED)
                _, metadata = self._selection()
                ensure_signable(metadata.document_category)
                self.error = None
                self.state = WorkflowState.SIGNING
            case SignSucceeded(outcome=outcome):
                self._expect(event, WorkflowState.SIGNING)
                self.outcome = outcome
                self.state = WorkflowState.COMPLETE
            case SignFailed(error=error):
                self._expect(event, WorkflowState.SIGNING)
                self.error = error
                self.state = WorkflowState.CONTENT_SELECTED
        logger.debug(
            "workflow_transition",
            event=type(event).__name__,
            previous=str(previous),
            state=str(self.state),
        )
        return self.state

    def reset(self) -> None:
        if self.state is WorkflowState.SIGNING:
            raise WorkflowStateError("Cannot reset while a signature is in progress")
        self.state = WorkflowState.IDLE
        self.source = None
        self.metadata = None
        self.outcome = None
        self.error = None

    async def run(
        self,
        source: FingerprintSource | None = None,
        metadata: DocumentMetadata | None = None,
    ) -> SigningOutcome:
        """Sign and anchor the selected content.

        ``source`` and ``metadata`` select new content first; without them
        the content chosen earlier is signed. Any failure, cancellation
        included, returns the session to ``CONTENT_SELECTED`` and is
        re-raised unchanged.
        """
        if source is not None:
            self.dispatch(ContentChosen(source, metadata or DocumentMetadata("general_contract")))
        selected_source, selected_metadata = self._selection()
        self.dispatch(SignRequested())

        try:
            outcome = await self._sign_and_submit(selected_source, selected_metadata)
        except asyncio.CancelledError as exc:
            logger.info("signing_cancelled")
            self.dispatch(SignFailed(exc))
            raise
        except Exception as exc:
            logger.warning("signing_failed", error_type=type(exc).__name__, error=str(exc))
            self.dispatch(SignFailed(exc))
            raise

        self.dispatch(SignSucceeded(outcome))
        return outcome

    async def _sign_and_submit(
        self, source: FingerprintSource, metadata: DocumentMetadata
    ) -> SigningOutcome:
        fp: Fingerprint = await asyncio.to_thread(
            fingerprint, source, algorithm=self._fingerprint_algorithm, chunk_size=self._chunk_size
        )

        with self._keys.session() as keypair:
            signature = self._keys.sign(fp, keypair)
            identity = derive_identity(
                keypair.public_key, namespace=self._did_namespace, length=self._did_length
            )
        record = SignatureRecord(
            fingerprint=fp.hex,
            signature=signature,
            signer_identity=identity,
            algorithm=keypair.algorithm,
        )
        logger.info(
            "document_signed", fingerprint=fp.hex, signer=identity, algorithm=record.algorithm
        )

        anchor = await self._anchor_client.submit(fp, signature, identity, metadata)
        return SigningOutcome(signature=record, anchor=anchor, public_key=keypair.public_key)

    def _selection(self) -> tuple[FingerprintSource, DocumentMetadata]:
        if self.source is None or self.metadata is None:
            raise WorkflowStateError(
                "No content has been selected", details={"state": str(self.state)}
            )
        return self.source, self.metadata

    def _expect(self, event: WorkflowEvent, *allowed: WorkflowState) -> None:
        if self.state not in allowed:
            raise WorkflowStateError(
                f"{type(event).__name__} is not accepted in state {self.state}",
                details={"state": str(self.state), "event": type(event).__name__},
            )
