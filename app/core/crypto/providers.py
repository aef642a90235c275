"""
Signature backend negotiation.

The post-quantum backend (liboqs via ``liboqs-python``) is optional. It is
probed once and the outcome is returned as a value that the caller injects
into :class:`~app.core.crypto.signing.SignatureEngine`; there is no
process-global backend state.
"""

from __future__ import annotations

import importlib
from dataclasses import dataclass
from types import ModuleType
from typing import Literal

from app.core.logging import get_logger

logger = get_logger(__name__)

CLASSICAL_ALGORITHM = "Ed25519"
DEFAULT_PQ_ALGORITHM = "ML-DSA-65"

SchemePreference = Literal["auto", "post_quantum", "classical"]


@dataclass(frozen=True, slots=True)
class PostQuantumProvider:
    """liboqs loaded and the requested mechanism is enabled."""

    algorithm: str
    module: ModuleType


@dataclass(frozen=True, slots=True)
class ClassicalProvider:
    """Ed25519 through ``cryptography``."""

    algorithm: str = CLASSICAL_ALGORITHM


@dataclass(frozen=True, slots=True)
class Unavailable:
    """No usable backend for the requested preference."""

    reason: str


CryptoProvider = PostQuantumProvider | ClassicalProvider | Unavailable


def _load_oqs() -> ModuleType | None:
    """Import liboqs-python, returning ``None`` if it or its shared library is missing."""
    try:
        return importlib.import_module("oqs")
    except (ImportError, OSError, RuntimeError) as exc:
        logger.debug("pq_backend_unavailable", error=str(exc))
        return None


def negotiate_provider(
    preference: SchemePreference = "auto",
    *,
    pq_algorithm: str = DEFAULT_PQ_ALGORITHM,
) -> CryptoProvider:
    """Select the signature backend for a session.

    ``auto`` prefers the post-quantum backend and falls back to Ed25519.
    ``post_quantum`` never falls back and yields :class:`Unavailable` instead.
    ``classical`` never tries to load liboqs.
    """
    if preference == "classical":
        return ClassicalProvider()
    if preference not in ("auto", "post_quantum"):
        return Unavailable(reason=f"Unknown signature scheme preference: {preference}")

    module = _load_oqs()
    if module is not None:
        enabled = set(module.get_enabled_sig_mechanisms())
        if pq_algorithm in enabled:
            logger.info("pq_backend_selected", algorithm=pq_algorithm)
            return PostQuantumProvider(algorithm=pq_algorithm, module=module)
        reason = f"Post-quantum mechanism {pq_algorithm} is not enabled in liboqs"
    else:
        reason = "liboqs-python is not installed or liboqs failed to load"

    if preference == "post_quantum":
        logger.warning("pq_backend_required_but_unavailable", reason=reason)
        return Unavailable(reason=reason)

    logger.info("classical_backend_selected", algorithm=CLASSICAL_ALGORITHM, reason=reason)
    return ClassicalProvider()
