"""Signature verification against the public registry."""

from app.modules.verification.client import RelayRegistryReader
from app.modules.verification.service import VerificationResult, VerificationService

__all__ = ["RelayRegistryReader", "VerificationResult", "VerificationService"]
