"""
Application configuration using Pydantic Settings.
All configuration is loaded from environment variables with sensible defaults.
"""

from functools import lru_cache
from typing import Literal, Self

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Settings shared by the signing client and the anchoring relay.

    The client reads the relay, crypto and identity sections; the relay
    additionally reads the ledger section.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Core Application Settings
    # ==========================================================================
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = Field(default=False)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # API Configuration
    api_v1_prefix: str = "/api/v1"
    project_name: str = "Inkless Relay"
    version: str = "0.1.0"

    cors_origins: list[str] = Field(
        default=[
            "http://localhost:3000",
            "http://inkless-frontend:3000",
        ]
    )

    # ==========================================================================
    # Relay Client Configuration
    # ==========================================================================
    relay_url: str = Field(
        default="http://localhost:8080",
        description="Base URL of the anchoring relay used by AnchorClient",
    )
    relay_timeout_seconds: float = Field(
        default=30.0, gt=0, description="Per-request timeout for relay calls"
    )
    recent_signatures_limit: int = Field(default=10, ge=1, le=100)

    # ==========================================================================
    # Signing / Fingerprint Configuration
    # ==========================================================================
    signature_scheme: Literal["auto", "post_quantum", "classical"] = Field(
        default="auto",
        description=(
            "auto: use the post-quantum backend when it loads, else Ed25519. "
            "post_quantum: require it. classical: always Ed25519."
        ),
    )
    pq_algorithm: str = Field(
        default="ML-DSA-65",
        description="liboqs signature mechanism name for the post-quantum signer",
    )
    fingerprint_algorithm: Literal["sha256", "sha3-256"] = "sha256"
    fingerprint_chunk_size: int = Field(default=1024 * 1024, ge=4096)

    # ==========================================================================
    # Identity Configuration
    # ==========================================================================
    did_namespace: str = Field(default="inkless", pattern=r"^[a-z0-9]+$")
    did_identifier_length: int = Field(
        default=32,
        ge=16,
        le=64,
        description="Hex characters of the public-key digest kept in the DID",
    )

    # ==========================================================================
    # Ledger Configuration (relay only)
    # ==========================================================================
    ledger_backend: Literal["memory", "evm"] = "memory"
    ledger_authority: str = Field(
        default="relay",
        description="Writer identity accepted by the in-memory registry",
    )
    ledger_rpc_url: str = Field(default="http://localhost:8545")
    ledger_contract_address: str = Field(default="")
    ledger_signer_private_key: str = Field(
        default="",
        description="Hex private key of the relay account allowed to anchor",
    )
    ledger_confirmation_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Seconds to wait for a transaction receipt before reporting pending",
    )
    ledger_gas_limit: int = Field(default=500_000, ge=21_000)

    # ==========================================================================
    # Production Safety Checks
    # ==========================================================================

    @model_validator(mode="after")
    def _validate_ledger_settings(self) -> Self:
        """The EVM ledger cannot run without a contract and a relay key."""
        if self.ledger_backend == "evm":
            if not self.ledger_contract_address:
                raise ValueError("ledger_contract_address must be set for the evm ledger")
            if not self.ledger_signer_private_key:
                raise ValueError("ledger_signer_private_key must be set for the evm ledger")
        if self.environment in ("production", "staging"):
            if self.debug:
                raise ValueError(f"debug must be False in {self.environment} environment")
            if self.ledger_backend == "memory":
                raise ValueError(
                    f"the in-memory ledger is not allowed in {self.environment} environment"
                )
        return self


@lru_cache
def get_settings() -> Settings:
    """Settings for this process, read from the environment once.

    Tests call ``get_settings.cache_clear()`` after changing variables.
    """
    return Settings()
