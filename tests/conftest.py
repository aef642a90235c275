"""
Pytest fixtures for relay and client testing.
Provides settings, an in-memory ledger, the relay app, and clients wired to it.
"""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from app.core.config import Settings, get_settings
from app.core.crypto.keys import KeyManager
from app.core.crypto.providers import ClassicalProvider
from app.core.crypto.signing import SignatureEngine
from app.main import create_application
from app.modules.ledger.memory import InMemoryRegistryLedger
from app.modules.signatures.client import AnchorClient
from app.modules.verification import RelayRegistryReader, VerificationService

RELAY_BASE_URL = "http://relay.test"


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep local .env files and shell variables out of the tests."""
    for name in ("ENVIRONMENT", "LEDGER_BACKEND", "SIGNATURE_SCHEME", "DEBUG"):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        _env_file=None,
        environment="development",
        ledger_backend="memory",
        signature_scheme="classical",
        relay_url=RELAY_BASE_URL,
    )


@pytest.fixture()
def ledger() -> InMemoryRegistryLedger:
    return InMemoryRegistryLedger(authority="relay")


@pytest.fixture()
def relay_app(settings: Settings, ledger: InMemoryRegistryLedger) -> FastAPI:
    return create_application(settings, ledger=ledger)


@pytest_asyncio.fixture
async def relay_http(relay_app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client talking to the relay app in-process."""
    transport = ASGITransport(app=relay_app)
    async with AsyncClient(transport=transport, base_url=RELAY_BASE_URL) as client:
        yield client


@pytest.fixture()
def anchor_client(relay_http: AsyncClient) -> AnchorClient:
    return AnchorClient(relay_http)


@pytest.fixture()
def verifier(relay_http: AsyncClient) -> VerificationService:
    return VerificationService(RelayRegistryReader(relay_http))


@pytest.fixture()
def key_manager() -> KeyManager:
    return KeyManager(SignatureEngine.from_provider(ClassicalProvider()))
