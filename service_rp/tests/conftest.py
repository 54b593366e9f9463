"""
Shared fixtures for relying-party tests.

Outbound HTTP is answered by ``FakeProvider`` through ``httpx.MockTransport``.
"""

from typing import Dict

import httpx
import pytest
from fastapi.testclient import TestClient

from service_rp.app.main import RelyingPartyService
from service_rp.app.settings import RelyingPartySettings
from shared.test_helpers import DEFAULT_AUDIENCE, DEFAULT_CLIENT_ID, RSAKeyPair, generate_rsa_key
from .fakes import IDP_HOST, RESOURCE_API_URL, FakeProvider


@pytest.fixture(scope="session")
def signing_key() -> RSAKeyPair:
    return generate_rsa_key("test-key-1")


@pytest.fixture
def provider(signing_key) -> FakeProvider:
    return FakeProvider(signing_key)


@pytest.fixture
def http_client(provider) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(provider.handler), timeout=5.0)


@pytest.fixture
def settings_overrides() -> Dict[str, object]:
    return {}


@pytest.fixture
def settings(settings_overrides) -> RelyingPartySettings:
    values = dict(
        client_id=DEFAULT_CLIENT_ID,
        client_secret="s3cret",
        oidc_provider=IDP_HOST,
        api_identifier=DEFAULT_AUDIENCE,
        redirect_uri="http://localhost:3000/callback",
        resource_api_url=RESOURCE_API_URL,
        cookie_secret="test-cookie-secret",
        session_secret="test-session-secret",
        log_level="warning",
    )
    values.update(settings_overrides)
    return RelyingPartySettings(**values)


@pytest.fixture
def service(settings, http_client) -> RelyingPartyService:
    return RelyingPartyService(settings=settings, http_client=http_client)


@pytest.fixture
def client(service):
    with TestClient(service.app) as test_client:
        yield test_client

