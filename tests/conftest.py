"""Shared fixtures for the gateway test suite."""

import time
from typing import Any, Optional

import httpx
import pytest
from jose import jwt

from shared.config import AuthorizerSettings, ProviderSettings, Settings
from shared.models import VerificationResult
from authorizer import Authorizer
from providers import RESTProvider

TEST_SECRET = "test-secret"

UPSTREAM_RESPONSES: dict[str, Any] = {
    "/api/v3/ping": {"gecko_says": "(V3) To the Moon!"},
    "/api/v3/simple/price": {"bitcoin": {"usd": 67000}},
    "/api/v3/simple/supported_vs_currencies": ["usd", "eur", "btc"],
    "/api/v3/coins/markets": [{"id": "bitcoin", "current_price": 67000}],
    "/api/v3/global": {"data": {"active_cryptocurrencies": 10000}},
    "/api/v3/search/trending": {"coins": [{"item": {"id": "pepe"}}]},
}


class FakeUpstream:
    """Records requests and answers with canned provider payloads."""

    def __init__(self, responses: Optional[dict[str, Any]] = None) -> None:
        self.responses = dict(UPSTREAM_RESPONSES if responses is None else responses)
        self.requests: list[httpx.Request] = []
        self.status_code = 200

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path not in self.responses:
            return httpx.Response(404, json={"error": "not found"})
        return httpx.Response(self.status_code, json=self.responses[request.url.path])

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


class RecordingAuthorizer(Authorizer):
    """Authorizer double that returns a fixed verdict and records calls."""

    def __init__(
        self,
        verdict: Optional[VerificationResult] = None,
        error: Optional[Exception] = None
    ) -> None:
        self.verdict = verdict or VerificationResult.allow()
        self.error = error
        self.calls: list[tuple[str, int, Any]] = []

    async def verify(self, operation_name: str, required_credential_id: int, proof: Any) -> VerificationResult:
        self.calls.append((operation_name, required_credential_id, proof))
        if self.error is not None:
            raise self.error
        return self.verdict


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def provider_settings() -> ProviderSettings:
    return ProviderSettings(api_key=None, retry_attempts=1)


@pytest.fixture
def provider(upstream, provider_settings) -> RESTProvider:
    return RESTProvider(provider_settings, transport=upstream.transport)


@pytest.fixture
def settings(provider_settings) -> Settings:
    return Settings(
        environment="test",
        provider=provider_settings,
        authorizer=AuthorizerSettings(mode="token", jwt_secret=TEST_SECRET, cache_ttl=60),
    )


@pytest.fixture
def make_proof():
    """Factory for signed credential proofs."""

    def _make_proof(
        credentials: Optional[list[int]] = None,
        sub: str = "0xabc",
        secret: str = TEST_SECRET,
        expires_in: int = 300,
        **claims: Any
    ) -> str:
        payload = {
            "sub": sub,
            "credentials": credentials if credentials is not None else [1],
            "exp": int(time.time()) + expires_in,
            **claims,
        }
        return jwt.encode(payload, secret, algorithm="HS256")

    return _make_proof
