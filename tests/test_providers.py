"""Tests for the upstream provider and CoinGecko handlers."""

import httpx
import pytest

from shared.config import ProviderSettings
from providers import CATALOG, CoinGeckoTools, ProviderError, RESTProvider
from providers.coingecko import build_query


class TestBuildQuery:
    """Tests for argument to query mapping."""

    def test_lists_are_comma_joined(self):
        query = build_query(
            {"ids": ["bitcoin", "ethereum"], "vs_currencies": "usd"},
            required=("ids", "vs_currencies"),
            lists=("ids", "vs_currencies"),
        )

        assert query == {"ids": "bitcoin,ethereum", "vs_currencies": "usd"}

    def test_optional_only_when_truthy(self):
        query = build_query(
            {"vs_currency": "usd", "sparkline": True, "page": 0, "category": ""},
            required=("vs_currency",),
            optional=("sparkline", "page", "category", "order"),
        )

        assert query == {"vs_currency": "usd", "sparkline": "true"}


class TestRESTProvider:
    """Tests for the REST provider client."""

    @pytest.mark.asyncio
    async def test_fetch_json(self, provider, upstream):
        """Test a successful GET against the free base URL."""
        data = await provider.fetch("/simple/price", {"ids": "bitcoin"})

        assert data == {"bitcoin": {"usd": 67000}}
        request = upstream.requests[0]
        assert request.url.host == "api.coingecko.com"
        assert request.url.params["ids"] == "bitcoin"
        assert "x-cg-pro-api-key" not in request.headers

        await provider.close()

    @pytest.mark.asyncio
    async def test_api_key_selects_pro_endpoint(self, upstream):
        """Test that an API key switches base URL and adds the header."""
        settings = ProviderSettings(api_key="cg-key", retry_attempts=1)
        provider = RESTProvider(settings, transport=upstream.transport)
        upstream.responses["/api/v3/ping"] = {"gecko_says": "pro"}

        await provider.fetch("/ping")

        request = upstream.requests[0]
        assert request.url.host == "pro-api.coingecko.com"
        assert request.headers["x-cg-pro-api-key"] == "cg-key"

    @pytest.mark.asyncio
    async def test_error_status(self, provider, upstream):
        """Test that error statuses keep status and body."""
        upstream.status_code = 500

        with pytest.raises(ProviderError) as exc_info:
            await provider.fetch("/global")

        assert exc_info.value.status_code == 500
        assert exc_info.value.detail == {"data": {"active_cryptocurrencies": 10000}}

    @pytest.mark.asyncio
    async def test_unknown_path(self, provider):
        """Test that a 404 surfaces as a provider error."""
        with pytest.raises(ProviderError) as exc_info:
            await provider.fetch("/nope")

        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_invalid_json(self, provider_settings):
        """Test that a non-JSON body is an error."""
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>"))
        provider = RESTProvider(provider_settings, transport=transport)

        with pytest.raises(ProviderError, match="invalid JSON"):
            await provider.fetch("/ping")

    @pytest.mark.asyncio
    async def test_transport_errors_are_retried(self):
        """Test that connection failures are retried, then reported."""
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            raise httpx.ConnectError("refused", request=request)

        settings = ProviderSettings(retry_attempts=2)
        provider = RESTProvider(settings, transport=httpx.MockTransport(handler))

        with pytest.raises(ProviderError, match="Upstream request failed"):
            await provider.fetch("/ping")

        assert len(attempts) == 2


class TestCoinGeckoTools:
    """Tests for the CoinGecko handlers."""

    def test_handlers_cover_catalog(self, provider):
        """Test that every catalog entry has exactly one handler."""
        tools = CoinGeckoTools(provider)

        assert list(tools.handlers()) == list(CATALOG["schema"]["properties"])

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "name,path",
        [
            ("ping", "/api/v3/ping"),
            ("getSupportedVsCurrencies", "/api/v3/simple/supported_vs_currencies"),
            ("getGlobal", "/api/v3/global"),
            ("getTrending", "/api/v3/search/trending"),
        ],
    )
    async def test_parameterless_tools(self, provider, upstream, name, path):
        """Test that each parameterless tool performs one GET."""
        handler = CoinGeckoTools(provider).handlers()[name]

        await handler({})

        assert [r.url.path for r in upstream.requests] == [path]
        assert upstream.requests[0].method == "GET"

    @pytest.mark.asyncio
    async def test_coin_markets_query(self, provider, upstream):
        """Test the coin markets query mapping."""
        tools = CoinGeckoTools(provider)

        data = await tools.get_coin_markets({"vs_currency": "eur", "ids": ["bitcoin", "ethereum"], "per_page": 10})

        assert data == [{"id": "bitcoin", "current_price": 67000}]
        params = upstream.requests[0].url.params
        assert params["vs_currency"] == "eur"
        assert params["ids"] == "bitcoin,ethereum"
        assert params["per_page"] == "10"
        assert "sparkline" not in params
