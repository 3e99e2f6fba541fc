"""Tests for the HTTP surface of the gateway."""

import json

import pytest
from fastapi.testclient import TestClient

from authorizer import AuthorizerError, TokenAuthorizer
from gateway.main import create_app


@pytest.fixture
def client(settings, provider):
    app = create_app(settings, provider, authorizer_factory=TokenAuthorizer)
    with TestClient(app) as test_client:
        yield test_client


class TestRpcEndpoint:
    """Tests for POST /mcp."""

    def test_tools_call(self, client):
        """Test a free tool call over HTTP."""
        response = client.post("/mcp", json={
            "jsonrpc": "2.0", "id": 1, "method": "tools/call", "params": {"name": "ping"}
        })

        assert response.status_code == 200
        body = response.json()
        assert json.loads(body["result"]["content"][0]["text"]) == {"gecko_says": "(V3) To the Moon!"}

    def test_protected_call_without_proof(self, client, upstream):
        """Test that protected tools are refused without a proof."""
        response = client.post("/rpc", json={
            "jsonrpc": "2.0",
            "id": 2,
            "method": "tools/call",
            "params": {"name": "getGlobal", "arguments": {}},
        })

        assert response.json()["error"]["code"] == -32001
        assert upstream.requests == []

    def test_parse_error(self, client):
        """Test that unparseable bodies get -32700."""
        response = client.post("/mcp", content=b"{not json", headers={"Content-Type": "application/json"})

        body = response.json()
        assert body["error"]["code"] == -32700
        assert body["id"] is None

    def test_notification_has_no_body(self, client):
        """Test that notifications are acknowledged with 204."""
        response = client.post("/mcp", json={"jsonrpc": "2.0", "method": "notifications/initialized"})

        assert response.status_code == 204
        assert response.content == b""

    def test_batch(self, client):
        """Test a batch of requests."""
        response = client.post("/mcp", json=[
            {"jsonrpc": "2.0", "id": 1, "method": "ping"},
            {"jsonrpc": "2.0", "id": 2, "method": "frobnicate"},
        ])

        replies = response.json()
        assert replies[0]["result"] == {}
        assert replies[1]["error"]["message"] == "Method not found: frobnicate"


class TestDiscovery:
    """Tests for the discovery and system endpoints."""

    def test_tool_listing_shows_protection(self, client):
        response = client.get("/mcp/tools")

        tools = {tool["name"]: tool for tool in response.json()["tools"]}
        assert tools["ping"]["protection"] == {"required": False, "tier": "free"}
        assert tools["getTrending"]["protection"] == {"required": True, "tier": "pro", "tokenId": 5}

    def test_server_info(self, client):
        body = client.get("/mcp").json()

        assert body["protocolVersion"] == "2024-11-05"
        assert body["serverInfo"]["protectionLevel"] == "token-gated"
        assert body["serverInfo"]["tokenTiers"]["premium"] == ["getCoinMarkets", "getGlobal"]

    def test_schema(self, client):
        body = client.get("/mcp/schema").json()

        assert "getPrice" in body["schema"]["properties"]

    def test_health(self, client):
        body = client.get("/health").json()

        assert body["status"] == "healthy"
        assert body["protection"] == "enabled"
        assert body["push_connections"] == 0


class TestAuthorizerStartup:
    """Tests for startup when the authorizer cannot be built."""

    def _failing_factory(self, settings):
        raise AuthorizerError("no signing secret")

    def test_fail_open(self, settings, provider):
        """Test that protected tools run when the authorizer is missing and fail-open."""
        app = create_app(settings, provider, authorizer_factory=self._failing_factory)

        with TestClient(app) as client:
            response = client.post("/mcp", json={
                "jsonrpc": "2.0", "id": 1, "method": "tools/call", "params": {"name": "getGlobal"}
            })
            health = client.get("/health").json()

        assert "result" in response.json()
        assert health["protection"] == "disabled"

    def test_unexpected_constructor_error_falls_back(self, settings, provider, upstream):
        """Test that any constructor failure takes the fail-open path instead of aborting."""

        def broken_factory(authorizer_settings):
            raise RuntimeError("rpc client exploded")

        app = create_app(settings, provider, authorizer_factory=broken_factory)

        with TestClient(app) as client:
            response = client.post("/mcp", json={
                "jsonrpc": "2.0", "id": 1, "method": "tools/call", "params": {"name": "getGlobal"}
            })
            health = client.get("/health").json()

        assert "result" in response.json()
        assert health["protection"] == "disabled"
        assert len(upstream.requests) == 1

    def test_fail_closed(self, settings, provider, upstream):
        """Test that protected tools are refused when fail-closed."""
        settings.authorizer.fail_open = False
        app = create_app(settings, provider, authorizer_factory=self._failing_factory)

        with TestClient(app) as client:
            response = client.post("/mcp", json={
                "jsonrpc": "2.0", "id": 1, "method": "tools/call", "params": {"name": "getGlobal"}
            })

        assert response.json()["error"]["code"] == -32001
        assert upstream.requests == []
