"""Gateway - FastAPI Application.

Serves the JSON-RPC endpoint, the discovery documents and the server-push
stream. Everything is wired once at startup and read-only afterwards.
"""

import json
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response, StreamingResponse

from shared.config import Settings, get_settings
from shared.logging import get_logger, setup_logging
from shared.models import ErrorCode
from authorizer import Authorizer, AuthorizerError, build_authorizer
from gateway.auth import AuthorizationGate, validate_tier_requirements
from gateway.dispatcher import ProtocolDispatcher, error_response
from gateway.executor import CallExecutor
from gateway.push import PushChannelManager
from gateway.registry import ToolRegistry
from providers import CATALOG, RESTProvider, register_coingecko

logger = get_logger(__name__)

AuthorizerFactory = Callable[[Any], Optional[Authorizer]]


@dataclass
class Gateway:
    """Components shared by all requests."""
    settings: Settings
    registry: ToolRegistry
    executor: CallExecutor
    gate: AuthorizationGate
    dispatcher: ProtocolDispatcher
    push: PushChannelManager
    provider: RESTProvider

    async def aclose(self) -> None:
        await self.push.shutdown()
        await self.provider.close()
        if self.gate.authorizer is not None:
            await self.gate.authorizer.close()


def _init_authorizer(settings: Settings, factory: AuthorizerFactory) -> Optional[Authorizer]:
    """Construct the authorizer; failures degrade the gate instead of aborting."""
    if settings.authorizer.mode == "disabled":
        logger.warning("Credential verification disabled, protected tools are open")
        return None

    try:
        authorizer = factory(settings.authorizer)
    except Exception as e:
        # AuthorizerError is a known misconfiguration; anything else gets a traceback
        logger.error(
            "Failed to initialize authorizer",
            error=str(e),
            exc_info=not isinstance(e, AuthorizerError)
        )
        if settings.authorizer.fail_open:
            logger.warning("Server will run WITHOUT credential protection (fail-open)")
        else:
            logger.warning("Protected tools will be rejected (fail-closed)")
        return None

    logger.info(
        "Authorizer initialized",
        mode=settings.authorizer.mode,
        dev_mode=settings.authorizer.dev_mode
    )
    return authorizer


def build_gateway(
    settings: Settings,
    provider: Optional[RESTProvider] = None,
    authorizer_factory: AuthorizerFactory = build_authorizer
) -> Gateway:
    """
    Wire registry, executor, gate, dispatcher and push manager.

    Raises:
        ConfigurationError: If a credential requirement names an unknown tool
    """
    registry = ToolRegistry.from_schema(CATALOG)

    provider = provider or RESTProvider(settings.provider)
    executor = CallExecutor(registry)
    register_coingecko(executor, provider)

    requirements = settings.tiers.requirements()
    validate_tier_requirements(requirements, executor.handler_names())

    authorizer = _init_authorizer(settings, authorizer_factory)
    fail_open = settings.authorizer.fail_open or settings.authorizer.mode == "disabled"
    gate = AuthorizationGate(requirements, authorizer=authorizer, fail_open=fail_open)

    for name in registry.names():
        credential = gate.required_credential(name)
        logger.info(
            "Tool protection",
            tool=name,
            tier=settings.tiers.category(name),
            status=f"protected (credential {credential})" if credential is not None else "free access"
        )

    dispatcher = ProtocolDispatcher(
        registry,
        gate,
        executor,
        server_name=settings.gateway.server_name,
        server_version=settings.gateway.server_version,
        protocol_version=settings.gateway.protocol_version,
    )
    push = PushChannelManager(keepalive_interval=settings.gateway.keepalive_interval_seconds)

    return Gateway(
        settings=settings,
        registry=registry,
        executor=executor,
        gate=gate,
        dispatcher=dispatcher,
        push=push,
        provider=provider,
    )


def create_app(
    settings: Optional[Settings] = None,
    provider: Optional[RESTProvider] = None,
    authorizer_factory: AuthorizerFactory = build_authorizer
) -> FastAPI:
    """Create the FastAPI application."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app_settings = settings or get_settings()
        setup_logging(app_settings.log_level, json_output=app_settings.environment == "production")

        logger.info("Starting gateway", environment=app_settings.environment)
        gateway = build_gateway(app_settings, provider, authorizer_factory)
        app.state.gateway = gateway
        logger.info(
            "Gateway started",
            tool_count=len(gateway.registry),
            protection="enabled" if gateway.gate.enforcing else "disabled"
        )

        yield

        logger.info("Shutting down gateway")
        await gateway.aclose()

    app = FastAPI(
        title="Protected CoinGecko MCP Server",
        description="Credential-gated cryptocurrency market data over MCP",
        version="1.0.0",
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def current(request: Request) -> Gateway:
        return request.app.state.gateway

    async def rpc_endpoint(request: Request) -> Response:
        gateway = current(request)
        try:
            body = json.loads(await request.body())
        except ValueError as e:
            return JSONResponse(error_response(None, ErrorCode.PARSE_ERROR, f"Parse error: {e}"))

        if isinstance(body, list):
            replies = await gateway.dispatcher.handle_batch(body)
            if not replies:
                return Response(status_code=status.HTTP_204_NO_CONTENT)
            return JSONResponse(replies)

        reply = await gateway.dispatcher.handle(body)
        if reply is None:
            return Response(status_code=status.HTTP_204_NO_CONTENT)
        return JSONResponse(reply)

    app.add_api_route("/mcp", rpc_endpoint, methods=["POST"], tags=["MCP"])
    app.add_api_route("/rpc", rpc_endpoint, methods=["POST"], tags=["MCP"])

    @app.get("/mcp", tags=["MCP"])
    async def server_info(request: Request):
        """Discovery document."""
        gateway = current(request)
        cfg = gateway.settings
        return {
            "name": cfg.gateway.server_name,
            "version": cfg.gateway.server_version,
            "description": "Credential-gated CoinGecko MCP server",
            "protocolVersion": cfg.gateway.protocol_version,
            "capabilities": {"tools": True, "resources": False, "prompts": False, "logging": False},
            "transport": {"type": "http", "baseUrl": str(request.base_url).rstrip("/")},
            "endpoints": {"rpc": "/mcp", "tools": "/mcp/tools", "schema": "/mcp/schema", "events": "/sse"},
            "serverInfo": {
                "protectionLevel": "token-gated" if gateway.gate.enforcing else "open",
                "contract": cfg.authorizer.contract_address,
                "chainId": cfg.authorizer.chain_id,
                "tokenTiers": _tier_summary(gateway),
            },
        }

    @app.get("/mcp/tools", tags=["MCP"])
    async def list_tools(request: Request):
        """Tool catalog with protection details."""
        gateway = current(request)
        tools = []
        for entry in gateway.registry.catalog():
            credential = gateway.gate.required_credential(entry["name"])
            entry["protection"] = {
                "required": credential is not None,
                "tier": gateway.settings.tiers.category(entry["name"]).lower(),
            }
            if credential is not None:
                entry["protection"]["tokenId"] = credential
            tools.append(entry)
        return {"tools": tools}

    @app.get("/mcp/schema", tags=["MCP"])
    async def schema():
        """Raw catalog document."""
        return CATALOG

    @app.get("/sse", tags=["Events"])
    async def events(request: Request):
        """Server-push event stream."""
        push = current(request).push
        connection_id = await push.open()
        return StreamingResponse(
            push.stream(connection_id),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    @app.get("/health", tags=["System"])
    async def health_check(request: Request):
        """Health check endpoint."""
        gateway = current(request)
        return {
            "status": "healthy",
            "server": gateway.settings.gateway.server_name,
            "mcp_endpoint": "/mcp",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "protection": "enabled" if gateway.gate.enforcing else "disabled",
            "push_connections": gateway.push.size,
        }

    @app.get("/", tags=["System"])
    async def root(request: Request):
        gateway = current(request)
        return {
            "name": gateway.settings.gateway.server_name,
            "version": gateway.settings.gateway.server_version,
            "endpoints": {"health": "/health", "mcp": "/mcp", "events": "/sse"},
        }

    return app


def _tier_summary(gateway: Gateway) -> dict[str, list[str]]:
    summary: dict[str, list[str]] = {}
    for name in gateway.registry.names():
        summary.setdefault(gateway.settings.tiers.category(name).lower(), []).append(name)
    return summary


app = create_app()


def main():
    """Run the gateway."""
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "gateway.main:app",
        host=settings.gateway.host,
        port=settings.gateway.port,
        reload=settings.environment == "development"
    )


if __name__ == "__main__":
    main()
