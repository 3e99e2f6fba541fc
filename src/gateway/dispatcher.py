"""Protocol dispatcher for the gateway.

Turns one inbound JSON-RPC message into one reply (or none, for
notifications). Holds no state across messages beyond the shared
registry, gate and executor.
"""

import json
import uuid
from enum import Enum
from typing import Any, Optional

from pydantic import ValidationError

from shared.logging import bind_context, clear_context, get_logger
from shared.models import (
    ErrorCode,
    RpcError,
    RpcRequest,
    RpcResponse,
    ToolResult,
)
from authorizer import extract_proof
from gateway.auth import AuthorizationGate
from gateway.executor import CallExecutor
from gateway.registry import ToolRegistry

logger = get_logger(__name__)


class RpcMethod(str, Enum):
    """Top-level methods the gateway answers."""
    INITIALIZE = "initialize"
    INITIALIZED = "notifications/initialized"
    PING = "ping"
    TOOLS_LIST = "tools/list"
    TOOLS_CALL = "tools/call"


class RpcFault(Exception):
    """A request-level failure that maps directly to a JSON-RPC error."""

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        self.code = code
        self.message = message
        self.data = data
        super().__init__(message)


def error_response(
    request_id: Any,
    code: int,
    message: str,
    data: Any = None
) -> dict[str, Any]:
    """Build an error envelope."""
    return RpcResponse(
        id=request_id,
        error=RpcError(code=code, message=message, data=data),
    ).to_wire()


def _echoable_id(message: Any) -> Any:
    """The message id if it can be echoed back, else None."""
    if not isinstance(message, dict):
        return None
    request_id = message.get("id")
    if isinstance(request_id, str):
        return request_id
    if isinstance(request_id, int) and not isinstance(request_id, bool):
        return request_id
    return None


class ProtocolDispatcher:
    """
    JSON-RPC request/response core.

    Method dispatch is over the closed RpcMethod set; tool dispatch goes
    through the authorization gate and then the call executor.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        gate: AuthorizationGate,
        executor: CallExecutor,
        server_name: str = "protected-coingecko-mcp-server",
        server_version: str = "1.0.0",
        protocol_version: str = "2024-11-05"
    ) -> None:
        self.registry = registry
        self.gate = gate
        self.executor = executor
        self.server_name = server_name
        self.server_version = server_version
        self.protocol_version = protocol_version

    def capabilities(self) -> dict[str, Any]:
        """The handshake reply."""
        return {
            "protocolVersion": self.protocol_version,
            "capabilities": {
                "tools": self.registry.as_capabilities(),
                "resources": {},
                "prompts": {},
            },
            "serverInfo": {
                "name": self.server_name,
                "version": self.server_version,
            },
        }

    async def handle(self, message: Any) -> Optional[dict[str, Any]]:
        """
        Handle one inbound message.

        Args:
            message: Decoded JSON value

        Returns:
            Reply envelope, or None for notifications
        """
        request_id = _echoable_id(message)

        try:
            request = self._parse(message)
        except RpcFault as e:
            return error_response(request_id, e.code, e.message, e.data)

        bind_context(rpc_id=request.id, rpc_method=request.method)
        try:
            result = await self._dispatch(request)
            response = RpcResponse(id=request.id, result=result)
        except RpcFault as e:
            response = RpcResponse(
                id=request.id,
                error=RpcError(code=e.code, message=e.message, data=e.data),
            )
        except Exception as e:
            logger.error("Unhandled dispatch error", error=str(e), exc_info=True)
            response = RpcResponse(
                id=request.id,
                error=RpcError(code=ErrorCode.INTERNAL_ERROR, message=str(e) or "Internal error"),
            )
        finally:
            clear_context()

        if request.is_notification:
            return None
        return response.to_wire()

    async def handle_batch(self, messages: list[Any]) -> list[dict[str, Any]]:
        """Handle a JSON-RPC batch; notifications contribute no reply."""
        if not messages:
            return [error_response(None, ErrorCode.INVALID_REQUEST, "Invalid Request: empty batch")]

        replies = []
        for message in messages:
            reply = await self.handle(message)
            if reply is not None:
                replies.append(reply)
        return replies

    def _parse(self, message: Any) -> RpcRequest:
        if not isinstance(message, dict):
            raise RpcFault(ErrorCode.INVALID_REQUEST, "Invalid Request: expected an object")

        try:
            return RpcRequest.model_validate(message)
        except ValidationError as e:
            raise RpcFault(
                ErrorCode.INVALID_REQUEST,
                "Invalid Request",
                data=e.errors(include_url=False, include_context=False, include_input=False),
            )

    async def _dispatch(self, request: RpcRequest) -> Any:
        try:
            method = RpcMethod(request.method)
        except ValueError:
            raise RpcFault(ErrorCode.METHOD_NOT_FOUND, f"Method not found: {request.method}")

        if method is RpcMethod.INITIALIZE:
            params = request.params if isinstance(request.params, dict) else {}
            logger.info("Client handshake", client=params.get("clientInfo"))
            return self.capabilities()

        if method is RpcMethod.TOOLS_LIST:
            return {"tools": self.registry.catalog()}

        if method is RpcMethod.TOOLS_CALL:
            return await self._call_tool(request.params)

        # ping and notifications/initialized
        return {}

    async def _call_tool(self, params: Any) -> dict[str, Any]:
        if not isinstance(params, dict):
            raise RpcFault(ErrorCode.INVALID_PARAMS, "Invalid params: expected an object")

        name = params.get("name")
        if not isinstance(name, str) or not name:
            raise RpcFault(ErrorCode.INVALID_PARAMS, "Invalid params: missing tool name")

        if self.registry.describe(name) is None or not self.executor.has_handler(name):
            raise RpcFault(ErrorCode.METHOD_NOT_FOUND, f"Tool not found: {name}")

        arguments = params.get("arguments")
        if arguments is None:
            arguments = {}

        call_id = uuid.uuid4().hex[:8]
        bind_context(call_id=call_id, tool=name)

        result: ToolResult = await self.gate.guard(
            name,
            arguments,
            extract_proof(arguments),
            lambda: self.executor.invoke(name, arguments),
        )

        if not result.ok:
            error = result.error
            raise RpcFault(
                error.code if error and error.code is not None else ErrorCode.INTERNAL_ERROR,
                error.message if error else "Internal error",
                error.data if error else None,
            )

        return {
            "content": [
                {"type": "text", "text": json.dumps(result.data)},
            ]
        }
