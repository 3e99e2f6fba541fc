"""Call executor for the gateway.

Binds tool names to handlers and invokes them, independent of transport.
Every outcome is normalized into a ToolResult.
"""

import time
from typing import Any, Awaitable, Callable

from shared.logging import get_logger
from shared.models import ErrorCode, PROOF_ARGUMENT, ToolResult
from gateway.registry import ToolRegistry
from providers.base import ProviderError

logger = get_logger(__name__)


# Handlers take the call arguments and return the upstream payload
ToolHandler = Callable[[dict[str, Any]], Awaitable[Any]]


class CallExecutor:
    """
    Invokes tool handlers.

    Responsibilities:
    - Hold the handler table built at startup
    - Reject unknown tools and missing required arguments
    - Map provider failures and unexpected errors to ToolResult failures
    """

    def __init__(self, registry: ToolRegistry) -> None:
        self.registry = registry
        self._handlers: dict[str, ToolHandler] = {}

    def register(self, name: str, handler: ToolHandler) -> None:
        """
        Register a handler for a tool.

        Raises:
            ValueError: If the tool is not in the registry or already bound
        """
        if name not in self.registry:
            raise ValueError(f"Tool '{name}' is not in the registry")
        if name in self._handlers:
            raise ValueError(f"Handler for '{name}' is already registered")

        self._handlers[name] = handler
        logger.info("Handler registered", tool=name)

    def handler_names(self) -> list[str]:
        return list(self._handlers)

    def has_handler(self, name: str) -> bool:
        return name in self._handlers

    async def invoke(self, name: str, arguments: Any = None) -> ToolResult:
        """
        Invoke a tool.

        Args:
            name: Tool name
            arguments: Call arguments (object or None)

        Returns:
            Success with the handler's data, or a typed failure
        """
        start_time = time.time()

        handler = self._handlers.get(name)
        if handler is None:
            return ToolResult.failure(
                name,
                f"Tool not found: {name}",
                code=ErrorCode.METHOD_NOT_FOUND,
            )

        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            return ToolResult.failure(
                name,
                "Tool arguments must be an object",
                code=ErrorCode.INVALID_PARAMS,
            )

        missing = self.registry.missing_required(name, arguments)
        if missing:
            return ToolResult.failure(
                name,
                f"Missing required parameters: {', '.join(missing)}",
                code=ErrorCode.INVALID_PARAMS,
                data={"missing": missing},
            )

        # The proof is for the gate only
        params = {k: v for k, v in arguments.items() if k != PROOF_ARGUMENT}

        try:
            data = await handler(params)
            result = ToolResult.success(name, data)
        except ProviderError as e:
            logger.warning(
                "Upstream call failed",
                tool=name,
                status=e.status_code,
                error=str(e)
            )
            result = ToolResult.failure(
                name,
                str(e),
                code=ErrorCode.INTERNAL_ERROR,
                data={"status": e.status_code, "detail": e.detail},
            )
        except Exception as e:
            logger.error(
                "Tool execution failed",
                tool=name,
                error=str(e),
                exc_info=True
            )
            result = ToolResult.failure(name, str(e), code=ErrorCode.INTERNAL_ERROR)

        result.execution_time_ms = (time.time() - start_time) * 1000
        logger.info(
            "Tool executed",
            tool=name,
            status=result.status.value,
            execution_time_ms=round(result.execution_time_ms, 2)
        )
        return result
