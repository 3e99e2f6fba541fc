"""Shared models, configuration and logging for the gateway."""

from shared.models import (
    ErrorCode,
    ToolDescriptor,
    ToolError,
    ToolResult,
    RpcRequest,
    RpcResponse,
    VerificationResult,
    PushConnection,
)
from shared.config import Settings, get_settings
from shared.logging import get_logger, setup_logging

__all__ = [
    "ErrorCode",
    "ToolDescriptor",
    "ToolError",
    "ToolResult",
    "RpcRequest",
    "RpcResponse",
    "VerificationResult",
    "PushConnection",
    "Settings",
    "get_settings",
    "get_logger",
    "setup_logging",
]
