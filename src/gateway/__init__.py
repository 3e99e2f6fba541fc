"""Gateway - tool registry, authorization gate, execution and dispatch.

The gateway is the authoritative component for tool execution. It derives
the tool catalog, gates protected tools behind credential proofs, routes
calls to provider handlers and manages server-push connections.
"""

from gateway.registry import ToolRegistry
from gateway.auth import AuthorizationGate, ConfigurationError, validate_tier_requirements
from gateway.executor import CallExecutor
from gateway.dispatcher import ProtocolDispatcher, RpcMethod
from gateway.push import PushChannelManager

__all__ = [
    "ToolRegistry",
    "AuthorizationGate",
    "ConfigurationError",
    "validate_tier_requirements",
    "CallExecutor",
    "ProtocolDispatcher",
    "RpcMethod",
    "PushChannelManager",
]
