"""Core data models for the gateway.

This module defines the shared data structures used across the gateway,
the authorization collaborators and the data providers.
"""

from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


JSONRPC_VERSION = "2.0"
PROOF_ARGUMENT = "_evmauthProof"


class ErrorCode(IntEnum):
    """JSON-RPC error codes used by the gateway."""
    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603
    AUTHORIZATION_FAILED = -32001
    INSUFFICIENT_CREDENTIAL = -32002


class CredentialTier(str, Enum):
    """Access tiers a tool can be placed in."""
    FREE = "free"
    BASIC = "basic"
    PREMIUM = "premium"
    PRO = "pro"


# Tool name -> required credential id (None means free access)
TierRequirement = dict[str, Optional[int]]


class ParameterSchema(BaseModel):
    """Canonical object schema describing a tool's arguments."""
    model_config = ConfigDict(frozen=True)

    type: str = "object"
    properties: dict[str, Any] = Field(default_factory=dict)
    required: tuple[str, ...] = ()

    def to_json(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "properties": dict(self.properties),
            "required": list(self.required),
        }


class ToolDescriptor(BaseModel):
    """
    Immutable description of a callable tool.

    Built once by the registry from the catalog schema document.
    """
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Unique, stable tool identifier")
    description: str
    input_schema: ParameterSchema = Field(default_factory=ParameterSchema)
    returns: Optional[dict[str, Any]] = None

    def to_catalog_entry(self) -> dict[str, Any]:
        """Render in the shape MCP clients expect from tools/list."""
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema.to_json(),
        }


class ToolError(BaseModel):
    """Typed failure produced by the gate or the executor."""
    code: int = ErrorCode.INTERNAL_ERROR
    message: str
    data: Optional[Any] = None


class ToolResultStatus(str, Enum):
    """Status of a tool invocation."""
    SUCCESS = "success"
    ERROR = "error"


class ToolResult(BaseModel):
    """
    Result of a tool invocation.

    Either a success carrying arbitrary data, or a failure carrying a
    ToolError. Handlers, the gate and the executor all speak this type.
    """
    tool_name: str
    status: ToolResultStatus
    data: Optional[Any] = None
    error: Optional[ToolError] = None
    execution_time_ms: float = 0

    @property
    def ok(self) -> bool:
        return self.status == ToolResultStatus.SUCCESS

    @classmethod
    def success(cls, tool_name: str, data: Any = None) -> "ToolResult":
        return cls(tool_name=tool_name, status=ToolResultStatus.SUCCESS, data=data)

    @classmethod
    def failure(
        cls,
        tool_name: str,
        message: str,
        code: int = ErrorCode.INTERNAL_ERROR,
        data: Any = None
    ) -> "ToolResult":
        return cls(
            tool_name=tool_name,
            status=ToolResultStatus.ERROR,
            error=ToolError(code=code, message=message, data=data),
        )


class RpcRequest(BaseModel):
    """A JSON-RPC 2.0 request or notification."""
    jsonrpc: str = JSONRPC_VERSION
    method: str
    params: Optional[Union[dict[str, Any], list[Any]]] = None
    id: Optional[Union[str, int]] = None

    @property
    def is_notification(self) -> bool:
        return self.id is None


class RpcError(BaseModel):
    """A JSON-RPC 2.0 error object."""
    code: int
    message: str
    data: Optional[Any] = None


class RpcResponse(BaseModel):
    """A JSON-RPC 2.0 response. Exactly one of result/error is set."""
    jsonrpc: str = JSONRPC_VERSION
    id: Optional[Union[str, int]] = None
    result: Optional[Any] = None
    error: Optional[RpcError] = None

    @model_validator(mode="after")
    def _result_xor_error(self) -> "RpcResponse":
        if (self.result is None) == (self.error is None):
            raise ValueError("Exactly one of 'result' or 'error' must be set")
        return self

    def to_wire(self) -> dict[str, Any]:
        body: dict[str, Any] = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.error is not None:
            body["error"] = self.error.model_dump(exclude_none=True)
        else:
            body["result"] = self.result
        return body


class VerificationResult(BaseModel):
    """Reply from an authorization collaborator."""
    ok: bool
    code: Optional[int] = None
    message: Optional[str] = None
    detail: Optional[Any] = None

    @classmethod
    def allow(cls) -> "VerificationResult":
        return cls(ok=True)

    @classmethod
    def deny(
        cls,
        message: str,
        code: int = ErrorCode.AUTHORIZATION_FAILED,
        detail: Any = None
    ) -> "VerificationResult":
        return cls(ok=False, code=code, message=message, detail=detail)


class PushConnection(BaseModel):
    """A registered server-push connection."""
    id: str
    opened_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
