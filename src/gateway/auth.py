"""Authorization gate for the gateway.

Wraps tool execution with a credential check. Free tools run directly;
protected tools run only after the authorizer accepts the caller's proof.
"""

from typing import Any, Awaitable, Callable, Iterable, Optional

from shared.logging import get_logger
from shared.models import ErrorCode, TierRequirement, ToolResult
from authorizer import Authorizer

logger = get_logger(__name__)

NextCall = Callable[[], Awaitable[ToolResult]]


class ConfigurationError(Exception):
    """Fatal startup misconfiguration."""
    pass


def validate_tier_requirements(
    requirements: TierRequirement,
    handler_names: Iterable[str]
) -> None:
    """
    Ensure every tier entry refers to a registered handler.

    Raises:
        ConfigurationError: If an entry names an unknown tool
    """
    known = set(handler_names)
    unknown = sorted(name for name in requirements if name not in known)
    if unknown:
        raise ConfigurationError(
            f"Credential requirements reference unregistered tools: {', '.join(unknown)}"
        )


class AuthorizationGate:
    """
    Tiered credential gate in front of the call executor.

    The tier table is shared read-only; the gate keeps no per-call state
    and never caches proof validity.
    """

    def __init__(
        self,
        requirements: TierRequirement,
        authorizer: Optional[Authorizer] = None,
        fail_open: bool = True
    ) -> None:
        self._requirements = dict(requirements)
        self.authorizer = authorizer
        self.fail_open = fail_open

    @property
    def enforcing(self) -> bool:
        """True when protected tools are actually checked."""
        return self.authorizer is not None

    def is_protected(self, name: str) -> bool:
        return self.required_credential(name) is not None

    def required_credential(self, name: str) -> Optional[int]:
        return self._requirements.get(name)

    async def guard(
        self,
        name: str,
        arguments: Any,
        proof: Any,
        next_call: NextCall
    ) -> ToolResult:
        """
        Run ``next_call`` if the caller may use ``name``.

        Args:
            name: Tool name
            arguments: Tool call arguments
            proof: Credential proof taken from the arguments, possibly None
            next_call: Executes the tool

        Returns:
            The tool's result, or an authorization failure
        """
        credential_id = self.required_credential(name)

        if credential_id is None:
            return await next_call()

        if self.authorizer is None:
            if self.fail_open:
                logger.debug("Authorizer unavailable, allowing call", tool=name)
                return await next_call()
            logger.warning("Authorizer unavailable, rejecting call", tool=name)
            return ToolResult.failure(
                name,
                "Authorization service unavailable",
                code=ErrorCode.AUTHORIZATION_FAILED,
                data={"requiredCredentialId": credential_id},
            )

        if proof is None:
            logger.warning("Access denied", tool=name, credential=credential_id, reason="no proof")
            return ToolResult.failure(
                name,
                "Authorization proof required",
                code=ErrorCode.AUTHORIZATION_FAILED,
                data={"requiredCredentialId": credential_id},
            )

        try:
            verdict = await self.authorizer.verify(name, credential_id, proof)
        except Exception as e:
            logger.error(
                "Authorizer failed",
                tool=name,
                credential=credential_id,
                error=str(e),
                exc_info=True
            )
            return ToolResult.failure(
                name,
                "Internal server error",
                code=ErrorCode.INTERNAL_ERROR,
                data={"originalError": str(e)},
            )

        if not verdict.ok:
            logger.warning(
                "Access denied",
                tool=name,
                credential=credential_id,
                reason=verdict.message
            )
            return ToolResult.failure(
                name,
                verdict.message or "Access denied",
                code=verdict.code or ErrorCode.AUTHORIZATION_FAILED,
                data=verdict.detail,
            )

        logger.debug("Access granted", tool=name, credential=credential_id)
        return await next_call()
