"""Base classes for authorization collaborators.

An authorizer answers exactly one question: does this proof grant the
credential a tool requires? How credentials are minted and how the ledger
behind them works is outside the gateway.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from shared.models import PROOF_ARGUMENT, VerificationResult


class AuthorizerError(Exception):
    """Authorizer could not be constructed or could not be reached."""
    pass


class Authorizer(ABC):
    """
    Verifies credential proofs on behalf of the authorization gate.

    Implementations own any caching of proof validity.
    """

    @abstractmethod
    async def verify(
        self,
        operation_name: str,
        required_credential_id: int,
        proof: Any
    ) -> VerificationResult:
        """
        Verify that ``proof`` grants ``required_credential_id``.

        Args:
            operation_name: Tool being called
            required_credential_id: Credential the tool requires
            proof: Caller-supplied proof, possibly None or malformed

        Returns:
            VerificationResult (ok, or a denial with code/message/detail)

        Raises:
            AuthorizerError: If the authorizer itself fails
        """
        pass

    async def close(self) -> None:
        """Release any held resources."""
        return None


def extract_proof(arguments: Any) -> Optional[Any]:
    """Pull the credential proof out of tool call arguments."""
    if not isinstance(arguments, dict):
        return None
    if PROOF_ARGUMENT in arguments:
        return arguments[PROOF_ARGUMENT]
    return arguments.get("proof")
