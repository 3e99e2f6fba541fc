"""Remote authorizer.

Delegates proof verification to the authorization service over HTTP.
"""

from typing import Any, Optional

import httpx

from shared.config import AuthorizerSettings
from shared.logging import get_logger
from shared.models import ErrorCode, VerificationResult
from authorizer.base import Authorizer, AuthorizerError

logger = get_logger(__name__)


class RemoteAuthorizer(Authorizer):
    """
    Client for the authorization service's verify endpoint.

    The service replies ``{"ok": true}`` or
    ``{"ok": false, "code": ..., "message": ..., "detail": ...}``.
    """

    def __init__(
        self,
        settings: AuthorizerSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> None:
        if not settings.service_url:
            raise AuthorizerError("EVMAUTH_SERVICE_URL is required for remote verification")

        self.settings = settings
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.settings.service_url.rstrip("/"),
                timeout=self.settings.timeout_seconds,
                transport=self._transport,
            )
        return self._client

    async def verify(
        self,
        operation_name: str,
        required_credential_id: int,
        proof: Any
    ) -> VerificationResult:
        if proof is None:
            return VerificationResult.deny(
                "Authorization proof required",
                detail={"requiredCredentialId": required_credential_id},
            )

        payload = {
            "operation": operation_name,
            "requiredCredentialId": required_credential_id,
            "proof": proof,
            "contractAddress": self.settings.contract_address,
            "chainId": self.settings.chain_id,
        }

        try:
            client = await self._get_client()
            response = await client.post("/verify", json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as e:
            raise AuthorizerError(f"Authorization service request failed: {e}") from e
        except ValueError as e:
            raise AuthorizerError(f"Authorization service returned invalid JSON: {e}") from e

        if body.get("ok") is True:
            return VerificationResult.allow()

        return VerificationResult.deny(
            body.get("message") or "Access denied",
            code=body.get("code") or ErrorCode.AUTHORIZATION_FAILED,
            detail=body.get("detail"),
        )

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
