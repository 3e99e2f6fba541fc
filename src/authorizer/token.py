"""Signed-token authorizer.

Proofs are JWTs issued by the authorization service. The ``credentials``
claim (``tokenIds`` is accepted too) lists the credential ids the holder
owns; the signature binds that list to the issuer.
"""

import time
from collections import OrderedDict
from typing import Any, Optional

from jose import ExpiredSignatureError, JWTError, jwt

from shared.config import AuthorizerSettings
from shared.logging import get_logger
from shared.models import ErrorCode, VerificationResult
from authorizer.base import Authorizer, AuthorizerError

logger = get_logger(__name__)

CREDENTIAL_CLAIMS = ("credentials", "tokenIds")


class _ProofCache:
    """Bounded TTL cache of verified proof claims, oldest evicted first."""

    def __init__(self, ttl: int, max_size: int) -> None:
        self.ttl = ttl
        self.max_size = max_size
        self._entries: OrderedDict[str, tuple[float, dict[str, Any]]] = OrderedDict()

    def get(self, key: str) -> Optional[dict[str, Any]]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, claims = entry
        if expires_at < time.monotonic():
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return claims

    def put(self, key: str, claims: dict[str, Any]) -> None:
        if self.max_size <= 0 or self.ttl <= 0:
            return
        self._entries[key] = (time.monotonic() + self.ttl, claims)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_size:
            self._entries.popitem(last=False)

    def __len__(self) -> int:
        return len(self._entries)


class TokenAuthorizer(Authorizer):
    """
    Verifies JWT proofs locally with the shared signing secret.

    In dev mode signatures are not checked; claims are still required.
    """

    def __init__(self, settings: AuthorizerSettings) -> None:
        if not settings.jwt_secret and not settings.dev_mode:
            raise AuthorizerError("EVMAUTH_JWT_SECRET is required for token verification")

        self.settings = settings
        self._cache: Optional[_ProofCache] = None
        if not settings.cache_disabled:
            self._cache = _ProofCache(settings.cache_ttl, settings.cache_max_size)

        if settings.dev_mode:
            logger.warning("Token authorizer running in development mode, signatures are not verified")

    @staticmethod
    def _token_from(proof: Any) -> Optional[str]:
        if isinstance(proof, str):
            return proof.strip() or None
        if isinstance(proof, dict):
            token = proof.get("token") or proof.get("jwt")
            return token if isinstance(token, str) and token else None
        return None

    def _decode(self, token: str) -> dict[str, Any]:
        if self.settings.dev_mode:
            return jwt.get_unverified_claims(token)

        return jwt.decode(
            token,
            self.settings.jwt_secret,
            algorithms=[self.settings.jwt_algorithm],
            audience=self.settings.expected_audience,
            issuer=self.settings.jwt_issuer,
            options={"verify_aud": self.settings.expected_audience is not None},
        )

    @staticmethod
    def _expired(claims: dict[str, Any]) -> bool:
        exp = claims.get("exp")
        if exp is None:
            return False
        try:
            return float(exp) <= time.time()
        except (TypeError, ValueError):
            return True

    @staticmethod
    def _held_credentials(claims: dict[str, Any]) -> Optional[set[int]]:
        for claim in CREDENTIAL_CLAIMS:
            value = claims.get(claim)
            if isinstance(value, list):
                try:
                    return {int(v) for v in value}
                except (TypeError, ValueError):
                    return None
        return None

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

        token = self._token_from(proof)
        if token is None:
            return VerificationResult.deny(
                "Malformed authorization proof",
                detail={"expected": "signed token string or {'token': ...}"},
            )

        claims = self._cache.get(token) if self._cache is not None else None
        if claims is None:
            try:
                claims = self._decode(token)
            except ExpiredSignatureError:
                return VerificationResult.deny("Authorization proof expired")
            except JWTError as e:
                if self.settings.debug:
                    logger.debug("Proof rejected", operation=operation_name, error=str(e))
                return VerificationResult.deny("Invalid authorization proof", detail={"reason": str(e)})

            if self._cache is not None:
                self._cache.put(token, claims)

        # Cached and dev-mode claims were never checked against the clock
        if self._expired(claims):
            return VerificationResult.deny("Authorization proof expired")

        held = self._held_credentials(claims)
        if held is None:
            return VerificationResult.deny(
                "Malformed authorization proof",
                detail={"reason": "missing credentials claim"},
            )

        if required_credential_id not in held:
            return VerificationResult.deny(
                f"Credential {required_credential_id} required for {operation_name}",
                code=ErrorCode.INSUFFICIENT_CREDENTIAL,
                detail={
                    "requiredCredentialId": required_credential_id,
                    "heldCredentialIds": sorted(held),
                },
            )

        logger.debug(
            "Proof accepted",
            operation=operation_name,
            credential=required_credential_id,
            subject=claims.get("sub")
        )
        return VerificationResult.allow()
