"""Authorization collaborators.

The gateway consumes one call from these: ``verify(operation, credential, proof)``.
"""

from typing import Optional

from shared.config import AuthorizerSettings
from authorizer.base import Authorizer, AuthorizerError, extract_proof
from authorizer.remote import RemoteAuthorizer
from authorizer.token import TokenAuthorizer


def build_authorizer(settings: AuthorizerSettings) -> Optional[Authorizer]:
    """
    Construct the configured authorizer.

    Returns:
        The authorizer, or None when verification is disabled

    Raises:
        AuthorizerError: If the configured mode cannot be set up
    """
    if settings.mode == "disabled":
        return None
    if settings.mode == "remote":
        return RemoteAuthorizer(settings)
    return TokenAuthorizer(settings)


__all__ = [
    "Authorizer",
    "AuthorizerError",
    "RemoteAuthorizer",
    "TokenAuthorizer",
    "build_authorizer",
    "extract_proof",
]
