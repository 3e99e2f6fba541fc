"""Base classes for upstream data providers.

A provider performs plain GET requests against a REST API. Handlers built
on top of it map tool arguments to query parameters and nothing more.
"""

from typing import Any, Mapping, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from shared.config import ProviderSettings
from shared.logging import get_logger

logger = get_logger(__name__)


class ProviderError(Exception):
    """Upstream returned a non-success status or could not be reached."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        detail: Any = None
    ) -> None:
        self.status_code = status_code
        self.detail = detail
        super().__init__(message)


class RESTProvider:
    """
    Async HTTP client for a REST data provider.

    Transport errors are retried with exponential backoff; HTTP error
    statuses are not.
    """

    def __init__(
        self,
        settings: ProviderSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> None:
        self.settings = settings
        self.base_url = settings.base_url
        self.api_key = settings.api_key
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.settings.timeout_seconds,
                transport=self._transport,
            )
        return self._client

    def _headers(self, api_key: Optional[str]) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if api_key:
            headers[self.settings.api_key_header] = api_key
        return headers

    async def fetch(
        self,
        path: str,
        params: Optional[Mapping[str, Any]] = None,
        api_key: Optional[str] = None
    ) -> Any:
        """
        GET ``path`` and return the decoded JSON body.

        Args:
            path: Path relative to the provider base URL
            params: Query parameters
            api_key: Overrides the configured API key

        Returns:
            Decoded JSON body

        Raises:
            ProviderError: On transport failure or non-success status
        """
        client = await self._get_client()
        headers = self._headers(api_key or self.api_key)

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.settings.retry_attempts),
                wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
                retry=retry_if_exception_type(httpx.TransportError),
                reraise=True,
            ):
                with attempt:
                    response = await client.get(path, params=params, headers=headers)
        except httpx.TransportError as e:
            raise ProviderError(f"Upstream request failed: {e}") from e

        if response.is_error:
            raise ProviderError(
                f"Upstream returned HTTP {response.status_code}",
                status_code=response.status_code,
                detail=self._error_body(response),
            )

        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(
                "Upstream returned invalid JSON",
                status_code=response.status_code,
                detail=response.text[:500],
            ) from e

    @staticmethod
    def _error_body(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return response.text[:500]

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
