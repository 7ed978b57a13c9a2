# backend/app/services/provider_client.py
from typing import Any, Dict, Optional
import httpx

from app.core.config import settings
from app.core.exceptions import ProviderError, TransientProviderError
from app.core.logging import logger


class ProviderClient:
    """Shared HTTP plumbing for provider APIs with bounded timeouts"""

    provider = "provider"

    def __init__(self, timeout: Optional[float] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout = timeout or settings.PROVIDER_TIMEOUT_SECONDS
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def request(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Perform one call and map failures onto provider errors; never retries"""
        try:
            async with self._client() as client:
                response = await client.request(method, url, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning(f"{self.provider} request timed out: {method} {url}", extra={"provider": self.provider})
            raise TransientProviderError(f"{self.provider} API timed out") from e
        except httpx.TransportError as e:
            logger.warning(f"{self.provider} request failed: {method} {url}: {e}", extra={"provider": self.provider})
            raise TransientProviderError(f"{self.provider} API unreachable") from e

        if response.status_code == 429 or response.status_code >= 500:
            logger.warning(
                f"{self.provider} API returned {response.status_code}: {method} {url}",
                extra={"provider": self.provider},
            )
            raise TransientProviderError(f"{self.provider} API returned {response.status_code}")

        if response.status_code >= 400:
            logger.error(
                f"{self.provider} API rejected request with {response.status_code}: {method} {url}",
                extra={"provider": self.provider},
            )
            raise ProviderError(f"{self.provider} API returned {response.status_code}")

        return response

    async def request_json(self, method: str, url: str, **kwargs: Any) -> Any:
        response = await self.request(method, url, **kwargs)
        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(f"{self.provider} API returned invalid JSON") from e
