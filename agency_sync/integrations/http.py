"""Rate-limited httpx client base shared by every provider client."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..sync.rate_limit import RateLimiter

log = logging.getLogger(__name__)


class ProviderError(Exception):
    """Transport or API error from an external provider; fatal to a sync run."""

    def __init__(
        self,
        message: str,
        provider: str = "",
        status_code: int | None = None,
        response: Any = None,
    ):
        self.message = message
        self.provider = provider
        self.status_code = status_code
        self.response = response
        super().__init__(self.message)


class ProviderAuthError(ProviderError):
    """Token rejected (401/403)."""


class ProviderNotConfigured(ProviderError):
    """No credentials configured for the provider."""


class ProviderClient:
    """Async HTTP client bound to one provider and its limiter.

    Usage:
        async with HubSpotClient(token, limiter=limiter) as hubspot:
            page = await hubspot.list_objects("deals", after=None)
    """

    provider: str = ""
    base_url: str = ""

    def __init__(
        self,
        token: str | None,
        *,
        limiter: RateLimiter,
        base_url: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if not token:
            raise ProviderNotConfigured(f"No {self.provider} token configured", provider=self.provider)
        self.token = token
        self.limiter = limiter
        self.base_url = base_url or self.base_url
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def default_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def __aenter__(self):
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers=self.default_headers(),
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args):
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        if self._client is None:
            raise RuntimeError("Client not initialized. Use 'async with' context.")
        await self.limiter.acquire()
        try:
            resp = await self._client.request(method, endpoint, **kwargs)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            error_cls = ProviderAuthError if status in (401, 403) else ProviderError
            raise error_cls(
                f"{self.provider} API error {status}: {exc.response.text[:200]}",
                provider=self.provider,
                status_code=status,
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderError(f"{self.provider} request failed: {exc}", provider=self.provider) from exc
        return resp.json()

    async def _get(self, endpoint: str, **params: Any) -> Any:
        """Make GET request."""
        params = {k: v for k, v in params.items() if v is not None}
        return await self._request("GET", endpoint, params=params)

    async def _post(self, endpoint: str, data: dict | None = None) -> Any:
        """Make POST request."""
        return await self._request("POST", endpoint, json=data)
