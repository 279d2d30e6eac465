"""
Async transport shared by every protocol executor and the connection test.

Usage:
    from query_engine.async_http_client import AsyncSecureHTTPClient

    async with AsyncSecureHTTPClient(timeout=15) as client:
        response = await client.request("GET", url, params={"jql": "status=open"})

The underlying httpx.AsyncClient is created on entry and closed on exit, so a
client instance serves exactly one upstream execution. TLS verification cannot
be disabled per call.
"""

from typing import Any

import httpx

UPSTREAM_LIMITS = httpx.Limits(max_connections=100, max_keepalive_connections=20)


class AsyncSecureHTTPClient:
    """Pooled httpx client scoped to a single upstream execution."""

    def __init__(self, timeout: float = 30.0, http2: bool = True, limits: httpx.Limits = UPSTREAM_LIMITS):
        self.timeout = float(timeout)
        self.http2 = http2
        self.limits = limits
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "AsyncSecureHTTPClient":
        self._client = httpx.AsyncClient(
            limits=self.limits,
            timeout=httpx.Timeout(self.timeout),
            verify=True,
            http2=self.http2,
            follow_redirects=True,
        )
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """
        Send one request to an upstream system.

        Args:
            method: HTTP verb, any case
            url: Absolute target URL
            **kwargs: Passed to httpx.AsyncClient.request(); ``verify`` is ignored

        Raises:
            RuntimeError: If used outside ``async with``
        """
        if self._client is None:
            raise RuntimeError("AsyncSecureHTTPClient must be entered with 'async with' before sending requests")

        kwargs.pop("verify", None)
        kwargs.setdefault("timeout", self.timeout)
        return await self._client.request(method.upper(), url, **kwargs)
