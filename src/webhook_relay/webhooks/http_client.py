"""HTTP transport for webhook deliveries.

Wraps a shared ``httpx.AsyncClient`` and turns every outcome into a
DeliveryResult: non-2xx responses, timeouts and network errors are
reported as ``success=False`` rather than raised.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping
from typing import Protocol, runtime_checkable

import httpx

from webhook_relay.models import DeliveryResult

logger = logging.getLogger(__name__)

TIMEOUT_ERROR = "timeout"


@runtime_checkable
class HttpTransport(Protocol):
    """Anything that can POST a body and report a DeliveryResult."""

    async def post(
        self,
        url: str,
        content: bytes,
        headers: Mapping[str, str],
        timeout_ms: int,
    ) -> DeliveryResult: ...


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


class HttpClient:
    """Default HttpTransport backed by httpx.

    Example:
        ```python
        client = HttpClient()
        result = await client.post(url, b'{"ok":true}', {"Content-Type": "application/json"}, 5000)
        await client.aclose()
        ```
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        max_connections: int = 100,
    ) -> None:
        """Initialize the transport.

        Args:
            client: Pre-built client (tests pass one with a MockTransport).
            max_connections: Connection pool size when the client is created here.
        """
        self._client = client
        self._owns_client = client is None
        self._max_connections = max_connections

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                limits=httpx.Limits(max_connections=self._max_connections),
                follow_redirects=False,
            )
        return self._client

    async def post(
        self,
        url: str,
        content: bytes,
        headers: Mapping[str, str],
        timeout_ms: int,
    ) -> DeliveryResult:
        """POST ``content`` to ``url`` within ``timeout_ms``.

        The timeout bounds the whole call, not just each connection phase.

        Returns:
            DeliveryResult with the measured wall-clock response time.
        """
        timeout = timeout_ms / 1000
        client = self._get_client()
        start = time.perf_counter()

        try:
            response = await asyncio.wait_for(
                client.post(url, content=content, headers=dict(headers), timeout=timeout),
                timeout=timeout,
            )
        except (httpx.TimeoutException, TimeoutError):
            return DeliveryResult(
                success=False, response_time_ms=_elapsed_ms(start), error=TIMEOUT_ERROR
            )
        except httpx.RequestError as e:
            logger.debug("Webhook request to %s failed: %r", url, e)
            return DeliveryResult(
                success=False,
                response_time_ms=_elapsed_ms(start),
                error=str(e) or type(e).__name__,
            )

        response_time_ms = _elapsed_ms(start)
        if 200 <= response.status_code < 300:
            return DeliveryResult(
                success=True,
                status_code=response.status_code,
                response_time_ms=response_time_ms,
            )

        return DeliveryResult(
            success=False,
            status_code=response.status_code,
            response_time_ms=response_time_ms,
            error=f"HTTP {response.status_code}: {response.reason_phrase}",
        )

    async def aclose(self) -> None:
        """Close the underlying client if this transport created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
