from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator

import httpx

from .config import get_settings
from .errors import UpstreamFetchFailure

logger = logging.getLogger(__name__)


class UpstreamStream:
    """An open upstream response whose body has not been read yet."""

    def __init__(self, client: httpx.AsyncClient, response: httpx.Response) -> None:
        self._client = client
        self._response = response

    @property
    def content_type(self) -> str | None:
        return self._response.headers.get("content-type")

    @property
    def content_length(self) -> str | None:
        return self._response.headers.get("content-length")

    @property
    def content_encoding(self) -> str | None:
        return self._response.headers.get("content-encoding")

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        # Raw bytes: no decoding, no re-encoding. When the caller disconnects,
        # the generator is cancelled and the finally block drops the upstream.
        try:
            async for chunk in self._response.aiter_raw():
                yield chunk
        except httpx.HTTPError as e:
            # Headers are already sent; all we can do is end the body early
            logger.warning(f"Upstream body for {self._response.url} broke off: {e!r}")
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        await self._response.aclose()
        await self._client.aclose()


class UpstreamFetcher:
    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        settings = get_settings()
        return httpx.AsyncClient(
            timeout=httpx.Timeout(settings.upstream_timeout_seconds),
            follow_redirects=True,
            transport=self._transport,
            headers={
                "User-Agent": settings.upstream_user_agent,
                "Accept": "image/webp,image/apng,image/*,*/*;q=0.8",
            },
        )

    async def _attempt(self, url: str) -> UpstreamStream:
        client = self._client()
        try:
            request = client.build_request("GET", url)
            response = await client.send(request, stream=True)
        except BaseException:
            # Includes the cancellation from the attempt deadline
            await client.aclose()
            raise
        if response.status_code >= 400:
            status = response.status_code
            await response.aclose()
            await client.aclose()
            raise UpstreamFetchFailure(f"Upstream returned {status}")
        return UpstreamStream(client, response)

    async def open(self, url: str) -> UpstreamStream:
        """Open ``url`` for streaming; retried ``upstream_retries`` times."""
        settings = get_settings()
        attempts = 1 + max(0, settings.upstream_retries)
        last_error: Exception | None = None
        for attempt in range(1, attempts + 1):
            try:
                # One deadline for connect, redirects and headers together
                async with asyncio.timeout(settings.upstream_timeout_seconds):
                    return await self._attempt(url)
            except (httpx.HTTPError, UpstreamFetchFailure, TimeoutError) as e:
                last_error = e
                logger.warning(f"Attempt {attempt}/{attempts} to fetch {url} failed: {e!r}")
        raise UpstreamFetchFailure(str(last_error) or repr(last_error)) from last_error


def get_fetcher() -> UpstreamFetcher:
    return UpstreamFetcher()
