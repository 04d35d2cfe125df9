"""Shared asynchronous HTTP transport wrapper."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

import httpx

from .retry import DEFAULT_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)


class AsyncHTTP:
    """Wrapper around :class:`httpx.AsyncClient` bound to one base URL.

    A single attempt is issued per :meth:`request`; retry policy lives with the
    caller so each attempt can carry its own timeout.
    """

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
        follow_redirects: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url or "",
            headers=dict(headers or {}),
            timeout=httpx.Timeout(timeout or DEFAULT_TIMEOUT_SECONDS),
            follow_redirects=follow_redirects,
            transport=transport,
        )

    @property
    def headers(self) -> httpx.Headers:
        return self._client.headers

    @property
    def is_closed(self) -> bool:
        return self._client.is_closed

    async def aclose(self) -> None:
        await self._client.aclose()

    async def request(
        self,
        method: str,
        url: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        json: Optional[Any] = None,
        content: Optional[Any] = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> httpx.Response:
        logger.debug(
            "AsyncHTTP request",
            extra={"method": method, "url": url, "timeout": timeout},
        )
        return await self._client.request(
            method,
            url,
            params=params,
            json=json,
            content=content,
            headers=headers,
            timeout=httpx.Timeout(timeout) if timeout is not None else httpx.USE_CLIENT_DEFAULT,
        )
