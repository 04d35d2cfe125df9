"""Platform API client with retry, backoff, and escalating per-attempt timeouts."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

import httpx

from config.config import Settings
from utils import observability
from utils.async_http import AsyncHTTP
from utils.retry import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_TIMEOUT_SECONDS,
    RetryState,
    Sleep,
    with_retry,
)

from .platform_errors import (
    ErrorKind,
    MalformedRequest,
    PlatformAPIError,
    RetriesExhausted,
    TransportFailure,
    TransportTimeout,
    UpstreamClientError,
    UpstreamServerError,
    decode_body,
)

logger = logging.getLogger(__name__)

AUTHORIZATION_HEADER = "Authorization"
_LOG_PREFIX = "[Platform API]"


@dataclass(frozen=True)
class ClientConfig:
    """Runtime configuration for :class:`RetryingAPIClient`."""

    base_url: str
    api_key: str
    default_timeout: float = DEFAULT_TIMEOUT_SECONDS
    max_retries: int = DEFAULT_MAX_RETRIES

    def __post_init__(self) -> None:
        if not self.base_url or not self.base_url.strip():
            raise ValueError("base_url must not be empty")
        if self.default_timeout <= 0:
            raise ValueError("default_timeout must be positive")
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")

    @property
    def authorization(self) -> str:
        return f"Key {self.api_key}"

    @classmethod
    def from_settings(cls, settings: Settings) -> "ClientConfig":
        return cls(
            base_url=settings.platform_api_url,
            api_key=settings.pi_api_key,
            default_timeout=float(settings.platform_api_timeout),
            max_retries=int(settings.platform_api_max_retries),
        )


@dataclass(frozen=True)
class OutboundRequest:
    """One logical call as described by the caller.

    ``body`` is sent as JSON unless it is ``bytes`` or ``str``, which are sent
    verbatim. ``retried`` marks a call that a caller-side mechanism has already
    retried; the client then makes a single attempt.
    """

    method: str
    path: str
    headers: Mapping[str, str] = field(default_factory=dict)
    body: Any = None
    params: Optional[Mapping[str, Any]] = None
    timeout: Optional[float] = None
    retried: bool = False


@dataclass(frozen=True)
class Outcome:
    """Result of one logical call: a response or a terminal failure."""

    request: OutboundRequest
    attempts: int
    response: Optional[httpx.Response] = None
    error: Optional[PlatformAPIError] = None
    exhausted: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def kind(self) -> Optional[ErrorKind]:
        return self.error.kind if self.error is not None else None

    @property
    def status_code(self) -> Optional[int]:
        if self.response is not None:
            return self.response.status_code
        if self.error is not None:
            return self.error.status_code
        return None

    def unwrap(self) -> httpx.Response:
        """Return the successful response or raise the terminal error."""

        if self.error is not None:
            raise self.error
        if self.response is None:
            raise RuntimeError("Outcome carries neither a response nor an error")
        return self.response

    def json(self) -> Any:
        return decode_body(self.unwrap())


class RetryingAPIClient:
    """Authenticated client for the upstream platform API.

    Every logical call is executed by :meth:`call`. Transport timeouts and 5xx
    responses are retried up to ``config.max_retries`` times; the delay before
    attempt ``k + 1`` is ``2 ** (k + 1)`` seconds and attempt ``k`` runs with a
    timeout of ``config.default_timeout * k``. Anything else is terminal on
    first occurrence.
    """

    def __init__(
        self,
        config: ClientConfig,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._config = config
        self._http = AsyncHTTP(
            base_url=config.base_url.rstrip("/"),
            headers={
                AUTHORIZATION_HEADER: config.authorization,
                "Content-Type": "application/json",
            },
            timeout=config.default_timeout,
            transport=transport,
        )
        self._send = with_retry(
            self._attempt, max_retries=config.max_retries, sleep=sleep
        )

    @property
    def config(self) -> ClientConfig:
        return self._config

    async def __aenter__(self) -> "RetryingAPIClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def call(self, request: OutboundRequest) -> Outcome:
        """Execute one logical call and return its single :class:`Outcome`."""

        if not request.method or not request.path:
            raise ValueError("OutboundRequest requires both method and path")

        state = RetryState(
            base_timeout=request.timeout or self._config.default_timeout,
            has_retried=request.retried,
        )
        with observability.bind_call_id():
            try:
                response = await self._send(request, state)
            except RetriesExhausted as exc:
                last_error = exc.last_error
                last_error.attempts = exc.attempts
                logger.error(
                    "%s Giving up on %s %s after %d attempts",
                    _LOG_PREFIX,
                    request.method.upper(),
                    request.path,
                    exc.attempts,
                    extra={"attempts": exc.attempts, "kind": last_error.kind.value},
                )
                return Outcome(
                    request=request,
                    attempts=exc.attempts,
                    error=last_error,
                    exhausted=True,
                )
            except PlatformAPIError as exc:
                exc.attempts = state.attempt
                return Outcome(request=request, attempts=state.attempt, error=exc)

        return Outcome(request=request, attempts=state.attempt, response=response)

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        content: Optional[Any] = None,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> httpx.Response:
        """Issue a call and return the response, raising on terminal failure."""

        outcome = await self.call(
            OutboundRequest(
                method=method,
                path=path,
                headers=dict(headers or {}),
                body=content if content is not None else json,
                params=params,
                timeout=timeout,
            )
        )
        return outcome.unwrap()

    async def get(self, path: str, **kw: Any) -> httpx.Response:
        return await self.request("GET", path, **kw)

    async def post(self, path: str, **kw: Any) -> httpx.Response:
        return await self.request("POST", path, **kw)

    async def put(self, path: str, **kw: Any) -> httpx.Response:
        return await self.request("PUT", path, **kw)

    async def patch(self, path: str, **kw: Any) -> httpx.Response:
        return await self.request("PATCH", path, **kw)

    async def delete(self, path: str, **kw: Any) -> httpx.Response:
        return await self.request("DELETE", path, **kw)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _encode_body(self, request: OutboundRequest) -> Optional[bytes]:
        if request.body is None:
            return None
        if isinstance(request.body, bytes):
            return request.body
        if isinstance(request.body, str):
            return request.body.encode("utf-8")
        try:
            return json.dumps(request.body, allow_nan=False).encode("utf-8")
        except (TypeError, ValueError) as exc:
            error = MalformedRequest(
                f"Request body is not JSON serialisable: {exc}",
                method=request.method.upper(),
                path=request.path,
            )
            self._log_failure(error)
            raise error from exc

    def _build_headers(self, request: OutboundRequest) -> Dict[str, str]:
        headers = httpx.Headers(self._http.headers)
        headers.update(request.headers)
        headers[AUTHORIZATION_HEADER] = self._config.authorization
        return dict(headers.items())

    async def _attempt(
        self, request: OutboundRequest, state: RetryState
    ) -> httpx.Response:
        method = request.method.upper()
        logger.info(
            "%s %s %s (attempt %d)",
            _LOG_PREFIX,
            method,
            request.path,
            state.attempt,
            extra={
                "method": method,
                "path": request.path,
                "attempt": state.attempt,
                "timeout": state.timeout,
            },
        )

        content = self._encode_body(request)
        try:
            response = await self._http.request(
                method,
                request.path,
                params=request.params,
                content=content,
                headers=self._build_headers(request),
                timeout=state.timeout,
            )
        except httpx.TimeoutException as exc:
            error: PlatformAPIError = TransportTimeout(
                f"Request timed out after {state.timeout:g}s: {exc}",
                method=method,
                path=request.path,
            )
            self._log_failure(error)
            raise error from exc
        except httpx.InvalidURL as exc:
            error = MalformedRequest(
                f"Invalid request URL: {exc}", method=method, path=request.path
            )
            self._log_failure(error)
            raise error from exc
        except httpx.RequestError as exc:
            error = TransportFailure(
                f"Transport failure: {exc}", method=method, path=request.path
            )
            self._log_failure(error)
            raise error from exc

        if response.status_code >= 500:
            error = UpstreamServerError(
                f"Upstream server error {response.status_code}",
                method=method,
                path=request.path,
                response=response,
            )
            self._log_failure(error)
            raise error
        if response.status_code >= 400:
            error = UpstreamClientError(
                f"Upstream rejected request with {response.status_code}",
                method=method,
                path=request.path,
                response=response,
            )
            self._log_failure(error)
            raise error
        return response

    @staticmethod
    def _log_failure(error: PlatformAPIError) -> None:
        logger.error(
            "%s Request failed: %s",
            _LOG_PREFIX,
            error.message,
            extra={
                "url": error.path,
                "method": error.method,
                "status": error.status_code,
                "data": error.body,
            },
        )


def create_platform_api_client(
    settings: Optional[Settings] = None,
    *,
    api_key: Optional[str] = None,
    base_url: Optional[str] = None,
    timeout: Optional[float] = None,
    max_retries: Optional[int] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    sleep: Sleep = asyncio.sleep,
) -> RetryingAPIClient:
    """Build a :class:`RetryingAPIClient` from settings plus explicit overrides."""

    runtime_settings = settings or Settings()

    resolved_api_key = api_key or runtime_settings.pi_api_key
    if not resolved_api_key:
        raise EnvironmentError("Platform API key is not configured (PI_API_KEY).")

    resolved_base_url = base_url or runtime_settings.platform_api_url
    if not resolved_base_url:
        raise EnvironmentError("Platform API base URL is not configured.")

    config = ClientConfig(
        base_url=resolved_base_url,
        api_key=resolved_api_key,
        default_timeout=float(timeout or runtime_settings.platform_api_timeout),
        max_retries=(
            max_retries
            if max_retries is not None
            else runtime_settings.platform_api_max_retries
        ),
    )
    return RetryingAPIClient(config, transport=transport, sleep=sleep)


__all__ = [
    "ClientConfig",
    "OutboundRequest",
    "Outcome",
    "RetryingAPIClient",
    "create_platform_api_client",
]
