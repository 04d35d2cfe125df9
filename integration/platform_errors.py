"""Error taxonomy for calls made against the upstream platform API."""

from __future__ import annotations

import json
from enum import Enum
from typing import Any, Optional

import httpx


class ErrorKind(str, Enum):
    """Classification attached to every terminal platform API failure."""

    TRANSPORT_TIMEOUT = "transport_timeout"
    UPSTREAM_SERVER_ERROR = "upstream_server_error"
    UPSTREAM_CLIENT_ERROR = "upstream_client_error"
    TRANSPORT_FAILURE = "transport_failure"
    MALFORMED_REQUEST = "malformed_request"
    RETRIES_EXHAUSTED = "retries_exhausted"


class PlatformAPIError(Exception):
    """Base class for failures raised while talking to the platform API.

    Parameters
    ----------
    message:
        Human readable description of the failure.
    method / path:
        The request line of the attempt that failed.
    response:
        The upstream :class:`httpx.Response`, when one was received.
    """

    kind: ErrorKind
    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        method: Optional[str] = None,
        path: Optional[str] = None,
        response: Optional[httpx.Response] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.method = method
        self.path = path
        self.response = response
        self.attempts = 0

    @property
    def status_code(self) -> Optional[int]:
        if self.response is None:
            return None
        return self.response.status_code

    @property
    def body(self) -> Any:
        """Decoded response payload (JSON when possible, text otherwise)."""

        if self.response is None:
            return None
        return decode_body(self.response)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(kind={self.kind.value!r}, "
            f"method={self.method!r}, path={self.path!r}, "
            f"status_code={self.status_code!r})"
        )


class TransportTimeout(PlatformAPIError):
    """The attempt exceeded its timeout before a response arrived."""

    kind = ErrorKind.TRANSPORT_TIMEOUT
    retryable = True


class UpstreamServerError(PlatformAPIError):
    """The platform answered with a 5xx status."""

    kind = ErrorKind.UPSTREAM_SERVER_ERROR
    retryable = True


class UpstreamClientError(PlatformAPIError):
    """The platform rejected the request with a 4xx status."""

    kind = ErrorKind.UPSTREAM_CLIENT_ERROR


class TransportFailure(PlatformAPIError):
    """Connection-level failure other than a timeout (refused, DNS, protocol)."""

    kind = ErrorKind.TRANSPORT_FAILURE


class MalformedRequest(PlatformAPIError):
    """The request could not be encoded (unserialisable body, invalid URL)."""

    kind = ErrorKind.MALFORMED_REQUEST


class RetriesExhausted(PlatformAPIError):
    """Raised once the retry budget is spent; wraps the last retryable failure."""

    kind = ErrorKind.RETRIES_EXHAUSTED

    def __init__(self, last_error: PlatformAPIError, *, attempts: int) -> None:
        super().__init__(
            f"Retries exhausted after {attempts} attempts: {last_error.message}",
            method=last_error.method,
            path=last_error.path,
            response=last_error.response,
        )
        self.last_error = last_error
        self.attempts = attempts


def decode_body(response: httpx.Response) -> Any:
    text = response.text
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return text


def is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, PlatformAPIError) and exc.retryable


__all__ = [
    "ErrorKind",
    "MalformedRequest",
    "PlatformAPIError",
    "RetriesExhausted",
    "TransportFailure",
    "TransportTimeout",
    "UpstreamClientError",
    "UpstreamServerError",
    "decode_body",
    "is_retryable",
]
