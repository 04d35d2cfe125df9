"""Test configuration helpers and shared fixtures."""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Callable, List

import httpx
import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

os.environ.setdefault("SETTINGS_SKIP_DOTENV", "1")



class SleepRecorder:
    """Stand-in for ``asyncio.sleep`` that records delays without waiting."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class ScriptedTransport(httpx.AsyncBaseTransport):
    """Replay a fixed script of responses/exceptions, recording each request."""

    def __init__(self, script: List[object]) -> None:
        self._script = list(script)
        self.requests: List[httpx.Request] = []
        self.timeouts: List[object] = []

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        self.timeouts.append(request.extensions.get("timeout", {}).get("read"))
        step = self._script[min(len(self.requests), len(self._script)) - 1]
        if isinstance(step, BaseException):
            raise step
        if callable(step):
            return step(request)
        status, payload = step  # type: ignore[misc]
        if isinstance(payload, (bytes, str)):
            return httpx.Response(status, content=payload, request=request)
        return httpx.Response(status, json=payload, request=request)


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def scripted_transport() -> Callable[..., ScriptedTransport]:
    def _factory(*script: object) -> ScriptedTransport:
        return ScriptedTransport(list(script))

    return _factory


@pytest.fixture(autouse=True)
def clear_platform_env(monkeypatch):
    for key in [
        "PI_API_KEY",
        "PLATFORM_API_KEY",
        "PLATFORM_API_URL",
        "PLATFORM_API_TIMEOUT",
        "PLATFORM_API_TIMEOUT_SECONDS",
        "PLATFORM_API_MAX_RETRIES",
        "APP_ENV",
        "NODE_ENV",
        "LOG_LEVEL",
    ]:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("SETTINGS_SKIP_DOTENV", "1")
