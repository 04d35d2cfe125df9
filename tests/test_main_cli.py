"""Tests for the command line entry point."""

from __future__ import annotations

import json

import httpx
import pytest

import main
from integration import platform_api_client


@pytest.fixture
def fake_platform(monkeypatch):
    """Route the CLI's client through a mock transport without backoff sleeps."""

    seen: list[httpx.Request] = []
    responses: list[httpx.Response] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return responses.pop(0)

    original_factory = platform_api_client.create_platform_api_client

    def factory(settings=None, **overrides):
        async def no_sleep(delay: float) -> None:
            return None

        return original_factory(
            settings,
            api_key="cli-key",
            transport=httpx.MockTransport(handler),
            sleep=no_sleep,
            **overrides,
        )

    monkeypatch.setattr(main, "create_platform_api_client", factory)
    monkeypatch.setattr(main.observability, "init_logging", lambda level: None)
    return seen, responses


def test_main_prints_json_body(fake_platform, capsys):
    seen, responses = fake_platform
    responses.append(httpx.Response(200, json={"uid": "u-1"}))

    exit_code = main.main(["GET", "/v2/me"])

    assert exit_code == 0
    assert json.loads(capsys.readouterr().out) == {"uid": "u-1"}
    assert seen[0].headers["Authorization"] == "Key cli-key"


def test_main_sends_json_data_and_reports_failure(fake_platform, capsys):
    seen, responses = fake_platform
    responses.append(httpx.Response(400, json={"error": "bad_request"}))

    exit_code = main.main(
        ["POST", "/v2/payments", "--data", '{"amount": 1}', "--max-retries", "0"]
    )

    assert exit_code == 1
    assert json.loads(seen[0].content) == {"amount": 1}
    assert "\"error\": \"bad_request\"" in capsys.readouterr().err
