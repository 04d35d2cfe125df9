"""Tests for :mod:`utils.observability`."""

from __future__ import annotations

import asyncio
import logging

import pytest

from utils import observability


def _reset_logging_state() -> None:
    """Return the logging module to a clean slate for deterministic tests."""

    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()
    for existing_filter in list(root_logger.filters):
        root_logger.removeFilter(existing_filter)
    observability._call_id_filter_attached = False


def test_bind_call_id_scopes_identifier():
    assert observability.get_current_call_id() is None

    with observability.bind_call_id("call-test") as call_id:
        assert call_id == "call-test"
        assert observability.get_current_call_id() == "call-test"

    assert observability.get_current_call_id() is None


def test_generated_call_ids_are_unique():
    with observability.bind_call_id() as first:
        pass
    with observability.bind_call_id() as second:
        pass

    assert first.startswith("call-")
    assert first != second


@pytest.mark.asyncio
async def test_call_ids_are_isolated_between_tasks():
    async def worker(name: str) -> str:
        with observability.bind_call_id(name):
            await asyncio.sleep(0)
            return observability.get_current_call_id()

    results = await asyncio.gather(worker("call-a"), worker("call-b"))

    assert results == ["call-a", "call-b"]


def test_init_logging_injects_call_id(capsys):
    _reset_logging_state()

    observability.init_logging("INFO")
    logging.getLogger(__name__).info("outside any call")
    with observability.bind_call_id("call-from-test"):
        logging.getLogger(__name__).info("inside a call")

    captured = capsys.readouterr()
    assert "[call_id=-]" in captured.err
    assert "[call_id=call-from-test]" in captured.err

    _reset_logging_state()
