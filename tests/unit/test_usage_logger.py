"""
Tests for usage telemetry.
"""

import asyncio
from unittest.mock import MagicMock

import pytest

from keypool.core.usage_logger import TelemetryRecorder, classify_outcome

MODEL = "gemini-2.5-flash"
KEY = "AIza-test-key-0001"


class TestClassifyOutcome:
    """Tests for mapping outcomes to counter increments."""

    def test_transport_failure(self):
        assert classify_outcome(None) == (0, 1)

    @pytest.mark.parametrize("status", [400, 429, 500, 502, 503, 504])
    def test_error_statuses(self, status):
        assert classify_outcome(status) == (1, 1)

    @pytest.mark.parametrize("status", [200, 201, 204, 301, 304, 401, 403, 404, 422])
    def test_plain_statuses(self, status):
        assert classify_outcome(status) == (1, 0)


class TestTelemetryRecorder:
    """Tests for detached counter updates."""

    async def test_records_429_as_usage_and_error(self, store):
        store.create_key(KEY)
        store.add_usage(KEY, MODEL)
        recorder = TelemetryRecorder(store)

        recorder.record(KEY, MODEL, 429)
        await recorder.drain()

        row = store.get_usage(KEY, MODEL)
        assert (row.usage, row.error) == (2, 1)

    async def test_records_success(self, store):
        store.create_key(KEY)
        recorder = TelemetryRecorder(store)

        recorder.record(KEY, MODEL, 200)
        await recorder.drain()

        row = store.get_usage(KEY, MODEL)
        assert (row.usage, row.error) == (1, 0)

    async def test_records_transport_failure(self, store):
        store.create_key(KEY)
        recorder = TelemetryRecorder(store)

        recorder.record(KEY, MODEL, None)
        await recorder.drain()

        row = store.get_usage(KEY, MODEL)
        assert (row.usage, row.error) == (0, 1)

    async def test_record_does_not_wait_for_write(self):
        store = MagicMock()
        started = asyncio.Event()
        release = asyncio.Event()
        loop = asyncio.get_running_loop()

        def slow_increment(*args):
            loop.call_soon_threadsafe(started.set)
            asyncio.run_coroutine_threadsafe(release.wait(), loop).result()

        store.increment.side_effect = slow_increment
        recorder = TelemetryRecorder(store)

        recorder.record(KEY, MODEL, 200)
        assert recorder.pending == 1

        await started.wait()
        assert recorder.pending == 1
        release.set()
        await recorder.drain()
        assert recorder.pending == 0

    async def test_write_failure_is_swallowed(self, caplog):
        store = MagicMock()
        store.increment.side_effect = RuntimeError("database is locked")
        recorder = TelemetryRecorder(store)

        task = recorder.record(KEY, MODEL, 500)
        await recorder.drain()

        assert task.exception() is None
        assert "Error recording usage/error" in caplog.text
        store.increment.assert_called_once_with(KEY, MODEL, 1, 1)

    async def test_concurrent_records_are_all_counted(self, store):
        store.create_key(KEY)
        recorder = TelemetryRecorder(store)

        for _ in range(25):
            recorder.record(KEY, MODEL, 200)
        await recorder.drain()

        assert store.get_usage(KEY, MODEL).usage == 25
