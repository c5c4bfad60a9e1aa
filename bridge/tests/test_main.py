"""
Unit tests for the bridge daemon main loop module.

Tests verify:
- Dispatch tick processes every inbound queue and records health.
- A failing queue does not stop the other queues.
- Telemetry tick collects and publishes; empty collections publish nothing.
- Telemetry errors do not crash the loop.
- Shutdown event stops both loops.
- Loops run multiple iterations before shutdown.
- Telemetry waits for the next wall-clock interval boundary.
- Startup logs config summary without the vendor secret.
- JSON log formatter emits one JSON object per record.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_settings(**overrides: object) -> MagicMock:
    """Create a mock BridgeSettings with sensible defaults."""
    defaults = {
        "vendor_base_url": "https://openapi.example.com",
        "vendor_api_key": "api-key-123",
        "vendor_api_secret": "super-secret-value",
        "vendor_group_key": "group-abc",
        "vendor_timeout_s": 15.0,
        "command_queue_url": "https://sqs.example.com/123/command",
        "onboarding_queue_url": "https://sqs.example.com/123/onboarding",
        "offboarding_queue_url": "https://sqs.example.com/123/offboarding",
        "telemetry_queue_url": "https://sqs.example.com/123/telemetry",
        "aws_region": "ap-southeast-2",
        "dispatch_interval_s": 10,
        "telemetry_interval_s": 300,
        "receive_batch_size": 10,
        "receive_wait_s": 5,
        "solar_includes_dc_meter": True,
        "source_id": "urn:com.neovolt.evergen.device",
    }
    defaults.update(overrides)
    settings = MagicMock()
    for key, value in defaults.items():
        setattr(settings, key, value)
    return settings


def _make_queue(name: str) -> MagicMock:
    queue = MagicMock()
    queue.name = name
    return queue


def _make_dispatcher(processed: int = 1) -> AsyncMock:
    dispatcher = AsyncMock()
    dispatcher.process_queue = AsyncMock(return_value=processed)
    dispatcher.publish_telemetry = AsyncMock(return_value=1)
    return dispatcher


# ---------------------------------------------------------------------------
# Dispatch tick
# ---------------------------------------------------------------------------


class TestDispatchOnce:
    """_dispatch_once polls every inbound queue."""

    @pytest.mark.asyncio
    async def test_processes_every_queue(self) -> None:
        from bridge.src.main import _dispatch_once

        dispatcher = _make_dispatcher(processed=2)
        queues = [_make_queue("command"), _make_queue("onboarding"), _make_queue("offboarding")]

        processed = await _dispatch_once(dispatcher=dispatcher, inbound=queues, health=None)

        assert processed == 6
        assert [c.args[0] for c in dispatcher.process_queue.call_args_list] == queues

    @pytest.mark.asyncio
    async def test_failing_queue_does_not_stop_others(self) -> None:
        from bridge.src.main import _dispatch_once

        dispatcher = _make_dispatcher()
        dispatcher.process_queue = AsyncMock(side_effect=[RuntimeError("receive failed"), 1, 1])
        queues = [_make_queue("command"), _make_queue("onboarding"), _make_queue("offboarding")]

        processed = await _dispatch_once(dispatcher=dispatcher, inbound=queues, health=None)

        assert processed == 2
        assert dispatcher.process_queue.await_count == 3

    @pytest.mark.asyncio
    async def test_health_written_after_tick(self, tmp_path: Path) -> None:
        from bridge.src.health import HealthWriter
        from bridge.src.main import _dispatch_once

        health = HealthWriter(tmp_path / "health.json")

        await _dispatch_once(
            dispatcher=_make_dispatcher(processed=3),
            inbound=[_make_queue("command")],
            health=health,
        )

        data = json.loads((tmp_path / "health.json").read_text())
        assert data["last_dispatch_ts"] is not None
        assert data["messages_processed"] == 3


# ---------------------------------------------------------------------------
# Telemetry tick
# ---------------------------------------------------------------------------


class TestTelemetryOnce:
    """_telemetry_once collects and publishes."""

    @pytest.mark.asyncio
    async def test_publishes_collected_payloads(self, tmp_path: Path) -> None:
        from bridge.src.health import HealthWriter
        from bridge.src.main import _telemetry_once

        dispatcher = _make_dispatcher()
        payloads = [MagicMock(), MagicMock()]
        dispatcher.publish_telemetry = AsyncMock(return_value=2)
        health = HealthWriter(tmp_path / "health.json")

        with patch(
            "bridge.src.main.collect_telemetry", new=AsyncMock(return_value=payloads)
        ) as mock_collect:
            sent = await _telemetry_once(
                client=AsyncMock(), dispatcher=dispatcher, include_dc_meter=False, health=health
            )

        assert sent == 2
        assert mock_collect.call_args.kwargs["include_dc_meter"] is False
        dispatcher.publish_telemetry.assert_awaited_once_with(payloads)
        data = json.loads((tmp_path / "health.json").read_text())
        assert data["last_telemetry_ts"] is not None

    @pytest.mark.asyncio
    async def test_empty_collection_publishes_nothing(self) -> None:
        from bridge.src.main import _telemetry_once

        dispatcher = _make_dispatcher()

        with patch("bridge.src.main.collect_telemetry", new=AsyncMock(return_value=[])):
            sent = await _telemetry_once(
                client=AsyncMock(), dispatcher=dispatcher, include_dc_meter=True, health=None
            )

        assert sent == 0
        dispatcher.publish_telemetry.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_exception_does_not_crash(self) -> None:
        from bridge.src.main import _telemetry_once

        with patch(
            "bridge.src.main.collect_telemetry", new=AsyncMock(side_effect=RuntimeError("boom"))
        ):
            sent = await _telemetry_once(
                client=AsyncMock(), dispatcher=_make_dispatcher(), include_dc_meter=True, health=None
            )

        assert sent == 0


# ---------------------------------------------------------------------------
# Loops and shutdown
# ---------------------------------------------------------------------------


class TestShutdown:
    """Graceful shutdown on the shared event."""

    @pytest.mark.asyncio
    async def test_shutdown_stops_loops(self) -> None:
        """Setting the shutdown event causes run_loops to exit."""
        from bridge.src.main import run_loops

        shutdown_event = asyncio.Event()

        async def _trigger_shutdown() -> None:
            await asyncio.sleep(0.05)
            shutdown_event.set()

        with patch("bridge.src.main.collect_telemetry", new=AsyncMock(return_value=[])):
            task = asyncio.create_task(
                run_loops(
                    client=AsyncMock(),
                    dispatcher=_make_dispatcher(),
                    inbound=[_make_queue("command")],
                    dispatch_interval_s=10,
                    telemetry_interval_s=300,
                    include_dc_meter=True,
                    shutdown_event=shutdown_event,
                )
            )
            trigger = asyncio.create_task(_trigger_shutdown())

            await asyncio.wait_for(asyncio.gather(task, trigger), timeout=5.0)

        assert task.done()

    def test_handle_signal_sets_event(self) -> None:
        from bridge.src.main import _handle_signal

        event = asyncio.Event()

        _handle_signal(event)

        assert event.is_set()


class TestTelemetrySchedule:
    """Telemetry is aligned to wall-clock interval boundaries."""

    @pytest.mark.parametrize(
        ("now", "expected"),
        [
            (datetime(2024, 1, 10, 12, 3, 20, tzinfo=UTC), 100.0),
            (datetime(2024, 1, 10, 12, 4, 59, tzinfo=UTC), 1.0),
            (datetime(2024, 1, 10, 12, 5, 0, tzinfo=UTC), 300.0),
        ],
    )
    def test_delay_to_next_boundary(self, now: datetime, expected: float) -> None:
        from bridge.src.main import _seconds_until_next_tick

        assert _seconds_until_next_tick(300, now) == pytest.approx(expected)

    @pytest.mark.asyncio
    async def test_loop_waits_for_boundary_before_publishing(self) -> None:
        from bridge.src.main import _telemetry_loop

        shutdown_event = asyncio.Event()
        waits: list[float] = []

        def _next_tick(interval_s: float) -> float:
            waits.append(interval_s)
            if len(waits) >= 2:
                shutdown_event.set()
            return 0.01

        with (
            patch("bridge.src.main._seconds_until_next_tick", new=_next_tick),
            patch(
                "bridge.src.main.collect_telemetry", new=AsyncMock(return_value=[])
            ) as mock_collect,
        ):
            await asyncio.wait_for(
                _telemetry_loop(
                    client=AsyncMock(),
                    dispatcher=_make_dispatcher(),
                    telemetry_interval_s=300,
                    include_dc_meter=True,
                    shutdown_event=shutdown_event,
                    health=None,
                ),
                timeout=5.0,
            )

        assert waits == [300, 300]
        assert mock_collect.await_count == 1


class TestLoopIterations:
    """Loops run repeatedly until shutdown."""

    @pytest.mark.asyncio
    async def test_dispatch_loop_runs_multiple_times(self) -> None:
        from bridge.src.main import _dispatch_loop

        shutdown_event = asyncio.Event()
        dispatcher = _make_dispatcher()
        calls = 0

        async def _process(queue: object) -> int:
            nonlocal calls
            calls += 1
            if calls >= 3:
                shutdown_event.set()
            return 0

        dispatcher.process_queue = AsyncMock(side_effect=_process)

        await asyncio.wait_for(
            _dispatch_loop(
                dispatcher=dispatcher,
                inbound=[_make_queue("command")],
                dispatch_interval_s=0.01,
                shutdown_event=shutdown_event,
                health=None,
            ),
            timeout=5.0,
        )

        assert calls == 3

    @pytest.mark.asyncio
    async def test_telemetry_loop_runs_multiple_times(self) -> None:
        from bridge.src.main import _telemetry_loop

        shutdown_event = asyncio.Event()
        calls = 0

        async def _collect(client: object, **kwargs: object) -> list:
            nonlocal calls
            calls += 1
            if calls >= 2:
                shutdown_event.set()
            return []

        with patch("bridge.src.main.collect_telemetry", new=_collect):
            await asyncio.wait_for(
                _telemetry_loop(
                    client=AsyncMock(),
                    dispatcher=_make_dispatcher(),
                    telemetry_interval_s=0.01,
                    include_dc_meter=True,
                    shutdown_event=shutdown_event,
                    health=None,
                ),
                timeout=5.0,
            )

        assert calls == 2


# ---------------------------------------------------------------------------
# Startup logging
# ---------------------------------------------------------------------------


class TestConfigSummaryLogging:
    """Startup config summary excludes secrets."""

    def test_contains_queue_urls(self, caplog: pytest.LogCaptureFixture) -> None:
        from bridge.src.main import log_config_summary

        with caplog.at_level(logging.INFO, logger="bridge.src.main"):
            log_config_summary(_make_settings())

        assert "https://sqs.example.com/123/command" in caplog.text
        assert "group-abc" in caplog.text

    def test_does_not_contain_secret(self, caplog: pytest.LogCaptureFixture) -> None:
        from bridge.src.main import log_config_summary

        with caplog.at_level(logging.INFO, logger="bridge.src.main"):
            log_config_summary(_make_settings())

        assert "super-secret-value" not in caplog.text
        assert "sha256=" in caplog.text


class TestJsonLogging:
    """configure_logging installs a JSON formatter on the root logger."""

    def test_records_are_json(self) -> None:
        from bridge.src.main import configure_logging

        root = logging.getLogger()
        saved_handlers, saved_level = list(root.handlers), root.level
        try:
            configure_logging()
            formatter = root.handlers[0].formatter
            record = logging.LogRecord("bridge.test", logging.WARNING, __file__, 1, "hello %s", ("x",), None)

            entry = json.loads(formatter.format(record))
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)

        assert entry["msg"] == "hello x"
        assert entry["level"] == "WARNING"
        assert entry["logger"] == "bridge.test"
